"""
Tests del motor de versionado de recetas.

Prueba:
- Archivado: copia archivada con líneas independientes, versión viva +0.1
- Cascada al documento de procedimiento
- Inmutabilidad de copias archivadas (hook before_flush)
- Archivado antes de modificar (save_recipe_changes)
- Transiciones draft <-> active
"""

import pytest
from sqlalchemy import select

from prep_recipe_core.db.helpers import get_recipe_lines
from prep_recipe_core.db.models import (
    DocumentStatus,
    ProcedureDocument,
    Recipe,
    RecipeLine,
    RecipeStatus,
    load_json_dict,
    load_json_list,
)
from prep_recipe_core.errors import ConflictError, ImmutableRecordError, NotFoundError, ValidationFailureError
from prep_recipe_core.recipes import save_recipe_changes, save_recipe_line, set_recipe_status
from prep_recipe_core.versioning import (
    archive_and_advance,
    archive_document_and_advance,
    list_document_versions,
    list_recipe_versions,
    next_version,
)


@pytest.fixture
def active_recipe(session, prep_recipe, flour, butter, chef):
    """Receta activa con dos líneas y documento generado."""
    save_recipe_line(session, prep_recipe.id, flour.id, 500, "g", user_id=chef.id)
    save_recipe_line(session, prep_recipe.id, butter.id, 120, "g", user_id=chef.id)
    return prep_recipe


@pytest.mark.parametrize("current, expected", [(1.0, 1.1), (1.1, 1.2), (1.9, 2.0), (None, 1.1)])
def test_next_version(current, expected):
    assert next_version(current) == pytest.approx(expected)


def test_archive_copies_recipe_and_lines(session, active_recipe, chef):
    live_lines = get_recipe_lines(session, active_recipe.id)
    live_line_ids = [line.id for line in live_lines]

    result = archive_and_advance(session, active_recipe.id, chef.id, "Ajuste de hidratación")

    assert result.live_id == active_recipe.id
    assert result.archived_version == pytest.approx(1.0)
    assert result.live_version == pytest.approx(1.1)
    assert active_recipe.version_number == pytest.approx(1.1)

    archived = session.get(Recipe, result.archived_id)
    assert archived.id != active_recipe.id
    assert archived.recipe_status == RecipeStatus.ARCHIVED
    assert archived.is_active is False
    assert archived.archived_from_recipe_id == active_recipe.id
    assert archived.archived_by == chef.id
    assert archived.archived_at is not None
    assert archived.archive_notes == "Ajuste de hidratación"
    assert archived.version_number == pytest.approx(1.0)
    assert archived.code == active_recipe.code
    assert archived.name == active_recipe.name
    assert archived.output_ingredient_id == active_recipe.output_ingredient_id

    archived_lines = get_recipe_lines(session, archived.id)
    assert len(archived_lines) == len(live_lines) == 2
    assert not {line.id for line in archived_lines} & set(live_line_ids)
    for copy, original in zip(archived_lines, live_lines):
        assert copy.ingredient_id == original.ingredient_id
        assert copy.quantity == original.quantity
        assert copy.unit == original.unit
        assert load_json_list(copy.allergens_json) == load_json_list(original.allergens_json)

    # La receta viva conserva sus líneas
    assert [line.id for line in get_recipe_lines(session, active_recipe.id)] == live_line_ids


def test_archive_cascades_to_document(session, active_recipe, chef):
    live_document_id = active_recipe.linked_document_id

    result = archive_and_advance(session, active_recipe.id, chef.id)

    assert result.archived_document_id is not None
    archived_document = session.get(ProcedureDocument, result.archived_document_id)
    assert archived_document.status == DocumentStatus.ARCHIVED
    assert archived_document.version_number == pytest.approx(1.0)
    assert archived_document.archived_from_document_id == live_document_id
    assert archived_document.archived_by == chef.id

    live_document = session.get(ProcedureDocument, live_document_id)
    assert live_document.status == DocumentStatus.DRAFT
    assert live_document.version_number == pytest.approx(1.1)
    assert live_document.needs_update is True
    assert active_recipe.linked_document_id == live_document_id


def test_archive_without_document(session, prep_recipe):
    result = archive_and_advance(session, prep_recipe.id)

    assert result.archived_document_id is None
    assert prep_recipe.version_number == pytest.approx(1.1)


def test_repeated_archives_build_history(session, active_recipe):
    archive_and_advance(session, active_recipe.id)
    archive_and_advance(session, active_recipe.id)

    assert active_recipe.version_number == pytest.approx(1.2)
    versions = list_recipe_versions(session, active_recipe.id)
    assert [round(v.version_number, 1) for v in versions] == [1.1, 1.0]

    document_versions = list_document_versions(session, active_recipe.linked_document_id)
    assert [round(d.version_number, 1) for d in document_versions] == [1.1, 1.0]


def test_archive_same_version_twice_is_conflict(session, active_recipe):
    archive_and_advance(session, active_recipe.id)
    active_recipe.version_number = 1.0
    session.flush()

    with pytest.raises(ConflictError):
        archive_and_advance(session, active_recipe.id)

    assert len(list_recipe_versions(session, active_recipe.id)) == 1


def test_archiving_an_archived_copy_is_conflict(session, active_recipe):
    result = archive_and_advance(session, active_recipe.id)

    with pytest.raises(ConflictError):
        archive_and_advance(session, result.archived_id)


def test_archive_unknown_recipe(session):
    with pytest.raises(NotFoundError):
        archive_and_advance(session, "missing-recipe")


def test_archive_rejects_pending_changes(session, active_recipe):
    active_recipe.name = "Brioche Loaf"

    with pytest.raises(ConflictError):
        archive_and_advance(session, active_recipe.id)


def test_archive_rejects_unflushed_line(session, active_recipe, flour):
    session.add(RecipeLine(recipe_id=active_recipe.id, ingredient_id=flour.id, quantity=50, unit="g"))

    with pytest.raises(ConflictError):
        archive_and_advance(session, active_recipe.id)


def test_archived_recipe_is_immutable(session, active_recipe):
    result = archive_and_advance(session, active_recipe.id)
    archived = session.get(Recipe, result.archived_id)

    archived.name = "Edited"
    with pytest.raises(ImmutableRecordError):
        session.flush()
    session.rollback()


def test_archived_line_is_immutable(session, active_recipe):
    result = archive_and_advance(session, active_recipe.id)
    archived_line = get_recipe_lines(session, result.archived_id)[0]

    archived_line.quantity = 999
    with pytest.raises(ImmutableRecordError):
        session.flush()
    session.rollback()


def test_archived_document_cannot_be_deleted(session, active_recipe):
    result = archive_and_advance(session, active_recipe.id)
    session.delete(session.get(ProcedureDocument, result.archived_document_id))

    with pytest.raises(ImmutableRecordError):
        session.flush()
    session.rollback()


def test_live_recipe_cannot_be_archived_in_place(session, active_recipe):
    active_recipe.recipe_status = RecipeStatus.ARCHIVED

    with pytest.raises(ImmutableRecordError):
        session.flush()
    session.rollback()


def test_archive_document_directly(session, active_recipe, chef):
    live_id, archived_id = archive_document_and_advance(session, active_recipe.linked_document_id, chef.id)

    assert live_id == active_recipe.linked_document_id
    assert session.get(ProcedureDocument, live_id).version_number == pytest.approx(1.1)
    assert session.get(ProcedureDocument, archived_id).status == DocumentStatus.ARCHIVED

    with pytest.raises(ConflictError):
        archive_document_and_advance(session, archived_id)


def test_save_changes_on_draft_does_not_archive(session, prep_recipe):
    result = save_recipe_changes(session, prep_recipe.id, None, {"name": "Brioche Loaf", "yield_qty": 12})

    assert result is None
    assert prep_recipe.name == "Brioche Loaf"
    assert prep_recipe.yield_qty == pytest.approx(12)
    assert prep_recipe.version_number == pytest.approx(1.0)
    assert list_recipe_versions(session, prep_recipe.id) == []


def test_save_changes_on_active_archives_first(session, active_recipe, chef):
    result = save_recipe_changes(
        session,
        active_recipe.id,
        chef.id,
        {"yield_qty": 12, "storage_requirements": "Refrigerate", "allergens": ["egg"]},
        notes="Lote grande",
        expected_version=1.0,
    )

    assert result is not None
    archived = session.get(Recipe, result.archived_id)

    # La copia congela el estado previo al cambio
    assert archived.yield_qty == pytest.approx(1.0)
    assert archived.storage_requirements == ""
    assert load_json_list(archived.allergens_json) == []
    assert archived.archive_notes == "Lote grande"

    assert active_recipe.yield_qty == pytest.approx(12)
    assert active_recipe.storage_requirements == "Refrigerate"
    assert active_recipe.version_number == pytest.approx(1.1)

    # El documento vivo queda sincronizado con la nueva versión
    document = session.get(ProcedureDocument, active_recipe.linked_document_id)
    header = load_json_dict(document.content_json)["content"][0]["attrs"]
    assert header["version"] == "1.1"
    assert header["yieldValue"] == 12
    assert header["allergens"][0] == "egg"
    assert document.needs_update is False


def test_save_changes_with_stale_version_is_conflict(session, active_recipe):
    archive_and_advance(session, active_recipe.id)

    with pytest.raises(ConflictError):
        save_recipe_changes(session, active_recipe.id, None, {"name": "Brioche Loaf"}, expected_version=1.0)


def test_save_changes_rejects_unknown_fields(session, prep_recipe):
    with pytest.raises(ValidationFailureError):
        save_recipe_changes(session, prep_recipe.id, None, {"code": "REC-XXX-001"})


def test_save_changes_rejects_blank_name(session, active_recipe):
    with pytest.raises(ValidationFailureError) as exc_info:
        save_recipe_changes(session, active_recipe.id, None, {"name": "  "})

    assert exc_info.value.issues[0].code == "RECIPE_NAME_REQUIRED"
    # La validación corre antes del archivado
    assert list_recipe_versions(session, active_recipe.id) == []


def test_save_changes_on_archived_copy_is_conflict(session, active_recipe):
    result = archive_and_advance(session, active_recipe.id)

    with pytest.raises(ConflictError):
        save_recipe_changes(session, result.archived_id, None, {"name": "Edited"})


def test_status_draft_to_active_requires_lines(session, prep_recipe):
    with pytest.raises(ValidationFailureError):
        set_recipe_status(session, prep_recipe.id, "active")


def test_status_round_trip(session, active_recipe):
    assert set_recipe_status(session, active_recipe.id, "draft") == RecipeStatus.DRAFT
    assert active_recipe.recipe_status == RecipeStatus.DRAFT
    assert active_recipe.is_active is False

    assert set_recipe_status(session, active_recipe.id, RecipeStatus.ACTIVE) == RecipeStatus.ACTIVE
    assert active_recipe.is_active is True
    assert active_recipe.version_number == pytest.approx(1.0)


def test_status_archived_is_not_a_transition(session, active_recipe):
    with pytest.raises(ConflictError):
        set_recipe_status(session, active_recipe.id, "archived")


def test_status_invalid_value(session, active_recipe):
    with pytest.raises(ValidationFailureError):
        set_recipe_status(session, active_recipe.id, "published")


def test_archived_rows_excluded_from_live_lookup(session, active_recipe, brioche):
    archive_and_advance(session, active_recipe.id)

    stmt = select(Recipe).where(
        Recipe.output_ingredient_id == brioche.id,
        Recipe.recipe_status != RecipeStatus.ARCHIVED,
    )
    assert [r.id for r in session.execute(stmt).scalars()] == [active_recipe.id]
