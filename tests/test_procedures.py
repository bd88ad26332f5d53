"""
Tests de generación y sincronización del documento de procedimiento.

Prueba:
- El documento se crea solo en la transición 0 -> 1 líneas (uno vivo por receta, también a nivel DB)
- Contenido (header, tabla) y metadata construidos desde el mismo snapshot
- Unión de alérgenos sin duplicados
- Sincronización posterior que conserva secciones cargadas a mano
- Export a Markdown
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from prep_recipe_core.db.models import (
    DocumentStatus,
    ProcedureDocument,
    RecipeLine,
    RecipeStatus,
    User,
    dump_json,
    load_json_dict,
)
from prep_recipe_core.errors import NotFoundError
from prep_recipe_core.procedures import generate_on_first_line, generator, render_procedure_markdown, sync_procedure_document
from prep_recipe_core.procedures.builder import ALLERGEN_BANNER, allergen_union, build_safety_notes, snapshot_recipe
from prep_recipe_core.procedures.models import format_quantity
from prep_recipe_core.procedures.template import EQUIPMENT_LIST, INGREDIENT_TABLE, PREP_HEADER, PROCESS_STEPS, find_node
from prep_recipe_core.recipes import delete_recipe_line, save_recipe_line

from conftest import OTHER_COMPANY_ID


def _document_count(session, recipe_id):
    stmt = select(func.count(ProcedureDocument.id)).where(ProcedureDocument.linked_recipe_id == recipe_id)
    return session.execute(stmt).scalar_one()


def _content(document):
    return load_json_dict(document.content_json)


def test_first_line_creates_document(session, prep_recipe, flour, chef):
    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g", user_id=chef.id)

    assert result.created_document is True
    document = session.get(ProcedureDocument, result.document_id)

    assert document.title == "Brioche Bun"
    assert document.code == "REC-BRI-001"
    assert document.category == "Food Prep"
    assert document.status == DocumentStatus.DRAFT
    assert document.version_number == pytest.approx(1.0)
    assert document.linked_recipe_id == prep_recipe.id
    assert document.created_by == chef.id
    assert document.needs_update is False
    assert document.last_synced_with_recipe_at is not None

    # Enlace bidireccional y receta activada
    assert prep_recipe.linked_document_id == document.id
    assert prep_recipe.recipe_status == RecipeStatus.ACTIVE
    assert prep_recipe.is_active is True


def test_later_lines_do_not_create_another_document(session, prep_recipe, flour, butter):
    first = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    second = save_recipe_line(session, prep_recipe.id, butter.id, 120, "g")

    assert second.created_document is False
    assert second.document_id == first.document_id
    assert _document_count(session, prep_recipe.id) == 1


def test_generate_skips_unless_exactly_one_line(session, prep_recipe, flour, butter):
    assert generate_on_first_line(session, prep_recipe.id, prep_recipe.company_id) is None

    save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    save_recipe_line(session, prep_recipe.id, butter.id, 120, "g")

    assert generate_on_first_line(session, prep_recipe.id, prep_recipe.company_id) is None
    assert _document_count(session, prep_recipe.id) == 1


def test_generate_is_skipped_when_document_exists(session, prep_recipe, flour):
    save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")

    assert generate_on_first_line(session, prep_recipe.id, prep_recipe.company_id) is None
    assert _document_count(session, prep_recipe.id) == 1


def test_second_live_document_rejected_by_db(session, prep_recipe, flour):
    save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    session.add(
        ProcedureDocument(
            company_id=prep_recipe.company_id,
            title="Brioche Bun",
            status=DocumentStatus.DRAFT,
            linked_recipe_id=prep_recipe.id,
        )
    )

    with pytest.raises(IntegrityError):
        session.flush()
    session.rollback()


def test_generate_skips_when_document_created_concurrently(session, prep_recipe, flour, monkeypatch):
    first = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")

    # Simula que el otro llamado insertó después de nuestra búsqueda
    monkeypatch.setattr(generator, "get_live_document_for_recipe", lambda session, recipe: None)

    assert generate_on_first_line(session, prep_recipe.id, prep_recipe.company_id) is None
    assert _document_count(session, prep_recipe.id) == 1
    assert prep_recipe.linked_document_id == first.document_id


def test_generate_for_other_company_is_not_found(session, prep_recipe, flour):
    session.add(RecipeLine(recipe_id=prep_recipe.id, ingredient_id=flour.id, quantity=1, unit="g"))
    session.flush()

    with pytest.raises(NotFoundError):
        generate_on_first_line(session, prep_recipe.id, OTHER_COMPANY_ID)


def test_header_and_ingredient_table(session, prep_recipe, flour, chef):
    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g", user_id=chef.id)
    content = _content(session.get(ProcedureDocument, result.document_id))

    header = content["content"][0]
    assert header["type"] == PREP_HEADER
    attrs = header["attrs"]
    assert attrs["title"] == "Brioche Bun"
    assert attrs["ref_code"] == "REC-BRI-001"
    assert attrs["version"] == "1.0"
    assert attrs["status"] == "Draft"
    assert attrs["sopType"] == "Prep"
    assert attrs["author"] == "Chef Demo"
    assert attrs["yieldValue"] == 1.0
    assert attrs["unit"] == "each"

    table = content["content"][1]
    assert table["type"] == INGREDIENT_TABLE
    assert table["attrs"]["rows"] == [
        {
            "ingredient": "Flour",
            "quantity": "500",
            "unit": "g",
            "supplier": "Molino Norte",
            "allergen": ["gluten"],
            "prepState": "",
            "useByDate": "",
            "costPerUnit": "",
            "photo": None,
        }
    ]


def test_print_metadata_matches_content(session, prep_recipe, flour):
    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    metadata = load_json_dict(session.get(ProcedureDocument, result.document_id).metadata_json)

    assert metadata["recipe"]["name"] == "Brioche Bun"
    assert metadata["recipe"]["code"] == "REC-BRI-001"
    assert metadata["recipe"]["allergens"] == ["gluten"]
    assert metadata["ingredients"] == [
        {
            "ingredient_name": "Flour",
            "quantity": 500.0,
            "unit": "g",
            "supplier": "Molino Norte",
            "allergens": ["gluten"],
        }
    ]
    assert metadata["equipment"] == []
    assert metadata["method_steps"] == []


def test_allergen_union_across_lines(session, prep_recipe, flour, butter, lecithin):
    save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    save_recipe_line(session, prep_recipe.id, butter.id, 120, "g")
    result = save_recipe_line(session, prep_recipe.id, lecithin.id, 2, "g")

    document = session.get(ProcedureDocument, result.document_id)
    allergens = _content(document)["content"][0]["attrs"]["allergens"]

    # "Gluten" de la lecitina no se duplica
    assert allergens == ["gluten", "milk", "soy"]
    assert set(load_json_dict(document.metadata_json)["recipe"]["allergens"]) == {"gluten", "milk", "soy"}


def test_allergen_union_includes_recipe_allergens():
    assert allergen_union(["Sesame"], [["milk"], [], None, ["sesame", "egg"]]) == ["Sesame", "milk", "egg"]


def test_line_allergens_override_ingredient(session, prep_recipe, butter):
    result = save_recipe_line(session, prep_recipe.id, butter.id, 120, "g", allergens=["milk", "sulphites"])
    attrs = _content(session.get(ProcedureDocument, result.document_id))["content"][0]["attrs"]

    assert attrs["allergens"] == ["milk", "sulphites"]


def test_safety_notes_banner(session, prep_recipe, flour):
    prep_recipe.storage_requirements = "Refrigerate"
    prep_recipe.shelf_life_days = 3
    session.flush()
    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")

    notes = _content(session.get(ProcedureDocument, result.document_id))["content"][0]["attrs"]["safetyNotes"]

    assert notes.startswith(ALLERGEN_BANNER)
    assert "This recipe contains: gluten" in notes
    assert "Storage: Refrigerate" in notes
    assert "Shelf Life: 3 days" in notes


def test_safety_notes_empty_without_allergens_or_storage(prep_recipe):
    snapshot = snapshot_recipe(prep_recipe, [])
    assert build_safety_notes(snapshot) == ""


def test_author_falls_back_to_email(session, prep_recipe, flour):
    anonymous = User(email="cook@test.local", full_name="  ")
    session.add(anonymous)
    session.flush()

    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g", user_id=anonymous.id)
    attrs = _content(session.get(ProcedureDocument, result.document_id))["content"][0]["attrs"]
    assert attrs["author"] == "cook@test.local"


def test_author_is_system_without_user(session, prep_recipe, flour):
    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    attrs = _content(session.get(ProcedureDocument, result.document_id))["content"][0]["attrs"]

    assert attrs["author"] == "System"


def test_sync_keeps_manual_sections(session, prep_recipe, flour, butter):
    first = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    document = session.get(ProcedureDocument, first.document_id)

    # Equipamiento y pasos cargados a mano en el editor
    content = _content(document)
    find_node(content, EQUIPMENT_LIST)["attrs"]["rows"] = [{"item": "Stand mixer"}]
    find_node(content, PROCESS_STEPS)["attrs"]["steps"] = [{"description": "Mix the dough"}]
    document.content_json = dump_json(content)
    session.flush()

    save_recipe_line(session, prep_recipe.id, butter.id, 120, "g")

    content = _content(document)
    assert find_node(content, EQUIPMENT_LIST)["attrs"]["rows"] == [{"item": "Stand mixer"}]
    assert [r["ingredient"] for r in find_node(content, INGREDIENT_TABLE)["attrs"]["rows"]] == ["Flour", "Butter"]

    metadata = load_json_dict(document.metadata_json)
    assert metadata["equipment"] == ["Stand mixer"]
    assert metadata["method_steps"] == ["Mix the dough"]
    assert document.needs_update is False


def test_delete_line_resyncs_document(session, prep_recipe, flour, butter):
    save_recipe_line(session, prep_recipe.id, flour.id, 500, "g")
    second = save_recipe_line(session, prep_recipe.id, butter.id, 120, "g")

    delete_recipe_line(session, second.line_id)

    document = session.get(ProcedureDocument, second.document_id)
    rows = find_node(_content(document), INGREDIENT_TABLE)["attrs"]["rows"]
    assert [r["ingredient"] for r in rows] == ["Flour"]


def test_sync_without_document_returns_none(session, prep_recipe):
    assert sync_procedure_document(session, prep_recipe.id) is None


def test_render_markdown(session, prep_recipe, flour, chef):
    result = save_recipe_line(session, prep_recipe.id, flour.id, 500, "g", user_id=chef.id)
    markdown = render_procedure_markdown(session.get(ProcedureDocument, result.document_id))

    assert markdown.startswith("# Brioche Bun\n")
    assert "- **Code:** REC-BRI-001" in markdown
    assert "- **Version:** 1.0" in markdown
    assert "- **Author:** Chef Demo" in markdown
    assert "## Safety notes" in markdown
    assert "| Flour | 500 | g | Molino Norte | gluten |" in markdown
    assert "## Equipment" not in markdown


@pytest.mark.parametrize("value, expected", [(500.0, "500"), (0.25, "0.25"), (1.5, "1.5"), (None, "0")])
def test_format_quantity(value, expected):
    assert format_quantity(value) == expected
