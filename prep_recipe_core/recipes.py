"""
Operaciones de edición de recetas usadas por el editor de recetas y el
editor de líneas.

- `save_recipe_line` / `delete_recipe_line`: guardan líneas y disparan la
  generación del documento (primera línea) o su re-sincronización.
- `save_recipe_changes`: guarda cambios de una receta; si está activa,
  archiva primero y después aplica los cambios.
- `set_recipe_status`: transición simple draft <-> active sin cambios de contenido.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from .db.helpers import best_effort, count_recipe_lines, get_ingredient, get_recipe
from .db.models import RecipeLine, RecipeStatus, RecipeType, dump_json, load_json_list
from .errors import ConflictError, NotFoundError, ValidationFailureError
from .procedures.generator import generate_on_first_line, mark_document_stale, sync_procedure_document
from .validation import ValidationResult, validate_ingredient_line, validate_recipe_data, validate_version_match
from .versioning import ArchiveResult, archive_and_advance

logger = logging.getLogger(__name__)

# Campos editables desde el editor de recetas
EDITABLE_FIELDS = {
    "name",
    "description",
    "recipe_type",
    "yield_qty",
    "yield_unit",
    "total_cost",
    "allergens",
    "storage_requirements",
    "shelf_life_days",
}


@dataclass
class LineSaveResult:
    line_id: str
    document_id: Optional[str]
    created_document: bool = False


def _raise_if_invalid(result: ValidationResult, what: str) -> None:
    if not result.valid:
        detail = "; ".join(f"{e.field}: {e.message}" for e in result.errors)
        raise ValidationFailureError(f"{what} inválida: {detail}", issues=result.errors)


def _resync_document(session: Session, recipe, user_id: Optional[str]) -> Optional[str]:
    document = mark_document_stale(session, recipe)
    if document is None:
        return None
    # Si falla queda needs_update=True para reintentar
    with best_effort(session, f"sincronizar documento {document.id}"):
        sync_procedure_document(session, recipe.id, user_id)
    return document.id


def save_recipe_line(
    session: Session,
    recipe_id: str,
    ingredient_id: str,
    quantity: float,
    unit: str,
    allergens: Optional[Iterable[str]] = None,
    user_id: Optional[str] = None,
    line_id: Optional[str] = None,
) -> LineSaveResult:
    """
    Crea o actualiza una línea de ingrediente y dispara el documento.

    Args:
        session: Sesión de base de datos
        recipe_id: ID de la receta viva
        ingredient_id: Ingrediente de la línea
        quantity: Cantidad (> 0)
        unit: Unidad
        allergens: Alérgenos de la línea (None = los del ingrediente)
        user_id: Usuario que guarda
        line_id: Si se indica, actualiza esa línea

    Returns:
        LineSaveResult con el id de la línea y del documento (si existe)

    Raises:
        NotFoundError: Receta, ingrediente o línea inexistentes
        ConflictError: Si la receta está archivada
        ValidationFailureError: Cantidad/unidad inválidas o receta que se usa a sí misma
    """
    recipe = get_recipe(session, recipe_id)
    if recipe.is_archived:
        raise ConflictError(f"La receta {recipe_id} está archivada")

    result = ValidationResult()
    validate_ingredient_line(result, "line", {"ingredient_id": ingredient_id, "quantity": quantity, "unit": unit})
    if ingredient_id and ingredient_id == recipe.output_ingredient_id:
        result.error("line", "A recipe cannot use its own output ingredient", "INGREDIENT_SELF_REFERENCE")
    _raise_if_invalid(result, "Línea")

    ingredient = get_ingredient(session, ingredient_id)
    if ingredient.company_id != recipe.company_id:
        raise NotFoundError("Ingrediente", ingredient_id)

    line_allergens = list(allergens) if allergens is not None else load_json_list(ingredient.allergens_json)

    if line_id:
        line = session.get(RecipeLine, line_id)
        if line is None or line.recipe_id != recipe.id:
            raise NotFoundError("Línea", line_id)
    else:
        line = RecipeLine(recipe_id=recipe.id, sort_order=count_recipe_lines(session, recipe.id))
        session.add(line)

    line.ingredient_id = ingredient.id
    line.quantity = float(quantity)
    line.unit = unit.strip()
    line.allergens_json = dump_json(line_allergens)
    session.flush()

    document_id = generate_on_first_line(session, recipe.id, recipe.company_id, user_id)
    if document_id is not None:
        return LineSaveResult(line_id=line.id, document_id=document_id, created_document=True)

    return LineSaveResult(line_id=line.id, document_id=_resync_document(session, recipe, user_id))


def delete_recipe_line(session: Session, line_id: str, user_id: Optional[str] = None) -> None:
    """
    Borra una línea de una receta viva y re-sincroniza su documento.
    """
    line = session.get(RecipeLine, line_id)
    if line is None:
        raise NotFoundError("Línea", line_id)
    recipe = get_recipe(session, line.recipe_id)
    if recipe.is_archived:
        raise ConflictError(f"La línea {line_id} pertenece a una receta archivada")

    session.delete(line)
    session.flush()
    _resync_document(session, recipe, user_id)


def _apply_changes(recipe, changes: Dict[str, Any]) -> None:
    for key, value in changes.items():
        if key == "allergens":
            recipe.allergens_json = dump_json(list(value or []))
        elif key == "recipe_type":
            recipe.recipe_type = RecipeType(value)
        else:
            setattr(recipe, key, value)


def save_recipe_changes(
    session: Session,
    recipe_id: str,
    user_id: Optional[str],
    changes: Dict[str, Any],
    notes: Optional[str] = None,
    expected_version: Optional[float] = None,
) -> Optional[ArchiveResult]:
    """
    Guarda cambios de contenido de una receta.

    Si la receta está activa, se archiva su estado actual ANTES de aplicar los
    cambios; una receta draft se modifica directamente.

    Returns:
        ArchiveResult si hubo archivado, None para recetas draft

    Raises:
        NotFoundError: Si la receta no existe
        ConflictError: Receta archivada o versión desactualizada
        ValidationFailureError: Campos desconocidos o datos inválidos
    """
    recipe = get_recipe(session, recipe_id)
    if recipe.is_archived:
        raise ConflictError(f"La receta {recipe_id} es una copia archivada")

    if not validate_version_match(expected_version, recipe.version_number):
        raise ConflictError(
            f"La receta {recipe_id} está en la versión {recipe.version_number:.1f}, "
            f"no en {float(expected_version):.1f}"
        )

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationFailureError(f"Campos no editables: {', '.join(sorted(unknown))}")

    merged = {
        "name": changes.get("name", recipe.name),
        "recipe_type": changes.get("recipe_type", recipe.recipe_type),
    }
    _raise_if_invalid(validate_recipe_data(merged), "Receta")

    archive = None
    if recipe.recipe_status == RecipeStatus.ACTIVE:
        archive = archive_and_advance(session, recipe.id, user_id, notes)

    _apply_changes(recipe, changes)
    recipe.updated_at = datetime.utcnow()
    session.flush()

    _resync_document(session, recipe, user_id)
    logger.info(f"Cambios guardados en receta {recipe.id} (v{recipe.version_number:.1f})")
    return archive


def set_recipe_status(session: Session, recipe_id: str, status: RecipeStatus | str) -> RecipeStatus:
    """
    Cambia el estado draft <-> active sin tocar contenido ni versión.

    Raises:
        ConflictError: Si la receta o el estado destino es archived
        ValidationFailureError: Activar una receta sin líneas / estado inválido
    """
    try:
        target = RecipeStatus(status)
    except ValueError as e:
        raise ValidationFailureError(f"Estado de receta inválido: {status}") from e

    recipe = get_recipe(session, recipe_id)
    if recipe.is_archived:
        raise ConflictError(f"La receta {recipe_id} es una copia archivada")
    if target == RecipeStatus.ARCHIVED:
        raise ConflictError("Las recetas solo se archivan como copia (archive_and_advance)")
    if target == RecipeStatus.ACTIVE and count_recipe_lines(session, recipe.id) == 0:
        raise ValidationFailureError(f"La receta {recipe_id} no tiene líneas; no puede activarse")

    recipe.recipe_status = target
    recipe.is_active = target == RecipeStatus.ACTIVE
    recipe.updated_at = datetime.utcnow()
    session.flush()
    return target
