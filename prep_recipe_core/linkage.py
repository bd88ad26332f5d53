"""
Resolución del enlace ingrediente <-> receta cuando cambia el flag "prep item".

- Activar: reutiliza la receta viva del ingrediente (FOUND) o crea un
  placeholder (CREATED).
- Desactivar: apaga la receta (`is_active=False`) sin archivarla ni borrar el
  enlace, y limpia el flag del ingrediente (DISABLED).

Este módulo no genera documentos: solo toca filas de Ingredient y Recipe.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from .db.helpers import find_live_recipe_for_output, get_ingredient, get_live_document_for_recipe, resolve_linked_recipe
from .db.models import Recipe, RecipeStatus
from .placeholders import create_recipe_placeholder, link_ingredient_best_effort

logger = logging.getLogger(__name__)


class LinkageAction(str, enum.Enum):
    FOUND = "found"
    CREATED = "created"
    DISABLED = "disabled"


@dataclass
class LinkageResult:
    """
    Resultado de `resolve_prep_item`.
    """
    action: LinkageAction
    recipe_id: Optional[str] = None
    document_id: Optional[str] = None


def _document_id(session: Session, recipe: Recipe | None) -> str | None:
    if recipe is None:
        return None
    document = get_live_document_for_recipe(session, recipe)
    return document.id if document is not None else None


def _disable(session: Session, ingredient_id: str) -> LinkageResult:
    ingredient = get_ingredient(session, ingredient_id)

    recipe = resolve_linked_recipe(session, ingredient)
    if recipe is None:
        recipe = find_live_recipe_for_output(session, ingredient.id, ingredient.company_id)

    now = datetime.utcnow()
    if recipe is not None:
        recipe.is_active = False
        recipe.updated_at = now
        logger.info(f"Receta {recipe.id} desactivada (ingrediente {ingredient.id} deja de ser prep item)")

    # El enlace se conserva para poder reactivar la misma receta
    ingredient.is_prep_item = False
    ingredient.updated_at = now
    session.flush()

    return LinkageResult(
        action=LinkageAction.DISABLED,
        recipe_id=recipe.id if recipe is not None else None,
        document_id=_document_id(session, recipe),
    )


def _enable(session: Session, ingredient_id: str, user_id: str | None) -> LinkageResult:
    ingredient = get_ingredient(session, ingredient_id)

    recipe = find_live_recipe_for_output(session, ingredient.id, ingredient.company_id)
    if recipe is not None:
        # Reactivación de un prep item deshabilitado antes
        if recipe.recipe_status == RecipeStatus.ACTIVE and not recipe.is_active:
            recipe.is_active = True
            recipe.updated_at = datetime.utcnow()
            session.flush()
        link_ingredient_best_effort(session, ingredient, recipe)
        logger.info(f"Ingrediente {ingredient.id} re-enlazado a receta existente {recipe.id}")
        return LinkageResult(
            action=LinkageAction.FOUND,
            recipe_id=recipe.id,
            document_id=_document_id(session, recipe),
        )

    recipe_id = create_recipe_placeholder(session, ingredient.id, ingredient.company_id, user_id)
    return LinkageResult(
        action=LinkageAction.CREATED,
        recipe_id=recipe_id,
        document_id=None,
    )


def resolve_prep_item(
    session: Session,
    ingredient_id: str,
    set_prep_item: bool,
    user_id: str | None = None,
) -> LinkageResult:
    """
    Aplica el cambio del flag "prep item" de un ingrediente.

    Args:
        session: Sesión de base de datos
        ingredient_id: ID del ingrediente
        set_prep_item: Nuevo valor del flag
        user_id: Usuario que dispara el cambio

    Returns:
        LinkageResult con la acción tomada y la receta resultante

    Raises:
        NotFoundError: Si el ingrediente no existe
    """
    if set_prep_item:
        return _enable(session, ingredient_id, user_id)
    return _disable(session, ingredient_id)
