"""
Creación idempotente de la receta "placeholder" de un prep item.

`create_recipe_placeholder` puede llamarse varias veces (reintentos, dos
toggles seguidos) y siempre devuelve la misma receta viva:

1. Si el enlace del ingrediente sigue resolviendo a una receta viva, la devuelve.
2. Si existe una receta viva que produce el ingrediente (enlace roto o
   faltante), repara el enlace y la devuelve.
3. Si no, genera un código e inserta una receta draft nueva dentro de un
   SAVEPOINT; el índice `uq_recipes_live_output` detecta la carrera con otro
   llamado concurrente y en ese caso se devuelve la receta ganadora.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .codes import generate_recipe_code
from .db.helpers import best_effort, find_live_recipe_for_output, get_ingredient, resolve_linked_recipe
from .db.models import Ingredient, Recipe, RecipeStatus, RecipeType, dump_json, load_json_list
from .errors import ConflictError, NotFoundError, StoreFailureError

logger = logging.getLogger(__name__)

# Nombre del índice (PostgreSQL) o columnas del índice (SQLite) en el mensaje del driver
_LIVE_OUTPUT_MARKERS = ("uq_recipes_live_output", "recipes.company_id, recipes.output_ingredient_id")


def _link_ingredient(ingredient: Ingredient, recipe: Recipe) -> None:
    ingredient.linked_recipe_id = recipe.id
    ingredient.is_prep_item = True
    ingredient.updated_at = datetime.utcnow()


def link_ingredient_best_effort(session: Session, ingredient: Ingredient, recipe: Recipe) -> None:
    """
    Enlaza ingrediente -> receta sin deshacer la escritura principal si falla.
    """
    if ingredient.linked_recipe_id == recipe.id and ingredient.is_prep_item:
        return
    with best_effort(session, f"enlazar ingrediente {ingredient.id} con receta {recipe.id}"):
        _link_ingredient(ingredient, recipe)


def _is_live_output_violation(error: IntegrityError) -> bool:
    message = str(error.orig)
    return any(marker in message for marker in _LIVE_OUTPUT_MARKERS)


def _new_placeholder(ingredient: Ingredient, company_id: str, user_id: str | None, code: str) -> Recipe:
    return Recipe(
        company_id=company_id,
        name=ingredient.name,
        code=code,
        recipe_type=RecipeType.PREP,
        recipe_status=RecipeStatus.DRAFT,
        output_ingredient_id=ingredient.id,
        version_number=1.0,
        is_active=False,
        total_cost=0.0,
        yield_qty=1.0,
        yield_unit=ingredient.base_unit,
        allergens_json=dump_json(load_json_list(ingredient.allergens_json)),
        created_by=user_id,
        created_at=datetime.utcnow(),
    )


def create_recipe_placeholder(
    session: Session,
    ingredient_id: str,
    company_id: str,
    user_id: str | None = None,
) -> str:
    """
    Crea (o recupera) la receta draft que produce `ingredient_id`.

    Args:
        session: Sesión de base de datos
        ingredient_id: ID del ingrediente de salida
        company_id: Empresa dueña del ingrediente
        user_id: Usuario que dispara la creación (se guarda en created_by)

    Returns:
        ID de la receta viva del ingrediente

    Raises:
        NotFoundError: Si el ingrediente no existe en la empresa
        ValidationFailureError: Si el ingrediente no tiene nombre
        StoreFailureError: Si falla el INSERT de la receta
    """
    ingredient = get_ingredient(session, ingredient_id)
    if ingredient.company_id != company_id:
        raise NotFoundError("Ingrediente", ingredient_id)

    # 1. Enlace existente
    linked = resolve_linked_recipe(session, ingredient)
    if linked is not None:
        return linked.id

    # 2. Receta viva con enlace roto o faltante
    existing = find_live_recipe_for_output(session, ingredient.id, company_id)
    if existing is not None:
        logger.info(f"Reparando enlace del ingrediente {ingredient.id} -> receta {existing.id}")
        link_ingredient_best_effort(session, ingredient, existing)
        return existing.id

    # 3. Receta nueva
    code = generate_recipe_code(session, ingredient.name, company_id)
    savepoint = session.begin_nested()
    try:
        recipe = _new_placeholder(ingredient, company_id, user_id, code)
        session.add(recipe)
        session.flush()
        savepoint.commit()
    except IntegrityError as e:
        savepoint.rollback()
        if not _is_live_output_violation(e):
            raise StoreFailureError(f"Error al crear la receta de {ingredient.id}: {e}") from e
        # Otro llamado concurrente creó la receta primero
        winner = find_live_recipe_for_output(session, ingredient.id, company_id)
        if winner is None:
            raise ConflictError(f"Conflicto creando la receta del ingrediente {ingredient.id}") from e
        logger.info(f"Receta {winner.id} creada en paralelo para {ingredient.id}; se reutiliza")
        link_ingredient_best_effort(session, ingredient, winner)
        return winner.id
    except SQLAlchemyError as e:
        savepoint.rollback()
        raise StoreFailureError(f"Error al crear la receta de {ingredient.id}: {e}") from e

    logger.info(f"Receta placeholder {recipe.code} ({recipe.id}) creada para ingrediente {ingredient.id}")

    # Si el enlace falla, el paso 2 lo repara en el próximo llamado
    link_ingredient_best_effort(session, ingredient, recipe)
    return recipe.id
