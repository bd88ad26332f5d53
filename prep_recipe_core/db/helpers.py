"""
Funciones helper de acceso a datos compartidas por los servicios del core.

Estas funciones facilitan:
- Lecturas puntuales que deben fallar con NotFoundError
- Búsquedas de la receta viva de un ingrediente
- Pasos "best-effort" que no deben deshacer una escritura principal
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..errors import NotFoundError
from .models import (
    LIVE_RECIPE_STATUSES,
    DocumentStatus,
    Ingredient,
    ProcedureDocument,
    Recipe,
    RecipeLine,
    User,
)

logger = logging.getLogger(__name__)


def get_ingredient(session: Session, ingredient_id: str) -> Ingredient:
    """
    Obtiene un ingrediente por ID.

    Raises:
        NotFoundError: Si el ingrediente no existe
    """
    ingredient = session.get(Ingredient, ingredient_id)
    if ingredient is None:
        raise NotFoundError("Ingrediente", ingredient_id)
    return ingredient


def get_recipe(session: Session, recipe_id: str, for_update: bool = False) -> Recipe:
    """
    Obtiene una receta por ID (viva o archivada).

    Args:
        session: Sesión de base de datos
        recipe_id: ID de la receta
        for_update: Si True, bloquea la fila (SELECT ... FOR UPDATE) en los
            dialectos que lo soportan

    Raises:
        NotFoundError: Si la receta no existe
    """
    stmt = select(Recipe).where(Recipe.id == recipe_id)
    if for_update:
        stmt = stmt.with_for_update()
    recipe = session.execute(stmt).scalar_one_or_none()
    if recipe is None:
        raise NotFoundError("Receta", recipe_id)
    return recipe


def get_document(session: Session, document_id: str) -> ProcedureDocument:
    document = session.get(ProcedureDocument, document_id)
    if document is None:
        raise NotFoundError("Documento", document_id)
    return document


def find_live_recipe_for_output(
    session: Session,
    ingredient_id: str,
    company_id: str | None = None,
) -> Recipe | None:
    """
    Busca la receta viva (draft o active) que produce un ingrediente.

    La regla de una sola receta viva por (empresa, ingrediente) la garantiza el
    índice `uq_recipes_live_output`; igualmente se ordena por fecha para que el
    resultado sea determinista en bases sin el índice.
    """
    stmt = (
        select(Recipe)
        .where(
            Recipe.output_ingredient_id == ingredient_id,
            Recipe.recipe_status.in_(LIVE_RECIPE_STATUSES),
        )
        .order_by(Recipe.created_at.asc())
    )
    if company_id is not None:
        stmt = stmt.where(Recipe.company_id == company_id)
    return session.execute(stmt).scalars().first()


def resolve_linked_recipe(session: Session, ingredient: Ingredient) -> Recipe | None:
    """
    Devuelve la receta enlazada al ingrediente solo si sigue siendo válida:
    existe, está viva y produce este ingrediente.
    """
    if not ingredient.linked_recipe_id:
        return None
    recipe = session.get(Recipe, ingredient.linked_recipe_id)
    if recipe is None or recipe.is_archived:
        return None
    if recipe.output_ingredient_id != ingredient.id:
        return None
    return recipe


def count_recipe_lines(session: Session, recipe_id: str) -> int:
    stmt = select(func.count(RecipeLine.id)).where(RecipeLine.recipe_id == recipe_id)
    return session.execute(stmt).scalar_one()


def get_recipe_lines(session: Session, recipe_id: str) -> list[RecipeLine]:
    stmt = (
        select(RecipeLine)
        .where(RecipeLine.recipe_id == recipe_id)
        .order_by(RecipeLine.sort_order.asc(), RecipeLine.created_at.asc())
    )
    return list(session.execute(stmt).scalars())


def get_live_document_for_recipe(session: Session, recipe: Recipe) -> ProcedureDocument | None:
    """
    Documento vivo de una receta: primero por `linked_document_id`, luego por
    el puntero inverso `linked_recipe_id`.
    """
    if recipe.linked_document_id:
        document = session.get(ProcedureDocument, recipe.linked_document_id)
        if document is not None and not document.is_archived:
            return document

    stmt = (
        select(ProcedureDocument)
        .where(
            ProcedureDocument.linked_recipe_id == recipe.id,
            ProcedureDocument.status == DocumentStatus.DRAFT,
        )
        .order_by(ProcedureDocument.created_at.asc())
    )
    return session.execute(stmt).scalars().first()


def get_user_display_name(session: Session, user_id: str | None) -> str:
    """
    Nombre visible del usuario: nombre completo -> email -> "System".
    """
    fallback = get_settings().system_author_name
    if not user_id:
        return fallback

    try:
        user = session.get(User, user_id)
    except SQLAlchemyError as e:
        logger.warning(f"No se pudo leer el usuario {user_id}: {e}")
        return fallback

    if user is None:
        return fallback
    if user.full_name and user.full_name.strip():
        return user.full_name.strip()
    if user.email and user.email.strip():
        return user.email.strip()
    return fallback


@contextmanager
def best_effort(session: Session, description: str) -> Iterator[None]:
    """
    Ejecuta un paso secundario dentro de un SAVEPOINT.

    Si el paso falla, se hace rollback solo del savepoint y se loguea: la
    escritura principal ya realizada queda intacta. El próximo llamado
    reconcilia el estado (ver `create_recipe_placeholder`, paso 2).
    """
    savepoint = session.begin_nested()
    try:
        yield
        session.flush()
    except SQLAlchemyError:
        savepoint.rollback()
        logger.exception(f"Paso best-effort falló: {description}")
    except Exception:
        savepoint.rollback()
        raise
    else:
        savepoint.commit()
