"""
Motor de archivado de versiones de recetas y documentos.

`archive_and_advance` congela el estado actual de una receta viva en una copia
archivada (con copia independiente de sus líneas) y avanza la versión viva en
0.1. Si la receta tiene documento, el documento se archiva y avanza igual.

Reglas
------
- La fila viva nunca cambia de id; solo se acumulan copias archivadas.
- La copia archivada lleva la versión previa al incremento.
- El archivado precede a cualquier modificación: si la receta (o sus líneas)
  tiene cambios sin flush en la sesión, se rechaza con ConflictError. Lo ya
  escrito con flush en la misma transacción no se detecta; los llamadores
  archivan antes de modificar (ver `save_recipe_changes`).
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import inspect, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .db.helpers import get_document, get_live_document_for_recipe, get_recipe, get_recipe_lines
from .db.models import (
    DocumentStatus,
    ProcedureDocument,
    Recipe,
    RecipeLine,
    RecipeStatus,
)
from .errors import ConflictError, StoreFailureError

logger = logging.getLogger(__name__)

VERSION_STEP = 0.1

# Columnas que no se copian tal cual al archivar
_RECIPE_SNAPSHOT_EXCLUDED = {
    "id",
    "recipe_status",
    "is_active",
    "archived_from_recipe_id",
    "archived_at",
    "archived_by",
    "archive_notes",
}
_LINE_SNAPSHOT_EXCLUDED = {"id", "recipe_id"}
_DOCUMENT_SNAPSHOT_EXCLUDED = {
    "id",
    "status",
    "archived_from_document_id",
    "archived_at",
    "archived_by",
}


@dataclass
class ArchiveResult:
    """
    Resultado de un archivado.

    `live_id` es siempre el id de la fila viva (no cambia).
    """
    live_id: str
    archived_id: str
    live_version: float
    archived_version: float
    archived_document_id: Optional[str] = None


def next_version(version: float | None) -> float:
    """1.0 -> 1.1, 1.9 -> 2.0 (redondeado a un decimal)."""
    return round(float(version or 1.0) + VERSION_STEP, 1)


def _column_values(obj, excluded: set[str]) -> dict:
    return {
        attr.key: getattr(obj, attr.key)
        for attr in inspect(type(obj)).column_attrs
        if attr.key not in excluded
    }


def _assert_no_pending_changes(session: Session, recipe: Recipe) -> None:
    if recipe in session.dirty and session.is_modified(recipe, include_collections=False):
        raise ConflictError(
            f"La receta {recipe.id} tiene cambios sin guardar; el archivado debe hacerse antes de modificarla"
        )
    for obj in list(session.dirty) + list(session.new):
        if isinstance(obj, RecipeLine) and obj.recipe_id == recipe.id:
            raise ConflictError(
                f"La receta {recipe.id} tiene líneas modificadas sin guardar; archivar antes de editar"
            )


def _archive_document(
    session: Session,
    document: ProcedureDocument,
    user_id: Optional[str],
    now: datetime,
) -> str:
    archived = ProcedureDocument(
        id=str(uuid.uuid4()),
        **_column_values(document, _DOCUMENT_SNAPSHOT_EXCLUDED),
        status=DocumentStatus.ARCHIVED,
        archived_from_document_id=document.id,
        archived_at=now,
        archived_by=user_id,
    )
    session.add(archived)

    document.version_number = next_version(document.version_number)
    # El header del contenido todavía muestra la versión anterior
    document.needs_update = True
    document.updated_at = now
    return archived.id


def archive_document_and_advance(
    session: Session,
    document_id: str,
    user_id: Optional[str] = None,
) -> tuple[str, str]:
    """
    Archiva un documento de procedimiento vivo y avanza su versión en 0.1.

    Todo el registro es la unidad de snapshot (el contenido es un único JSON).

    Returns:
        (id del documento vivo, id de la copia archivada)

    Raises:
        NotFoundError: Si el documento no existe
        ConflictError: Si el documento ya es una copia archivada
    """
    document = get_document(session, document_id)
    if document.is_archived:
        raise ConflictError(f"El documento {document_id} es una copia archivada")

    now = datetime.utcnow()
    try:
        with session.begin_nested():
            archived_id = _archive_document(session, document, user_id, now)
            session.flush()
    except SQLAlchemyError as e:
        raise StoreFailureError(f"Error al archivar el documento {document_id}: {e}") from e

    logger.info(f"Documento {document.id} archivado como {archived_id}; versión viva {document.version_number:.1f}")
    return document.id, archived_id


def archive_and_advance(
    session: Session,
    recipe_id: str,
    user_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> ArchiveResult:
    """
    Archiva la receta viva y avanza su versión.

    Args:
        session: Sesión de base de datos
        recipe_id: ID de la receta viva
        user_id: Usuario que archiva (archived_by)
        notes: Notas del cambio (se guardan en la copia archivada)

    Returns:
        ArchiveResult con el id vivo (sin cambios) y el id archivado

    Raises:
        NotFoundError: Si la receta no existe
        ConflictError: Si la receta ya es una copia archivada, tiene cambios
            pendientes, o la versión ya fue archivada por otro llamado
        StoreFailureError: Si falla la escritura
    """
    # 1. Receta viva (bloqueada) y sus líneas
    recipe = get_recipe(session, recipe_id, for_update=True)
    if recipe.is_archived:
        raise ConflictError(f"La receta {recipe_id} es una copia archivada")
    _assert_no_pending_changes(session, recipe)

    lines = get_recipe_lines(session, recipe.id)
    now = datetime.utcnow()
    archived_version = float(recipe.version_number or 1.0)
    archived_document_id = None

    try:
        with session.begin_nested():
            # 2-3. Copia archivada con líneas independientes
            archived = Recipe(
                id=str(uuid.uuid4()),
                **_column_values(recipe, _RECIPE_SNAPSHOT_EXCLUDED),
                recipe_status=RecipeStatus.ARCHIVED,
                is_active=False,
                archived_from_recipe_id=recipe.id,
                archived_at=now,
                archived_by=user_id,
                archive_notes=notes,
            )
            archived.lines = [
                RecipeLine(id=str(uuid.uuid4()), **_column_values(line, _LINE_SNAPSHOT_EXCLUDED))
                for line in lines
            ]
            session.add(archived)

            # 4. Avanzar la versión viva
            recipe.version_number = next_version(archived_version)
            recipe.updated_at = now

            # 5. Cascada al documento enlazado
            document = get_live_document_for_recipe(session, recipe)
            if document is not None:
                archived_document_id = _archive_document(session, document, user_id, now)

            session.flush()
    except IntegrityError as e:
        raise ConflictError(
            f"La versión {archived_version:.1f} de la receta {recipe_id} ya fue archivada"
        ) from e
    except SQLAlchemyError as e:
        raise StoreFailureError(f"Error al archivar la receta {recipe_id}: {e}") from e

    logger.info(
        f"Receta {recipe.code} ({recipe.id}) archivada v{archived_version:.1f} -> {archived.id}; "
        f"versión viva {recipe.version_number:.1f}"
    )
    return ArchiveResult(
        live_id=recipe.id,
        archived_id=archived.id,
        live_version=recipe.version_number,
        archived_version=archived_version,
        archived_document_id=archived_document_id,
    )


def list_recipe_versions(session: Session, recipe_id: str) -> list[Recipe]:
    """
    Copias archivadas de una receta viva, de la más nueva a la más vieja.
    """
    recipe = get_recipe(session, recipe_id)
    live_id = recipe.archived_from_recipe_id or recipe.id
    stmt = (
        select(Recipe)
        .where(
            Recipe.archived_from_recipe_id == live_id,
            Recipe.recipe_status == RecipeStatus.ARCHIVED,
        )
        .order_by(Recipe.version_number.desc())
    )
    return list(session.execute(stmt).scalars())


def list_document_versions(session: Session, document_id: str) -> list[ProcedureDocument]:
    """
    Copias archivadas de un documento vivo, de la más nueva a la más vieja.
    """
    document = get_document(session, document_id)
    live_id = document.archived_from_document_id or document.id
    stmt = (
        select(ProcedureDocument)
        .where(
            ProcedureDocument.archived_from_document_id == live_id,
            ProcedureDocument.status == DocumentStatus.ARCHIVED,
        )
        .order_by(ProcedureDocument.version_number.desc())
    )
    return list(session.execute(stmt).scalars())
