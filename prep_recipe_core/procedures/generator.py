"""
Generación y sincronización del documento de procedimiento de una receta.

- `generate_on_first_line`: se llama después de guardar cualquier línea;
  crea el documento solo en la transición 0 -> 1 líneas.
- `sync_procedure_document`: re-sincroniza el documento existente con la
  receta (líneas editadas después de la primera).
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db.helpers import (
    best_effort,
    count_recipe_lines,
    get_live_document_for_recipe,
    get_recipe,
    get_recipe_lines,
    get_user_display_name,
)
from ..db.models import (
    DocumentStatus,
    ProcedureDocument,
    Recipe,
    RecipeStatus,
    dump_json,
    load_json_dict,
)
from ..errors import ConflictError, NotFoundError, StoreFailureError
from .builder import build_print_metadata, build_procedure_content, snapshot_recipe

logger = logging.getLogger(__name__)

# Nombre del índice (PostgreSQL) o columna del índice (SQLite) en el mensaje del driver
_LIVE_DOCUMENT_MARKERS = ("uq_procedure_documents_live_recipe", "procedure_documents.linked_recipe_id")


def _stamp_synced(document: ProcedureDocument, now: datetime) -> None:
    document.needs_update = False
    document.last_synced_with_recipe_at = now


def generate_on_first_line(
    session: Session,
    recipe_id: str,
    company_id: str,
    user_id: Optional[str] = None,
) -> Optional[str]:
    """
    Crea el documento de procedimiento de la receta al guardarse su primera línea.

    Cualquier otro conteo de líneas (0, 2, 3, ...) o una receta que ya tiene
    documento devuelve None (skip).

    Args:
        session: Sesión de base de datos
        recipe_id: ID de la receta
        company_id: Empresa de la receta
        user_id: Usuario que guardó la línea (autor del documento)

    Returns:
        ID del documento creado, o None si no corresponde crearlo

    Raises:
        NotFoundError: Si la receta no existe en la empresa
        ConflictError: Si la receta está archivada
        StoreFailureError: Si falla el INSERT del documento
    """
    line_count = count_recipe_lines(session, recipe_id)
    if line_count != 1:
        logger.debug(f"Receta {recipe_id} tiene {line_count} líneas; no se genera documento")
        return None

    # 1. Receta (bloqueada) y líneas
    recipe = get_recipe(session, recipe_id, for_update=True)
    if recipe.company_id != company_id:
        raise NotFoundError("Receta", recipe_id)
    if recipe.is_archived:
        raise ConflictError(f"La receta {recipe_id} está archivada")

    if get_live_document_for_recipe(session, recipe) is not None:
        logger.debug(f"Receta {recipe_id} ya tiene documento; skip")
        return None

    lines = get_recipe_lines(session, recipe_id)
    settings = get_settings()
    now = datetime.utcnow()

    # 2-6. Autor, snapshot, contenido y metadata
    author = get_user_display_name(session, user_id)
    snapshot = snapshot_recipe(recipe, lines)
    content = build_procedure_content(snapshot, author, now=now)
    metadata = build_print_metadata(snapshot, content)

    # 7. El documento existe antes de que la receta lo referencie
    document = ProcedureDocument(
        company_id=recipe.company_id,
        title=snapshot.name,
        code=snapshot.code,
        category=settings.procedure_category,
        status=DocumentStatus.DRAFT,
        version_number=snapshot.version_number,
        linked_recipe_id=recipe.id,
        content_json=dump_json(content),
        metadata_json=dump_json(metadata),
        needs_update=True,
        created_by=user_id,
        created_at=now,
    )
    savepoint = session.begin_nested()
    try:
        session.add(document)
        session.flush()
        savepoint.commit()
    except IntegrityError as e:
        savepoint.rollback()
        if not any(marker in str(e.orig) for marker in _LIVE_DOCUMENT_MARKERS):
            raise StoreFailureError(f"Error al crear el documento de la receta {recipe_id}: {e}") from e
        # Otro llamado concurrente generó el documento primero
        logger.info(f"Receta {recipe_id} ya tiene documento generado en paralelo; skip")
        return None
    except SQLAlchemyError as e:
        savepoint.rollback()
        raise StoreFailureError(f"Error al crear el documento de la receta {recipe_id}: {e}") from e

    # 8. Enlace bidireccional y receta activa
    recipe.linked_document_id = document.id
    recipe.recipe_status = RecipeStatus.ACTIVE
    recipe.is_active = True
    recipe.updated_at = now
    session.flush()

    # 9. Marca de sincronización
    with best_effort(session, f"marcar documento {document.id} como sincronizado"):
        _stamp_synced(document, now)

    logger.info(f"Documento {document.id} generado para receta {recipe.code} ({recipe.id})")
    return document.id


def sync_procedure_document(
    session: Session,
    recipe_id: str,
    user_id: Optional[str] = None,
) -> Optional[ProcedureDocument]:
    """
    Re-sincroniza el documento vivo de una receta con su estado actual.

    Reemplaza header, tabla de ingredientes y almacenamiento; conserva
    equipamiento y pasos del proceso cargados a mano.

    Returns:
        El documento actualizado, o None si la receta no tiene documento

    Raises:
        NotFoundError: Si la receta no existe
        ConflictError: Si la receta está archivada
    """
    recipe = get_recipe(session, recipe_id)
    if recipe.is_archived:
        raise ConflictError(f"La receta {recipe_id} está archivada")

    document = get_live_document_for_recipe(session, recipe)
    if document is None:
        return None

    lines = get_recipe_lines(session, recipe_id)
    now = datetime.utcnow()
    author = get_user_display_name(session, user_id) if user_id else None

    snapshot = snapshot_recipe(recipe, lines)
    content = build_procedure_content(snapshot, author, existing=load_json_dict(document.content_json), now=now)
    metadata = build_print_metadata(snapshot, content)

    document.title = snapshot.name
    document.code = snapshot.code
    document.content_json = dump_json(content)
    document.metadata_json = dump_json(metadata)
    document.updated_at = now
    _stamp_synced(document, now)

    # Reparar el enlace inverso si faltaba
    if recipe.linked_document_id != document.id:
        recipe.linked_document_id = document.id
    session.flush()

    logger.info(f"Documento {document.id} sincronizado con receta {recipe.id} ({len(lines)} líneas)")
    return document


def mark_document_stale(session: Session, recipe: Recipe) -> Optional[ProcedureDocument]:
    """
    Marca el documento vivo de la receta como desactualizado.
    """
    document = get_live_document_for_recipe(session, recipe)
    if document is None:
        return None
    document.needs_update = True
    document.updated_at = datetime.utcnow()
    session.flush()
    return document
