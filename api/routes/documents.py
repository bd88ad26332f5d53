"""
Endpoint para documentos de procedimiento.

Este endpoint maneja:
- GET /api/v1/documents/{document_id}: Obtener un documento por ID
- GET /api/v1/documents/{document_id}/markdown: Exportar el documento a Markdown
- GET /api/v1/documents/{document_id}/versions: Historial de copias archivadas
- POST /api/v1/documents/{document_id}/sync: Re-sincronizar con la receta
- POST /api/v1/documents/{document_id}/archive: Archivar y avanzar versión
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from prep_recipe_core.db.helpers import get_document
from prep_recipe_core.db.models import ProcedureDocument, load_json_dict
from prep_recipe_core.errors import RecipeCoreError
from prep_recipe_core.procedures import render_procedure_markdown, sync_procedure_document
from prep_recipe_core.versioning import archive_document_and_advance, list_document_versions

from ..dependencies import get_db, to_http_exception
from ..models.requests import ArchiveRequest, DocumentResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


def _document_response(document: ProcedureDocument) -> DocumentResponse:
    synced_at = document.last_synced_with_recipe_at
    return DocumentResponse(
        id=document.id,
        company_id=document.company_id,
        title=document.title,
        code=document.code,
        category=document.category,
        status=document.status.value,
        version_number=document.version_number,
        linked_recipe_id=document.linked_recipe_id,
        needs_update=document.needs_update,
        last_synced_with_recipe_at=synced_at.isoformat() if synced_at else None,
        content=load_json_dict(document.content_json),
        metadata=load_json_dict(document.metadata_json),
    )


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document_detail(document_id: str, session: Session = Depends(get_db)):
    """
    Obtiene un documento por ID (vivo o archivado).

    Raises:
        404: Si el documento no existe
    """
    try:
        document = get_document(session, document_id)
    except RecipeCoreError as e:
        raise to_http_exception(e) from e
    return _document_response(document)


@router.get("/{document_id}/markdown", response_class=PlainTextResponse)
async def get_document_markdown(document_id: str, session: Session = Depends(get_db)):
    """
    Exporta el documento a Markdown.
    """
    try:
        document = get_document(session, document_id)
    except RecipeCoreError as e:
        raise to_http_exception(e) from e
    return PlainTextResponse(render_procedure_markdown(document), media_type="text/markdown")


@router.get("/{document_id}/versions", response_model=list[DocumentResponse])
async def get_document_versions(document_id: str, session: Session = Depends(get_db)):
    try:
        versions = list_document_versions(session, document_id)
    except RecipeCoreError as e:
        raise to_http_exception(e) from e
    return [_document_response(v) for v in versions]


@router.post("/{document_id}/sync", response_model=DocumentResponse)
async def sync_document(document_id: str, request: ArchiveRequest, session: Session = Depends(get_db)):
    """
    Re-sincroniza el documento con el estado actual de su receta.

    Conserva equipamiento y pasos del proceso cargados a mano.
    """
    try:
        document = get_document(session, document_id)
        if document.is_archived or not document.linked_recipe_id:
            raise HTTPException(status_code=409, detail=f"El documento {document_id} no puede sincronizarse")
        synced = sync_procedure_document(session, document.linked_recipe_id, request.user_id)
        session.commit()
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e

    if synced is None:
        raise HTTPException(status_code=409, detail=f"El documento {document_id} no está enlazado a su receta")
    return _document_response(synced)


@router.post("/{document_id}/archive")
async def archive_document(document_id: str, request: ArchiveRequest, session: Session = Depends(get_db)):
    """
    Archiva el documento y avanza su versión en 0.1.
    """
    try:
        live_id, archived_id = archive_document_and_advance(session, document_id, request.user_id)
        session.commit()
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e

    logger.info(f"Documento {live_id} archivado como {archived_id}")
    return {"live_id": live_id, "archived_id": archived_id}
