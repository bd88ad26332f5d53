"""
Endpoint para recetas.

Este endpoint maneja:
- GET /api/v1/recipes/{recipe_id}: Obtener una receta
- GET /api/v1/recipes/{recipe_id}/versions: Historial de copias archivadas
- POST /api/v1/recipes/{recipe_id}/lines: Guardar una línea (dispara el documento)
- DELETE /api/v1/recipes/{recipe_id}/lines/{line_id}: Borrar una línea
- PUT /api/v1/recipes/{recipe_id}: Guardar cambios (archiva si está activa)
- POST /api/v1/recipes/{recipe_id}/archive: Archivar y avanzar versión
- PATCH /api/v1/recipes/{recipe_id}/status: Transición draft <-> active
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from prep_recipe_core.db.helpers import count_recipe_lines, get_recipe
from prep_recipe_core.db.models import Recipe, RecipeLine
from prep_recipe_core.errors import RecipeCoreError
from prep_recipe_core.recipes import delete_recipe_line, save_recipe_changes, save_recipe_line, set_recipe_status
from prep_recipe_core.versioning import archive_and_advance, list_recipe_versions

from ..dependencies import get_db, to_http_exception
from ..models.requests import (
    ArchiveRequest,
    ArchiveResponse,
    RecipeLineRequest,
    RecipeLineResponse,
    RecipeResponse,
    RecipeStatusRequest,
    RecipeUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/recipes", tags=["recipes"])


def _recipe_response(session: Session, recipe: Recipe) -> RecipeResponse:
    return RecipeResponse(
        id=recipe.id,
        company_id=recipe.company_id,
        name=recipe.name,
        code=recipe.code,
        recipe_type=recipe.recipe_type.value,
        recipe_status=recipe.recipe_status.value,
        output_ingredient_id=recipe.output_ingredient_id,
        version_number=recipe.version_number,
        is_active=recipe.is_active,
        archived_from_recipe_id=recipe.archived_from_recipe_id,
        archived_at=recipe.archived_at.isoformat() if recipe.archived_at else None,
        linked_document_id=recipe.linked_document_id,
        line_count=count_recipe_lines(session, recipe.id),
    )


def _archive_response(result) -> ArchiveResponse:
    return ArchiveResponse(
        live_id=result.live_id,
        archived_id=result.archived_id,
        live_version=result.live_version,
        archived_version=result.archived_version,
        archived_document_id=result.archived_document_id,
    )


@router.get("/{recipe_id}", response_model=RecipeResponse)
async def get_recipe_detail(recipe_id: str, session: Session = Depends(get_db)):
    """
    Obtiene una receta (viva o archivada) por su ID.
    """
    try:
        recipe = get_recipe(session, recipe_id)
    except RecipeCoreError as e:
        raise to_http_exception(e) from e
    return _recipe_response(session, recipe)


@router.get("/{recipe_id}/versions", response_model=list[RecipeResponse])
async def get_recipe_versions(recipe_id: str, session: Session = Depends(get_db)):
    """
    Lista las copias archivadas de la receta, de la más nueva a la más vieja.
    """
    try:
        versions = list_recipe_versions(session, recipe_id)
    except RecipeCoreError as e:
        raise to_http_exception(e) from e
    return [_recipe_response(session, v) for v in versions]


@router.post("/{recipe_id}/lines", response_model=RecipeLineResponse)
async def save_line(recipe_id: str, request: RecipeLineRequest, session: Session = Depends(get_db)):
    """
    Guarda una línea de ingrediente.

    La primera línea de la receta crea su documento de procedimiento y la
    activa; las siguientes re-sincronizan el mismo documento.
    """
    try:
        result = save_recipe_line(
            session,
            recipe_id,
            request.ingredient_id,
            request.quantity,
            request.unit,
            allergens=request.allergens,
            user_id=request.user_id,
            line_id=request.line_id,
        )
        session.commit()
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e

    return RecipeLineResponse(
        line_id=result.line_id,
        document_id=result.document_id,
        created_document=result.created_document,
    )


@router.delete("/{recipe_id}/lines/{line_id}")
async def delete_line(recipe_id: str, line_id: str, session: Session = Depends(get_db)):
    """
    Borra una línea de la receta.
    """
    line = session.get(RecipeLine, line_id)
    if line is None or line.recipe_id != recipe_id:
        raise HTTPException(status_code=404, detail=f"Línea {line_id} no encontrada")
    try:
        delete_recipe_line(session, line_id)
        session.commit()
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e
    return {"deleted": True, "line_id": line_id}


@router.put("/{recipe_id}", response_model=RecipeResponse)
async def update_recipe(recipe_id: str, request: RecipeUpdateRequest, session: Session = Depends(get_db)):
    """
    Guarda cambios de contenido de una receta.

    Si la receta está activa, su estado actual se archiva antes de aplicar
    los cambios y la versión viva avanza en 0.1.
    """
    try:
        save_recipe_changes(
            session,
            recipe_id,
            request.user_id,
            request.changes(),
            notes=request.notes,
            expected_version=request.expected_version,
        )
        session.commit()
        recipe = get_recipe(session, recipe_id)
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e
    return _recipe_response(session, recipe)


@router.post("/{recipe_id}/archive", response_model=ArchiveResponse)
async def archive_recipe(recipe_id: str, request: ArchiveRequest, session: Session = Depends(get_db)):
    """
    Archiva el estado actual de la receta y avanza su versión.
    """
    try:
        result = archive_and_advance(session, recipe_id, request.user_id, request.notes)
        session.commit()
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e
    return _archive_response(result)


@router.patch("/{recipe_id}/status", response_model=RecipeResponse)
async def update_recipe_status(recipe_id: str, request: RecipeStatusRequest, session: Session = Depends(get_db)):
    """
    Transición simple draft <-> active, sin cambios de contenido.
    """
    try:
        set_recipe_status(session, recipe_id, request.status)
        session.commit()
        recipe = get_recipe(session, recipe_id)
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e
    return _recipe_response(session, recipe)
