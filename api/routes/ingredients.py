"""
Endpoint del catálogo de ingredientes.

- POST /api/v1/ingredients/{ingredient_id}/prep-item: activar/desactivar el
  flag "prep item" (crea, reutiliza o deshabilita la receta enlazada)
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from prep_recipe_core.errors import RecipeCoreError
from prep_recipe_core.linkage import resolve_prep_item

from ..dependencies import get_db, to_http_exception
from ..models.requests import PrepItemToggleRequest, PrepItemToggleResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ingredients", tags=["ingredients"])


@router.post("/{ingredient_id}/prep-item", response_model=PrepItemToggleResponse)
async def toggle_prep_item(
    ingredient_id: str,
    request: PrepItemToggleRequest,
    session: Session = Depends(get_db),
):
    """
    Cambia el flag "prep item" de un ingrediente.

    Returns:
        PrepItemToggleResponse con la acción tomada (found|created|disabled)

    Raises:
        404: Si el ingrediente no existe
    """
    try:
        result = resolve_prep_item(session, ingredient_id, request.is_prep_item, request.user_id)
        session.commit()
    except RecipeCoreError as e:
        session.rollback()
        raise to_http_exception(e) from e

    logger.info(f"Prep item {ingredient_id} -> {request.is_prep_item}: {result.action.value}")
    return PrepItemToggleResponse(
        action=result.action.value,
        recipe_id=result.recipe_id,
        document_id=result.document_id,
    )
