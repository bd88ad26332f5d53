"""
Dependencias de FastAPI y traducción de errores del core a HTTP.
"""

from typing import Generator
import logging

from fastapi import HTTPException
from sqlalchemy.orm import Session

from prep_recipe_core.db import database
from prep_recipe_core.errors import (
    ConflictError,
    NotFoundError,
    RecipeCoreError,
    StoreFailureError,
    ValidationFailureError,
)

logger = logging.getLogger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Dependencia de FastAPI para obtener una sesión de base de datos.

    Las rutas que escriben hacen commit explícito; acá solo se garantiza el
    rollback ante errores y el cierre de la sesión.
    """
    database.get_db_engine(echo=False)
    db = database.SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def to_http_exception(error: RecipeCoreError) -> HTTPException:
    """
    Mapea errores del core a códigos HTTP:
    NotFound -> 404, Conflict -> 409, Validation -> 422, StoreFailure -> 503.
    """
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ValidationFailureError):
        detail = {"message": str(error), "errors": [i.to_dict() for i in error.issues]} if error.issues else str(error)
        return HTTPException(status_code=422, detail=detail)
    if isinstance(error, StoreFailureError):
        logger.error(f"Error de base de datos: {error}")
        return HTTPException(status_code=503, detail=str(error))
    logger.exception("Error inesperado del core")
    return HTTPException(status_code=500, detail=f"Error interno: {error}")
