"""
Generador de códigos de receta legibles: `REC-{PREFIJO}-{NNN}`.

El prefijo sale del nombre (3 letras en mayúscula). El número es el siguiente
al máximo ya emitido para ese prefijo en la empresa; se calcula parseando los
dígitos, no comparando strings, para que `REC-BRI-1000` quede después de
`REC-BRI-999`.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import get_settings
from .db.models import Recipe
from .errors import ValidationFailureError

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 3
SEQUENCE_WIDTH = 3

_NON_LETTERS = re.compile(r"[^A-Za-z]")


def extract_prefix(name: str | None, filler: str | None = None) -> str:
    """
    Devuelve exactamente 3 letras mayúsculas derivadas de `name`.

    >>> extract_prefix("Brioche Bun")
    'BRI'
    >>> extract_prefix("Ox")
    'OXX'
    """
    filler = (filler or get_settings().recipe_prefix_filler or "X")[0].upper()
    letters = _NON_LETTERS.sub("", name or "").upper()
    return letters[:PREFIX_LENGTH].ljust(PREFIX_LENGTH, filler)


def format_recipe_code(prefix: str, sequence: int) -> str:
    code_prefix = get_settings().recipe_code_prefix
    return f"{code_prefix}-{prefix}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(code: str, prefix: str) -> int | None:
    """
    Extrae el número de un código `REC-{prefix}-{digits}`; None si no matchea.
    """
    code_prefix = get_settings().recipe_code_prefix
    match = re.fullmatch(rf"{re.escape(code_prefix)}-{re.escape(prefix)}-(\d+)", code or "")
    if not match:
        return None
    return int(match.group(1))


def _max_issued_sequence(session: Session, prefix: str, company_id: str) -> int:
    code_prefix = get_settings().recipe_code_prefix
    stmt = select(Recipe.code).where(
        Recipe.company_id == company_id,
        Recipe.code.like(f"{code_prefix}-{prefix}-%"),
    )
    sequences = [
        seq
        for seq in (parse_sequence(code, prefix) for code in session.execute(stmt).scalars())
        if seq is not None
    ]
    return max(sequences, default=0)


def generate_recipe_code(session: Session, name: str | None, company_id: str) -> str:
    """
    Genera el próximo código de receta para `name` dentro de la empresa.

    Las copias archivadas cuentan como emitidas (comparten el código de su fila
    viva), así que nunca se reutiliza un número.

    Args:
        session: Sesión de base de datos
        name: Nombre de la receta / ingrediente
        company_id: Empresa dentro de la cual el código es único

    Returns:
        Código tipo "REC-BRI-001"

    Raises:
        ValidationFailureError: Si el nombre está vacío
    """
    if not name or not name.strip():
        raise ValidationFailureError("Se requiere un nombre para generar el código de receta")

    prefix = extract_prefix(name)
    try:
        with session.begin_nested():
            next_sequence = _max_issued_sequence(session, prefix, company_id) + 1
    except SQLAlchemyError as e:
        # El código es conveniencia, no invariante: degradar a 1
        logger.warning(f"No se pudo consultar la secuencia de {prefix} para {company_id}: {e}")
        next_sequence = 1

    code = format_recipe_code(prefix, next_sequence)
    logger.debug(f"Código de receta generado: {code}")
    return code
