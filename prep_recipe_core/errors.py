"""
Errores del core de recetas.

Todas las operaciones públicas levantan subclases de `RecipeCoreError`, de modo
que la capa HTTP pueda traducirlas a un código de estado sin conocer detalles
de SQLAlchemy.
"""

from __future__ import annotations


class RecipeCoreError(Exception):
    """Error base del core."""


class NotFoundError(RecipeCoreError, LookupError):
    """La entidad requerida no existe al momento de leerla."""

    def __init__(self, entity: str, entity_id: str | None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} no encontrado")


class ConflictError(RecipeCoreError):
    """La operación violaría la regla de una receta viva por ingrediente, o apunta a una fila archivada."""


class ImmutableRecordError(ConflictError):
    """Intento de modificar una fila archivada."""


class StoreFailureError(RecipeCoreError):
    """Error de I/O o de query contra la base relacional."""


class ValidationFailureError(RecipeCoreError, ValueError):
    """Falta un dato requerido o es inválido."""

    def __init__(self, message: str, issues: list | None = None):
        self.issues = issues or []
        super().__init__(message)
