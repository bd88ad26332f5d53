"""
Modelos de request/response para la API.

Estos modelos definen la estructura esperada de los requests HTTP,
validando tipos y valores antes de pasarlos al core.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from prep_recipe_core.db.models import RecipeStatus, RecipeType


class PrepItemToggleRequest(BaseModel):
    """Request para cambiar el flag "prep item" de un ingrediente."""

    is_prep_item: bool = Field(..., description="Nuevo valor del flag")
    user_id: Optional[str] = Field(default=None, description="Usuario que dispara el cambio")


class PrepItemToggleResponse(BaseModel):
    """Response del resolver de prep items."""

    action: str = Field(..., description="found|created|disabled")
    recipe_id: Optional[str] = Field(default=None, description="Receta resultante")
    document_id: Optional[str] = Field(default=None, description="Documento de la receta (si existe)")


class RecipeLineRequest(BaseModel):
    """Request para guardar una línea de ingrediente."""

    ingredient_id: str = Field(..., description="Ingrediente de la línea")
    quantity: float = Field(..., gt=0, description="Cantidad (> 0)")
    unit: str = Field(..., min_length=1, description="Unidad")
    allergens: Optional[List[str]] = Field(default=None, description="Alérgenos (None = los del ingrediente)")
    user_id: Optional[str] = Field(default=None, description="Usuario que guarda")
    line_id: Optional[str] = Field(default=None, description="Línea a actualizar (opcional)")


class RecipeLineResponse(BaseModel):
    line_id: str = Field(..., description="ID de la línea")
    document_id: Optional[str] = Field(default=None, description="Documento de la receta")
    created_document: bool = Field(default=False, description="True si esta línea creó el documento")


class RecipeUpdateRequest(BaseModel):
    """Request para guardar cambios de una receta (archiva si está activa)."""

    user_id: Optional[str] = Field(default=None, description="Usuario que guarda")
    notes: Optional[str] = Field(default=None, description="Notas del cambio")
    expected_version: Optional[float] = Field(default=None, description="Versión que el editor cargó")

    name: Optional[str] = None
    description: Optional[str] = None
    recipe_type: Optional[RecipeType] = None
    yield_qty: Optional[float] = Field(default=None, ge=0)
    yield_unit: Optional[str] = None
    total_cost: Optional[float] = Field(default=None, ge=0)
    allergens: Optional[List[str]] = None
    storage_requirements: Optional[str] = None
    shelf_life_days: Optional[int] = Field(default=None, ge=0)

    def changes(self) -> dict:
        """Solo los campos de contenido enviados explícitamente."""
        data = self.model_dump(exclude_unset=True, exclude={"user_id", "notes", "expected_version"})
        if "recipe_type" in data and data["recipe_type"] is not None:
            data["recipe_type"] = RecipeType(data["recipe_type"]).value
        return data


class ArchiveRequest(BaseModel):
    user_id: Optional[str] = Field(default=None, description="Usuario que archiva")
    notes: Optional[str] = Field(default=None, description="Notas del cambio")


class ArchiveResponse(BaseModel):
    live_id: str = Field(..., description="ID de la receta viva (no cambia)")
    archived_id: str = Field(..., description="ID de la copia archivada")
    live_version: float = Field(..., description="Versión viva después del archivado")
    archived_version: float = Field(..., description="Versión congelada")
    archived_document_id: Optional[str] = Field(default=None, description="Copia archivada del documento")


class RecipeStatusRequest(BaseModel):
    status: RecipeStatus = Field(..., description="draft|active")


class RecipeResponse(BaseModel):
    """Response de una receta."""

    id: str
    company_id: str
    name: str
    code: str
    recipe_type: str
    recipe_status: str
    output_ingredient_id: Optional[str] = None
    version_number: float
    is_active: bool
    archived_from_recipe_id: Optional[str] = None
    archived_at: Optional[str] = None
    linked_document_id: Optional[str] = None
    line_count: int = 0


class DocumentResponse(BaseModel):
    """Response de un documento de procedimiento."""

    id: str
    company_id: str
    title: str
    code: str
    category: str
    status: str
    version_number: float
    linked_recipe_id: Optional[str] = None
    needs_update: bool
    last_synced_with_recipe_at: Optional[str] = None
    content: dict = Field(default_factory=dict, description="Documento estructurado por secciones")
    metadata: dict = Field(default_factory=dict, description="Snapshot para impresión")
