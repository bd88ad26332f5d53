"""
Modelos de dominio para documentos de procedimiento.

Son snapshots inmutables de la receta al momento de generar/sincronizar el
documento; desacoplan el builder de las filas ORM.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class IngredientRow:
    """
    Fila de la tabla de ingredientes del procedimiento.
    """
    name: str
    quantity: float
    unit: str
    supplier: str = ""
    allergens: List[str] = field(default_factory=list)

    def to_table_row(self) -> Dict[str, Any]:
        # Formato de la sección ingredientTable
        return {
            "ingredient": self.name,
            "quantity": format_quantity(self.quantity),
            "unit": self.unit,
            "supplier": self.supplier,
            "allergen": list(self.allergens),
            "prepState": "",
            "useByDate": "",
            "costPerUnit": "",
            "photo": None,
        }

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "ingredient_name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "supplier": self.supplier or None,
            "allergens": list(self.allergens),
        }


@dataclass(frozen=True)
class RecipeSnapshot:
    """
    Estado de la receta que alimenta al documento.
    """
    recipe_id: str
    name: str
    code: str
    version_number: float
    yield_qty: float
    yield_unit: str
    total_cost: float
    allergens: List[str]
    storage_requirements: str
    shelf_life_days: Optional[int]
    ingredients: List[IngredientRow]

    @property
    def version_label(self) -> str:
        return f"{self.version_number:.1f}"


def format_quantity(value: float | None) -> str:
    """500.0 -> "500", 0.25 -> "0.25"."""
    if value is None:
        return "0"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.3f}".rstrip("0").rstrip(".")
