"""
Builder de documentos de procedimiento.

Construye, a partir de un RecipeSnapshot:
- El contenido estructurado (header, tabla de ingredientes, almacenamiento)
- La metadata lista para imprimir

El contenido y la metadata se construyen siempre juntos desde el mismo
snapshot, así los consumidores de impresión/exportación ven datos coherentes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Sequence

from ..db.models import Recipe, RecipeLine, load_json_list
from .models import IngredientRow, RecipeSnapshot
from .template import (
    EQUIPMENT_LIST,
    INGREDIENT_TABLE,
    PREP_HEADER,
    PROCESS_STEPS,
    STORAGE_INFO,
    blank_prep_template,
    ensure_node,
    find_node,
)

ALLERGEN_BANNER = "⚠️ ALLERGEN WARNING ⚠️"
UNKNOWN_INGREDIENT = "Unknown ingredient"


def _clean_allergens(values: Iterable[Any]) -> List[str]:
    return [str(v).strip() for v in values if v is not None and str(v).strip()]


def allergen_union(recipe_allergens: Iterable[Any], line_allergens: Iterable[Iterable[Any]]) -> List[str]:
    """
    Unión sin duplicados de los alérgenos de la receta y de cada línea.

    Conserva el orden de primera aparición; la comparación ignora mayúsculas.

    >>> allergen_union(["gluten"], [["milk"], [], ["gluten", "soy"]])
    ['gluten', 'milk', 'soy']
    """
    seen: set[str] = set()
    result: List[str] = []
    candidates = list(_clean_allergens(recipe_allergens))
    for allergens in line_allergens:
        candidates.extend(_clean_allergens(allergens or []))
    for allergen in candidates:
        key = allergen.lower()
        if key in seen:
            continue
        seen.add(key)
        result.append(allergen)
    return result


def build_ingredient_rows(lines: Sequence[RecipeLine]) -> List[IngredientRow]:
    rows: List[IngredientRow] = []
    for line in lines:
        ingredient = line.ingredient
        rows.append(
            IngredientRow(
                name=(ingredient.name if ingredient is not None and ingredient.name else UNKNOWN_INGREDIENT),
                quantity=float(line.quantity or 0),
                unit=line.unit or "",
                supplier=(ingredient.supplier or "") if ingredient is not None else "",
                allergens=_clean_allergens(load_json_list(line.allergens_json)),
            )
        )
    return rows


def snapshot_recipe(recipe: Recipe, lines: Sequence[RecipeLine]) -> RecipeSnapshot:
    """
    Toma un snapshot de la receta y sus líneas.
    """
    rows = build_ingredient_rows(lines)
    return RecipeSnapshot(
        recipe_id=recipe.id,
        name=recipe.name or "",
        code=recipe.code or "",
        version_number=float(recipe.version_number or 1.0),
        yield_qty=float(recipe.yield_qty or 0),
        yield_unit=recipe.yield_unit or "",
        total_cost=float(recipe.total_cost or 0),
        allergens=allergen_union(load_json_list(recipe.allergens_json), (r.allergens for r in rows)),
        storage_requirements=recipe.storage_requirements or "",
        shelf_life_days=recipe.shelf_life_days,
        ingredients=rows,
    )


def build_safety_notes(snapshot: RecipeSnapshot) -> str:
    """
    Bloque de notas de seguridad: banner de alérgenos (si hay) + almacenamiento.
    """
    notes = ""
    if snapshot.allergens:
        notes = f"{ALLERGEN_BANNER}\nThis recipe contains: {', '.join(snapshot.allergens)}\n\n"
    if snapshot.storage_requirements:
        notes += f"Storage: {snapshot.storage_requirements}\n"
    if snapshot.shelf_life_days:
        notes += f"Shelf Life: {snapshot.shelf_life_days} days\n"
    return notes.strip()


def _apply_header(content: Dict[str, Any], snapshot: RecipeSnapshot, author: str | None, now: datetime) -> int:
    header = ensure_node(content, PREP_HEADER, at=0)
    attrs = header["attrs"]
    attrs.update(
        {
            "title": snapshot.name,
            "ref_code": snapshot.code,
            "version": snapshot.version_label,
            "status": "Draft",
            "sopType": "Prep",
            "yieldValue": snapshot.yield_qty,
            "unit": snapshot.yield_unit,
            "safetyNotes": build_safety_notes(snapshot),
            "allergens": list(snapshot.allergens),
            "last_edited": now.isoformat(),
        }
    )
    if author is not None:
        attrs["author"] = author
    return content["content"].index(header)


def _apply_ingredient_table(content: Dict[str, Any], snapshot: RecipeSnapshot, header_index: int) -> None:
    table = ensure_node(content, INGREDIENT_TABLE, at=header_index + 1)
    multiplier = table["attrs"].get("multiplier") or 1
    # Reemplazo completo: la tabla siempre refleja las líneas actuales
    table["attrs"] = {
        "rows": [row.to_table_row() for row in snapshot.ingredients],
        "multiplier": multiplier,
    }


def _apply_storage(content: Dict[str, Any], snapshot: RecipeSnapshot) -> None:
    storage = ensure_node(content, STORAGE_INFO)
    storage["attrs"].update(
        {
            "type": snapshot.storage_requirements,
            "durationDays": snapshot.shelf_life_days,
            "storageNotes": snapshot.storage_requirements,
        }
    )


def build_procedure_content(
    snapshot: RecipeSnapshot,
    author: str | None,
    existing: Dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Dict[str, Any]:
    """
    Construye el contenido del documento.

    Args:
        snapshot: Estado de la receta
        author: Nombre del autor (None conserva el autor existente)
        existing: Contenido previo; se conservan las secciones cargadas a
            mano (equipamiento, pasos del proceso)
        now: Marca de tiempo de edición

    Returns:
        Contenido estructurado listo para serializar
    """
    now = now or datetime.utcnow()
    if existing and isinstance(existing.get("content"), list):
        content = existing
    else:
        content = blank_prep_template()

    header_index = _apply_header(content, snapshot, author, now)
    _apply_ingredient_table(content, snapshot, header_index)
    _apply_storage(content, snapshot)
    return content


def _equipment_items(content: Dict[str, Any]) -> List[str]:
    node = find_node(content, EQUIPMENT_LIST)
    if node is None:
        return []
    rows = node.get("attrs", {}).get("rows") or []
    return [r.get("item") or r.get("name") or "" for r in rows if isinstance(r, dict)]


def _method_steps(content: Dict[str, Any]) -> List[str]:
    node = find_node(content, PROCESS_STEPS)
    if node is None:
        return []
    steps = node.get("attrs", {}).get("steps") or []
    return [s.get("description") or s.get("text") or "" for s in steps if isinstance(s, dict)]


def build_print_metadata(snapshot: RecipeSnapshot, content: Dict[str, Any]) -> Dict[str, Any]:
    """
    Metadata estructurada para la plantilla de impresión.

    Equipamiento y pasos salen del contenido (vacíos en un documento nuevo,
    para carga manual posterior).
    """
    return {
        "recipe": {
            "name": snapshot.name,
            "code": snapshot.code,
            "version_number": snapshot.version_number,
            "allergens": list(snapshot.allergens),
            "total_cost": snapshot.total_cost,
            "yield_qty": snapshot.yield_qty,
            "yield_unit": snapshot.yield_unit,
            "shelf_life_days": snapshot.shelf_life_days,
            "storage_requirements": snapshot.storage_requirements,
        },
        "ingredients": [row.to_metadata() for row in snapshot.ingredients],
        "equipment": _equipment_items(content),
        "method_steps": _method_steps(content),
    }
