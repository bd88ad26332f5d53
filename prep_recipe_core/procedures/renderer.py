"""
Renderer Markdown para documentos de procedimiento.

Lee únicamente `content_json` (y la metadata para el resumen de costo), que es
lo que consumen los exportadores.
"""

from __future__ import annotations

from typing import Any, Dict, List

from ..db.models import ProcedureDocument, load_json_dict
from .template import EQUIPMENT_LIST, INGREDIENT_TABLE, PREP_HEADER, PROCESS_STEPS, STORAGE_INFO, find_node


def _attrs(content: Dict[str, Any], node_type: str) -> Dict[str, Any]:
    node = find_node(content, node_type)
    return (node or {}).get("attrs") or {}


def _escape_cell(value: Any) -> str:
    return str(value if value is not None else "").replace("|", "\\|").replace("\n", " ")


def render_procedure_markdown(document: ProcedureDocument) -> str:
    """
    Renderiza el documento a Markdown.
    """
    content = load_json_dict(document.content_json)
    metadata = load_json_dict(document.metadata_json)
    header = _attrs(content, PREP_HEADER)

    lines: List[str] = []
    lines.append(f"# {header.get('title') or document.title}")
    lines.append("")
    lines.append(f"- **Code:** {header.get('ref_code') or document.code}")
    lines.append(f"- **Version:** {header.get('version') or f'{document.version_number:.1f}'}")
    lines.append(f"- **Status:** {document.status.value}")
    lines.append(f"- **Type:** {header.get('sopType', 'Prep')}")
    if header.get("author"):
        lines.append(f"- **Author:** {header['author']}")
    yield_value = header.get("yieldValue")
    if yield_value:
        lines.append(f"- **Yield:** {yield_value} {header.get('unit') or ''}".rstrip())
    total_cost = (metadata.get("recipe") or {}).get("total_cost")
    if total_cost:
        lines.append(f"- **Total cost:** {total_cost:.2f}")
    lines.append("")

    safety = header.get("safetyNotes")
    if safety:
        lines.append("## Safety notes")
        lines.append("")
        lines.append(safety)
        lines.append("")

    rows = _attrs(content, INGREDIENT_TABLE).get("rows") or []
    lines.append("## Ingredients")
    lines.append("")
    if rows:
        lines.append("| Ingredient | Quantity | Unit | Supplier | Allergens |")
        lines.append("|---|---|---|---|---|")
        for row in rows:
            allergens = ", ".join(row.get("allergen") or [])
            lines.append(
                "| "
                + " | ".join(
                    _escape_cell(v)
                    for v in (row.get("ingredient"), row.get("quantity"), row.get("unit"), row.get("supplier"), allergens)
                )
                + " |"
            )
    else:
        lines.append("_No ingredients._")
    lines.append("")

    equipment = _attrs(content, EQUIPMENT_LIST).get("rows") or []
    if equipment:
        lines.append("## Equipment")
        lines.append("")
        for row in equipment:
            lines.append(f"- {row.get('item') or row.get('name') or ''}")
        lines.append("")

    steps = _attrs(content, PROCESS_STEPS).get("steps") or []
    if steps:
        lines.append("## Method")
        lines.append("")
        for i, step in enumerate(steps, start=1):
            lines.append(f"{i}. {step.get('description') or step.get('text') or ''}")
        lines.append("")

    storage = _attrs(content, STORAGE_INFO)
    if storage.get("storageNotes") or storage.get("durationDays"):
        lines.append("## Storage")
        lines.append("")
        if storage.get("storageNotes"):
            lines.append(f"- {storage['storageNotes']}")
        if storage.get("durationDays"):
            lines.append(f"- Shelf life: {storage['durationDays']} days")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
