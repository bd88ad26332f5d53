"""
Plantilla en blanco del documento de procedimiento de preparación (Food Prep).

El contenido es un documento por secciones: `{"type": "doc", "content": [nodos]}`
donde cada nodo es `{"type": <sección>, "attrs": {...}}`.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List

PREP_HEADER = "prepHeader"
INGREDIENT_TABLE = "ingredientTable"
EQUIPMENT_LIST = "equipmentList"
PROCESS_STEPS = "processSteps"
STORAGE_INFO = "storageInfo"

_PREP_PROCEDURE_TEMPLATE: Dict[str, Any] = {
    "type": "doc",
    "content": [
        {
            "type": PREP_HEADER,
            "attrs": {
                "title": "",
                "ref_code": "",
                "version": "1.0",
                "status": "Draft",
                "author": "",
                "last_edited": "",
                "sopType": "Prep",
                "yieldValue": 0,
                "unit": "",
                "safetyNotes": "",
                "allergens": [],
            },
        },
        {
            "type": INGREDIENT_TABLE,
            "attrs": {"rows": [], "multiplier": 1},
        },
        {
            "type": EQUIPMENT_LIST,
            "attrs": {"rows": []},
        },
        {
            "type": PROCESS_STEPS,
            "attrs": {"steps": []},
        },
        {
            "type": STORAGE_INFO,
            "attrs": {
                "type": "",
                "tempMin": None,
                "tempMax": None,
                "durationDays": None,
                "storageNotes": "",
            },
        },
    ],
}


def blank_prep_template() -> Dict[str, Any]:
    """Copia profunda de la plantilla (nunca devolver la original)."""
    return copy.deepcopy(_PREP_PROCEDURE_TEMPLATE)


def find_node(content: Dict[str, Any], node_type: str) -> Dict[str, Any] | None:
    for node in content.get("content", []):
        if isinstance(node, dict) and node.get("type") == node_type:
            return node
    return None


def ensure_node(content: Dict[str, Any], node_type: str, at: int | None = None) -> Dict[str, Any]:
    """
    Devuelve el nodo `node_type`, creándolo desde la plantilla si falta.
    """
    node = find_node(content, node_type)
    if node is not None:
        node.setdefault("attrs", {})
        return node

    template_node = find_node(blank_prep_template(), node_type) or {"type": node_type, "attrs": {}}
    nodes: List[Dict[str, Any]] = content.setdefault("content", [])
    if at is None:
        nodes.append(template_node)
    else:
        nodes.insert(at, template_node)
    return template_node
