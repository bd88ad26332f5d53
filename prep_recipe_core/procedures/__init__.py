"""
Documentos de procedimiento (SOP) derivados de recetas.

Este paquete contiene:
- La plantilla en blanco del documento (template)
- La construcción de contenido y metadata a partir de una receta (builder)
- La generación en la primera línea y la re-sincronización (generator)
- El render a Markdown para exportación (renderer)
"""

from .generator import generate_on_first_line, mark_document_stale, sync_procedure_document
from .renderer import render_procedure_markdown

__all__ = [
    "generate_on_first_line",
    "mark_document_stale",
    "render_procedure_markdown",
    "sync_procedure_document",
]
