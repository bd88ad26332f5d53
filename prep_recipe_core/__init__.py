"""
Core de derivación y versionado de recetas de preparación.

Este paquete contiene la lógica que:
- Enlaza un ingrediente "prep item" con la receta que lo produce (linkage, placeholders)
- Genera códigos de receta legibles (codes)
- Deriva un documento de procedimiento desde la receta (procedures)
- Mantiene el historial inmutable de versiones (versioning)

Todas las operaciones reciben una `Session` de SQLAlchemy; el commit/rollback
lo maneja quien llama (ver `db.database.get_db_session`).
"""

from .codes import extract_prefix, generate_recipe_code
from .linkage import LinkageAction, LinkageResult, resolve_prep_item
from .placeholders import create_recipe_placeholder
from .procedures import generate_on_first_line, render_procedure_markdown, sync_procedure_document
from .recipes import delete_recipe_line, save_recipe_changes, save_recipe_line, set_recipe_status
from .versioning import ArchiveResult, archive_and_advance, archive_document_and_advance

__all__ = [
    "ArchiveResult",
    "LinkageAction",
    "LinkageResult",
    "archive_and_advance",
    "archive_document_and_advance",
    "create_recipe_placeholder",
    "delete_recipe_line",
    "extract_prefix",
    "generate_on_first_line",
    "generate_recipe_code",
    "render_procedure_markdown",
    "resolve_prep_item",
    "save_recipe_changes",
    "save_recipe_line",
    "set_recipe_status",
    "sync_procedure_document",
]
