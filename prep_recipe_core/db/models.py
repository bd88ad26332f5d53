"""
Modelos de datos del core de recetas.

Cubren las cuatro entidades que el core lee y escribe:
- Ingredient: ítem del catálogo; puede ser "prep item" (se produce en casa).
- Recipe: receta versionada que produce un ingrediente (fila viva + copias archivadas).
- RecipeLine: líneas de ingredientes de una receta.
- ProcedureDocument: documento de procedimiento derivado de la receta.

Las filas archivadas (recetas, sus líneas y documentos) son inmutables: el hook
`before_flush` de este módulo rechaza cualquier modificación o borrado.
"""

from __future__ import annotations

import enum
import json
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    inspect,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from ..errors import ImmutableRecordError
from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls: type[enum.Enum]) -> Enum:
    # Guarda el .value (no el nombre) y valida contra la enumeración cerrada
    return Enum(
        enum_cls,
        native_enum=False,
        length=20,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class RecipeStatus(str, enum.Enum):
    """Estado de una receta: draft -> active; archived solo existe como copia."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


LIVE_RECIPE_STATUSES = (RecipeStatus.DRAFT, RecipeStatus.ACTIVE)


class RecipeType(str, enum.Enum):
    PREP = "prep"
    DISH = "dish"
    COMPOSITE = "composite"
    MODIFIER = "modifier"


class DocumentStatus(str, enum.Enum):
    """Estado de un documento de procedimiento."""

    DRAFT = "Draft"
    ARCHIVED = "Archived"


class User(Base):
    """
    Usuario del sistema (solo lectura para el core).

    Se usa para resolver el nombre del autor de los documentos.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String(200), default="")
    full_name: Mapped[str] = mapped_column(String(200), default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class Ingredient(Base):
    """
    Ingrediente del catálogo de una empresa.

    Si `is_prep_item` es True el ingrediente se produce en casa y
    `linked_recipe_id` apunta a la receta cuyo `output_ingredient_id` es este
    ingrediente.
    """
    __tablename__ = "ingredients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(String(36), index=True)

    name: Mapped[str] = mapped_column(String(255), default="")
    base_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    supplier: Mapped[str] = mapped_column(String(200), default="")

    # Lista JSON de alérgenos (ej: ["gluten", "milk"])
    allergens_json: Mapped[str] = mapped_column(Text, default="[]")

    is_prep_item: Mapped[bool] = mapped_column(Boolean, default=False)
    linked_recipe_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("recipes.id", use_alter=True, name="fk_ingredients_linked_recipe"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)


class Recipe(Base):
    """
    Receta de producción de un prep item.

    La fila viva conserva su id a través de todas las versiones; cada archivado
    agrega una copia con `recipe_status="archived"` y
    `archived_from_recipe_id` apuntando a la fila viva.
    """
    __tablename__ = "recipes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(String(36), index=True)

    name: Mapped[str] = mapped_column(String(255))
    # Legible, no único: si falla la consulta de secuencia puede repetirse
    code: Mapped[str] = mapped_column(String(32), index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    recipe_type: Mapped[RecipeType] = mapped_column(_enum_column(RecipeType), default=RecipeType.PREP)
    recipe_status: Mapped[RecipeStatus] = mapped_column(
        _enum_column(RecipeStatus), default=RecipeStatus.DRAFT, index=True
    )

    output_ingredient_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("ingredients.id"), nullable=True, index=True
    )

    version_number: Mapped[float] = mapped_column(Float, default=1.0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False)

    # Archivado
    archived_from_recipe_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("recipes.id"), nullable=True, index=True
    )
    archived_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    archived_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    archive_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    linked_document_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("procedure_documents.id", use_alter=True, name="fk_recipes_linked_document"),
        nullable=True,
    )

    # Costeo y rendimiento
    total_cost: Mapped[float] = mapped_column(Float, default=0.0)
    yield_qty: Mapped[float] = mapped_column(Float, default=1.0)
    yield_unit: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Seguridad alimentaria
    allergens_json: Mapped[str] = mapped_column(Text, default="[]")
    storage_requirements: Mapped[str] = mapped_column(Text, default="")
    shelf_life_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    lines: Mapped[list["RecipeLine"]] = relationship(
        back_populates="recipe",
        order_by="RecipeLine.sort_order",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # Una sola receta viva (draft/active) por ingrediente de salida
        Index(
            "uq_recipes_live_output",
            "company_id",
            "output_ingredient_id",
            unique=True,
            sqlite_where=text("recipe_status != 'archived'"),
            postgresql_where=text("recipe_status != 'archived'"),
        ),
        # Un snapshot por versión
        Index(
            "uq_recipes_archived_version",
            "archived_from_recipe_id",
            "version_number",
            unique=True,
            sqlite_where=text("recipe_status = 'archived'"),
            postgresql_where=text("recipe_status = 'archived'"),
        ),
    )

    @property
    def is_archived(self) -> bool:
        return self.recipe_status == RecipeStatus.ARCHIVED


class RecipeLine(Base):
    """
    Línea de ingrediente de una receta.
    """
    __tablename__ = "recipe_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    recipe_id: Mapped[str] = mapped_column(String(36), ForeignKey("recipes.id"), index=True)
    ingredient_id: Mapped[str] = mapped_column(String(36), ForeignKey("ingredients.id"), index=True)

    quantity: Mapped[float] = mapped_column(Float, default=0.0)
    unit: Mapped[str] = mapped_column(String(20), default="")
    allergens_json: Mapped[str] = mapped_column(Text, default="[]")
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    recipe: Mapped["Recipe"] = relationship(back_populates="lines")
    ingredient: Mapped["Ingredient"] = relationship()


class ProcedureDocument(Base):
    """
    Documento de procedimiento (SOP) derivado de una receta.

    `content_json` es el documento estructurado por secciones (header,
    tabla de ingredientes, almacenamiento, ...). `metadata_json` es el
    snapshot listo para imprimir. Ambos se escriben juntos.
    """
    __tablename__ = "procedure_documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_id: Mapped[str] = mapped_column(String(36), index=True)

    title: Mapped[str] = mapped_column(String(255))
    code: Mapped[str] = mapped_column(String(32), default="")
    category: Mapped[str] = mapped_column(String(50), default="")
    status: Mapped[DocumentStatus] = mapped_column(
        _enum_column(DocumentStatus), default=DocumentStatus.DRAFT, index=True
    )
    version_number: Mapped[float] = mapped_column(Float, default=1.0)

    linked_recipe_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("recipes.id"), nullable=True, index=True
    )

    content_json: Mapped[str] = mapped_column(Text, default="{}")
    metadata_json: Mapped[str] = mapped_column(Text, default="{}")

    needs_update: Mapped[bool] = mapped_column(Boolean, default=False)
    last_synced_with_recipe_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Archivado
    archived_from_document_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("procedure_documents.id"), nullable=True, index=True
    )
    archived_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    archived_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        # Un solo documento vivo (Draft) por receta
        Index(
            "uq_procedure_documents_live_recipe",
            "linked_recipe_id",
            unique=True,
            sqlite_where=text("status = 'Draft'"),
            postgresql_where=text("status = 'Draft'"),
        ),
    )

    @property
    def is_archived(self) -> bool:
        return self.status == DocumentStatus.ARCHIVED


# ---------------------------------------------------------------------------
# Helpers JSON
# ---------------------------------------------------------------------------

def load_json_list(raw: str | None) -> list[Any]:
    """Parsea una columna JSON de lista; tolera None, "" y valores sueltos."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def load_json_dict(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def dump_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Inmutabilidad de filas archivadas
# ---------------------------------------------------------------------------

def _archived_target(session: Session, obj: Any) -> str | None:
    if isinstance(obj, Recipe) and obj.recipe_status == RecipeStatus.ARCHIVED:
        return f"receta archivada {obj.id}"
    if isinstance(obj, ProcedureDocument) and obj.status == DocumentStatus.ARCHIVED:
        return f"documento archivado {obj.id}"
    if isinstance(obj, RecipeLine):
        parent = obj.recipe if obj.recipe is not None else session.get(Recipe, obj.recipe_id)
        if parent is not None and parent.recipe_status == RecipeStatus.ARCHIVED:
            return f"línea {obj.id} de receta archivada {parent.id}"
    return None


@event.listens_for(Session, "before_flush")
def reject_archived_mutations(session, flush_context, instances):
    """
    Rechaza UPDATE/DELETE sobre recetas, líneas y documentos archivados.

    Las copias nuevas (INSERT) pasan: solo se controla `session.dirty` y
    `session.deleted`.
    """
    for obj in session.dirty:
        if not session.is_modified(obj, include_collections=False):
            continue
        target = _archived_target(session, obj)
        if target is not None:
            # archived solo existe como copia (INSERT), nunca como transición
            history = _status_history(obj)
            if history is not None and history != "archived":
                raise ImmutableRecordError(f"No se puede archivar una fila viva in-place ({target})")
            raise ImmutableRecordError(f"No se puede modificar {target}")

    for obj in session.deleted:
        target = _archived_target(session, obj)
        if target is not None:
            raise ImmutableRecordError(f"No se puede borrar {target}")


def _status_history(obj: Any) -> str | None:
    # Valor previo del estado si cambió en esta unidad de trabajo
    attr = "recipe_status" if isinstance(obj, Recipe) else "status" if isinstance(obj, ProcedureDocument) else None
    if attr is None:
        return None
    hist = inspect(obj).attrs[attr].history
    if not hist.deleted:
        return None
    previous = hist.deleted[0]
    return previous.value if isinstance(previous, enum.Enum) else previous
