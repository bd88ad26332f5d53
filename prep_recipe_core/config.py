# prep_recipe_core/config.py
from dataclasses import dataclass, field
from functools import lru_cache
import os

from dotenv import load_dotenv

"""
prep_recipe_core.config
=======================

Gestión centralizada de configuración del core de recetas.

Este módulo define:
- La estructura de configuración (`Settings`)
- El mecanismo para cargar variables desde entorno (.env)
- Un acceso único y cacheado a la configuración (`get_settings`)

Convenciones
------------
- Las variables de entorno se cargan desde un archivo `.env` si existe.
- Los defaults están pensados para desarrollo local.
- En tests se puede llamar `get_settings.cache_clear()` después de cambiar
  el entorno.
"""

# Cargar variables de entorno desde .env (si existe)
load_dotenv()


@dataclass
class Settings:
    """
    Contenedor tipado de configuración global.

    Attributes
    ----------
    database_url:
        URL SQLAlchemy de la base relacional compartida.
    recipe_code_prefix:
        Prefijo fijo de los códigos de receta (`REC-XXX-001`).
    recipe_prefix_filler:
        Letra de relleno cuando el nombre tiene menos de 3 letras.
    procedure_category:
        Categoría con la que se guardan los documentos de procedimiento.
    system_author_name:
        Nombre de autor cuando no se puede resolver el usuario.
    """

    database_url: str = "sqlite:///data/prep_recipe_core.sqlite"

    # Códigos de receta
    recipe_code_prefix: str = "REC"
    recipe_prefix_filler: str = "X"

    # Documentos de procedimiento
    procedure_category: str = "Food Prep"
    system_author_name: str = "System"

    # Entorno / logging
    environment: str = "local"
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=list)


@lru_cache
def get_settings() -> Settings:
    """
    Devuelve una instancia única y cacheada de `Settings`.

    Variables de entorno utilizadas
    -------------------------------
    - DATABASE_URL
    - RECIPE_CODE_PREFIX (default: "REC")
    - RECIPE_PREFIX_FILLER (default: "X")
    - PROCEDURE_CATEGORY (default: "Food Prep")
    - SYSTEM_AUTHOR_NAME (default: "System")
    - ENVIRONMENT (default: "local")
    - LOG_LEVEL (default: "INFO")
    - CORS_ORIGINS (lista separada por comas)
    """
    cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:3001")

    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///data/prep_recipe_core.sqlite"),
        recipe_code_prefix=os.getenv("RECIPE_CODE_PREFIX", "REC"),
        recipe_prefix_filler=(os.getenv("RECIPE_PREFIX_FILLER", "X") or "X")[0].upper(),
        procedure_category=os.getenv("PROCEDURE_CATEGORY", "Food Prep"),
        system_author_name=os.getenv("SYSTEM_AUTHOR_NAME", "System"),
        environment=os.getenv("ENVIRONMENT", "local"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=[o.strip() for o in cors_origins_str.split(",") if o.strip()],
    )
