"""Rutas de la API."""

from . import documents, ingredients, recipes

__all__ = ["documents", "ingredients", "recipes"]
