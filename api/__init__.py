"""
API HTTP para prep-recipe-core.

Esta capa expone endpoints REST sobre el core de recetas
(prep_recipe_core): enlace de prep items, edición de líneas, versionado y
documentos de procedimiento.

La API está diseñada para ser consumida por:
- UI web (editor de recetas)
- Clientes externos
- Scripts de automatización
"""
