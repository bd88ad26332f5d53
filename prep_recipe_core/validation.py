"""
Validación de datos de receta antes de guardar o publicar.

Las reglas devuelven errores (bloquean) y warnings (informativos) con un
código estable para que la UI pueda mostrarlos por campo.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .db.models import RecipeType

MAX_NAME_LENGTH = 255
VALID_RECIPE_TYPES = [t.value for t in RecipeType]


@dataclass
class ValidationIssue:
    field: str
    severity: str  # "error" | "warning"
    message: str
    code: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, field_name: str, message: str, code: str) -> None:
        self.errors.append(ValidationIssue(field_name, "error", message, code))

    def warning(self, field_name: str, message: str, code: str) -> None:
        self.warnings.append(ValidationIssue(field_name, "warning", message, code))

    def to_response(self) -> Dict[str, Any]:
        """Formato para respuestas de la API (omite listas vacías)."""
        response: Dict[str, Any] = {"success": self.valid}
        if self.errors:
            response["errors"] = [e.to_dict() for e in self.errors]
        if self.warnings:
            response["warnings"] = [w.to_dict() for w in self.warnings]
        return response


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_ingredient_line(result: ValidationResult, prefix: str, line: Mapping[str, Any]) -> None:
    """
    Reglas de una línea de ingrediente (agrega issues a `result`).
    """
    ingredient_id = line.get("ingredient_id")
    sub_recipe_id = line.get("sub_recipe_id")
    if not ingredient_id and not sub_recipe_id:
        result.error(prefix, "Ingredient must reference a stock item or sub-recipe", "INGREDIENT_NO_SOURCE")
    if ingredient_id and sub_recipe_id:
        result.error(prefix, "Ingredient cannot reference both stock item and sub-recipe", "INGREDIENT_DUAL_SOURCE")

    quantity = line.get("quantity")
    if quantity is None:
        result.error(f"{prefix}.quantity", "Ingredient quantity is required", "INGREDIENT_QUANTITY_REQUIRED")
    elif not _is_number(quantity) or quantity <= 0:
        result.error(f"{prefix}.quantity", "Ingredient quantity must be a positive number", "INGREDIENT_QUANTITY_INVALID")

    unit = line.get("unit")
    if not unit or not str(unit).strip():
        result.error(f"{prefix}.unit", "Ingredient unit is required", "INGREDIENT_UNIT_REQUIRED")

    yield_factor = line.get("yield_factor")
    if yield_factor is not None and (not _is_number(yield_factor) or yield_factor <= 0 or yield_factor > 1):
        result.error(f"{prefix}.yield_factor", "Yield factor must be between 0 and 1", "INGREDIENT_YIELD_INVALID")


def _validate_method_steps(result: ValidationResult, steps: Any) -> None:
    if not isinstance(steps, list):
        result.error("method_steps", "Method steps must be an array", "METHOD_STEPS_NOT_ARRAY")
        return

    for index, step in enumerate(steps):
        prefix = f"method_steps[{index}]"
        if not isinstance(step, Mapping):
            result.error(prefix, "Step must be an object", "STEP_NOT_OBJECT")
            continue
        instruction = step.get("instruction")
        if not instruction or not str(instruction).strip():
            result.error(f"{prefix}.instruction", "Step instruction is required", "STEP_INSTRUCTION_REQUIRED")

        if step.get("step_number") != index + 1:
            result.warning(
                f"{prefix}.step_number",
                f"Step number should be {index + 1}, got {step.get('step_number')}",
                "STEP_NUMBER_SEQUENCE",
            )

        duration = step.get("duration_minutes")
        if duration is not None and (not _is_number(duration) or duration < 0):
            result.error(f"{prefix}.duration_minutes", "Duration must be a non-negative number", "STEP_DURATION_INVALID")

        temperature = step.get("temperature")
        if temperature is not None:
            if not _is_number(temperature):
                result.error(f"{prefix}.temperature", "Temperature must be a number", "STEP_TEMPERATURE_INVALID")
            elif temperature < -50 or temperature > 500:
                result.warning(
                    f"{prefix}.temperature",
                    "Temperature seems unusual (outside -50°C to 500°C)",
                    "STEP_TEMPERATURE_UNUSUAL",
                )

    if not steps:
        result.warning("method_steps", "Recipe has no method steps", "NO_METHOD_STEPS")


def validate_recipe_data(data: Mapping[str, Any], is_publishing: bool = False) -> ValidationResult:
    """
    Valida los datos de una receta antes de guardar.

    Args:
        data: Campos de la receta (name, recipe_type, ingredients, method_steps, sell_price)
        is_publishing: Validación estricta (publicar exige ingredientes)

    Returns:
        ValidationResult con errores y warnings
    """
    result = ValidationResult()

    name = data.get("name")
    if not name or not str(name).strip():
        result.error("name", "Recipe name is required", "RECIPE_NAME_REQUIRED")
    elif len(str(name)) > MAX_NAME_LENGTH:
        result.error("name", f"Recipe name must be less than {MAX_NAME_LENGTH} characters", "RECIPE_NAME_TOO_LONG")

    recipe_type = data.get("recipe_type")
    if isinstance(recipe_type, RecipeType):
        recipe_type = recipe_type.value
    if recipe_type not in VALID_RECIPE_TYPES:
        result.error(
            "recipe_type",
            f"Recipe type must be one of: {', '.join(VALID_RECIPE_TYPES)}",
            "INVALID_RECIPE_TYPE",
        )

    ingredients = data.get("ingredients")
    if ingredients is not None:
        if not isinstance(ingredients, list):
            result.error("ingredients", "Ingredients must be an array", "INGREDIENTS_NOT_ARRAY")
        else:
            for index, line in enumerate(ingredients):
                validate_ingredient_line(result, f"ingredients[{index}]", line)
            if not ingredients:
                if is_publishing:
                    result.error(
                        "ingredients",
                        "Recipe must have at least one ingredient to be published",
                        "INGREDIENTS_REQUIRED_FOR_PUBLISH",
                    )
                else:
                    result.warning("ingredients", "Recipe has no ingredients", "NO_INGREDIENTS")
    elif is_publishing:
        result.error("ingredients", "Recipe must have ingredients to be published", "INGREDIENTS_REQUIRED_FOR_PUBLISH")

    if data.get("method_steps") is not None:
        _validate_method_steps(result, data["method_steps"])

    if recipe_type == RecipeType.DISH.value:
        sell_price = data.get("sell_price")
        if sell_price is not None:
            if not _is_number(sell_price) or sell_price < 0:
                result.error("sell_price", "Sell price must be a non-negative number", "SELL_PRICE_INVALID")
        elif is_publishing:
            result.warning("sell_price", "Recipe has no sell price set", "NO_SELL_PRICE")

    return result


def validate_version_match(expected_version: Optional[float], current_version: float) -> bool:
    """
    Control optimista: None no chequea; si no, compara a un decimal.
    """
    if expected_version is None:
        return True
    return round(float(expected_version), 1) == round(float(current_version), 1)
