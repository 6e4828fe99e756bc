"""Coerce loosely-shaped model output into a RecipeCandidate."""
from __future__ import annotations

import re
from typing import Any

from recipe_import.models.recipe import (
    UNTITLED_RECIPE,
    DietaryFlags,
    Ingredient,
    InstructionStep,
    Nutrition,
    RecipeCandidate,
)
from recipe_import.tools.json_utils import parse_amount

_STEP_PREFIX_RE = re.compile(r"^\s*(?:step\s*)?\d+\s*[.):]\s*", re.IGNORECASE)

DIETARY_KEYS = {
    "vegetarian": ("vegetarian",),
    "vegan": ("vegan",),
    "gluten_free": ("glutenFree", "gluten_free"),
    "dairy_free": ("dairyFree", "dairy_free"),
}


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, "", []):
            return value
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)


def _normalize_ingredient(raw: Any) -> Ingredient | None:
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        return Ingredient(original_text=text, name=text, amount=1.0, unit="")
    if not isinstance(raw, dict):
        return None

    original = str(_first(raw, "originalText", "original", "original_text", "text") or "").strip()
    name = str(_first(raw, "name", "ingredient", "nameClean") or "").strip()
    if not name and not original:
        return None
    amount = parse_amount(_first(raw, "amount", "quantity", "qty"))
    unit = str(_first(raw, "unit", "unitShort", "units") or "").strip()
    return Ingredient(
        original_text=original or name,
        name=name or original,
        amount=amount if amount is not None else 1.0,
        unit=unit,
    )


def _ingredient_items(raw: Any) -> list[Any]:
    if isinstance(raw, str):
        return [line.strip() for line in raw.splitlines() if line.strip()]
    if isinstance(raw, list):
        return raw
    return []


def _step_texts(raw: Any) -> list[str]:
    texts: list[str] = []
    if isinstance(raw, str):
        # A single string is split on line breaks only.
        return [line for line in (part.strip() for part in raw.splitlines()) if line]
    if not isinstance(raw, list):
        return texts
    for item in raw:
        if isinstance(item, str):
            texts.append(item)
        elif isinstance(item, dict):
            nested = item.get("steps")
            if isinstance(nested, list):
                texts.extend(_step_texts(nested))
                continue
            text = _first(item, "step", "text", "instruction", "description")
            if text:
                texts.append(str(text))
    return texts


def _normalize_instructions(raw: Any) -> list[InstructionStep]:
    steps: list[InstructionStep] = []
    for text in _step_texts(raw):
        cleaned = _STEP_PREFIX_RE.sub("", text).strip()
        if cleaned:
            steps.append(InstructionStep(step_number=len(steps) + 1, text=cleaned))
    return steps


def _normalize_dietary(raw: dict[str, Any]) -> DietaryFlags:
    source = raw.get("dietaryFlags") or raw.get("dietary_flags") or raw
    if not isinstance(source, dict):
        source = {}
    values = {}
    for attr, keys in DIETARY_KEYS.items():
        values[attr] = any(_as_bool(source.get(key)) for key in keys)
    return DietaryFlags(**values)


def normalize_nutrition(raw: Any) -> Nutrition | None:
    if not isinstance(raw, dict) or not raw:
        return None
    known = {"calories", "protein", "carbs", "fat"}
    nutrition = Nutrition(
        calories=parse_amount(raw.get("calories")),
        protein=parse_amount(raw.get("protein")),
        carbs=parse_amount(_first(raw, "carbs", "carbohydrates")),
        fat=parse_amount(raw.get("fat")),
    )
    for key, value in raw.items():
        if key in known or key == "carbohydrates":
            continue
        parsed = parse_amount(value)
        if parsed is not None:
            nutrition.extra[key] = parsed
    return nutrition


def _string_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if str(v).strip()]
    return []


def normalize(raw: dict[str, Any] | None) -> RecipeCandidate:
    """Build a RecipeCandidate from model JSON, tolerating its common field-name variants."""
    raw = raw or {}
    if isinstance(raw.get("recipe"), dict):
        raw = raw["recipe"]

    ingredients = []
    for item in _ingredient_items(_first(raw, "extendedIngredients", "ingredients")):
        ingredient = _normalize_ingredient(item)
        if ingredient is not None:
            ingredients.append(ingredient)

    title = str(raw.get("title") or "").strip() or UNTITLED_RECIPE
    servings = parse_amount(_first(raw, "servings", "yield", "serves"))
    ready_in = parse_amount(_first(raw, "readyInMinutes", "ready_in_minutes", "totalTimeMinutes"))

    return RecipeCandidate(
        title=title,
        summary=str(_first(raw, "summary", "description") or "").strip(),
        ingredients=ingredients,
        instructions=_normalize_instructions(_first(raw, "analyzedInstructions", "instructions", "steps")),
        servings=servings if servings and servings > 0 else 4,
        ready_in_minutes=int(ready_in) if ready_in is not None else None,
        dietary_flags=_normalize_dietary(raw),
        nutrition_per_serving=normalize_nutrition(_first(raw, "nutritionPerServing", "nutrition")),
        image_url=str(_first(raw, "imageUrl", "image") or "").strip(),
        cuisines=_string_list(raw.get("cuisines")),
        dish_types=_string_list(_first(raw, "dishTypes", "dish_types")),
    )


def renumber(steps: list[InstructionStep]) -> list[InstructionStep]:
    return [InstructionStep(step_number=idx, text=step.text) for idx, step in enumerate(steps, start=1)]
