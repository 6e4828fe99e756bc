"""Merge duplicate ingredient lines."""
from __future__ import annotations

import re

from recipe_import.models.recipe import Ingredient

LEADING_DESCRIPTORS = {
    "a",
    "an",
    "the",
    "some",
    "fresh",
    "freshly",
    "dried",
    "ground",
    "chopped",
    "minced",
    "diced",
    "sliced",
    "grated",
    "shredded",
    "whole",
    "large",
    "medium",
    "small",
    "extra",
    "very",
    "finely",
    "roughly",
    "uncooked",
    "cooked",
    "raw",
}

UNIT_ALIASES = {
    "tsp": ("t", "tsp", "tsps", "teaspoon", "teaspoons"),
    "tbsp": ("tbl", "tbs", "tbsp", "tbsps", "tablespoon", "tablespoons"),
    "cup": ("c", "cup", "cups"),
    "g": ("g", "gr", "gram", "grams"),
    "kg": ("kg", "kgs", "kilogram", "kilograms"),
    "ml": ("ml", "milliliter", "milliliters", "millilitre", "millilitres"),
    "l": ("l", "liter", "liters", "litre", "litres"),
    "oz": ("oz", "ounce", "ounces"),
    "lb": ("lb", "lbs", "pound", "pounds"),
    "clove": ("clove", "cloves"),
    "pinch": ("pinch", "pinches"),
    "can": ("can", "cans", "tin", "tins"),
    "piece": ("piece", "pieces", "pc", "pcs"),
}
_UNIT_LOOKUP = {alias: canonical for canonical, aliases in UNIT_ALIASES.items() for alias in aliases}

_PAREN_RE = re.compile(r"\([^)]*\)")
_PREP_TAIL_RE = re.compile(
    r",\s*(?:finely |roughly |thinly |freshly )?"
    r"(?:diced|chopped|minced|sliced|peeled|grated|crushed|softened|melted|beaten|divided|to taste|optional)\b.*$"
)


def normalize_ingredient_name(name: str) -> str:
    """Grouping key for an ingredient name; never shown to users."""
    text = _PAREN_RE.sub(" ", (name or "").lower())
    text = _PREP_TAIL_RE.sub("", text)
    words = re.sub(r"[^\w\s-]", " ", text).split()
    while words and words[0] in LEADING_DESCRIPTORS:
        words.pop(0)
    return " ".join(words)


def canonical_unit(unit: str) -> str:
    cleaned = (unit or "").strip().lower().rstrip(".")
    return _UNIT_LOOKUP.get(cleaned, cleaned)


def _merge(first: Ingredient, other: Ingredient) -> Ingredient:
    original = first.original_text
    if other.original_text and other.original_text not in original.split("; "):
        original = f"{original}; {other.original_text}" if original else other.original_text
    return Ingredient(
        original_text=original,
        name=first.name,
        amount=round(first.amount + other.amount, 4),
        unit=first.unit,
    )


def aggregate_ingredients(ingredients: list[Ingredient]) -> list[Ingredient]:
    """Sum same-unit duplicates; keep differing units as adjacent separate lines.

    Groups appear in order of first occurrence, so running the result back through
    this function returns it unchanged.
    """
    groups: dict[str, dict[str, Ingredient]] = {}
    for ingredient in ingredients:
        key = normalize_ingredient_name(ingredient.name) or ingredient.name.strip().lower()
        by_unit = groups.setdefault(key, {})
        unit_key = canonical_unit(ingredient.unit)
        existing = by_unit.get(unit_key)
        by_unit[unit_key] = _merge(existing, ingredient) if existing else ingredient

    aggregated: list[Ingredient] = []
    for by_unit in groups.values():
        aggregated.extend(by_unit.values())
    return aggregated
