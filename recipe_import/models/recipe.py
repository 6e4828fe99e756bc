from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

UNTITLED_RECIPE = "Untitled Recipe"


@dataclass(slots=True)
class Ingredient:
    original_text: str
    name: str
    amount: float = 1.0
    unit: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalText": self.original_text,
            "name": self.name,
            "amount": self.amount,
            "unit": self.unit,
        }


@dataclass(slots=True)
class InstructionStep:
    step_number: int
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"stepNumber": self.step_number, "text": self.text}


@dataclass(slots=True)
class DietaryFlags:
    vegetarian: bool = False
    vegan: bool = False
    gluten_free: bool = False
    dairy_free: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "vegetarian": self.vegetarian,
            "vegan": self.vegan,
            "glutenFree": self.gluten_free,
            "dairyFree": self.dairy_free,
        }


@dataclass(slots=True)
class Nutrition:
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    extra: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "calories": self.calories,
            "protein": self.protein,
            "carbs": self.carbs,
            "fat": self.fat,
        }
        data.update(self.extra)
        return data


@dataclass(slots=True)
class RecipeCandidate:
    title: str = UNTITLED_RECIPE
    summary: str = ""
    ingredients: list[Ingredient] = field(default_factory=list)
    instructions: list[InstructionStep] = field(default_factory=list)
    servings: float = 4
    ready_in_minutes: int | None = None
    dietary_flags: DietaryFlags = field(default_factory=DietaryFlags)
    nutrition_per_serving: Nutrition | None = None
    image_url: str = ""
    cuisines: list[str] = field(default_factory=list)
    dish_types: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return len(self.ingredients) >= 3 and len(self.instructions) >= 2

    @property
    def has_content(self) -> bool:
        return bool(self.ingredients) and bool(self.instructions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "ingredients": [i.to_dict() for i in self.ingredients],
            "instructions": [s.to_dict() for s in self.instructions],
            "servings": self.servings,
            "readyInMinutes": self.ready_in_minutes,
            "dietaryFlags": self.dietary_flags.to_dict(),
            "nutritionPerServing": self.nutrition_per_serving.to_dict() if self.nutrition_per_serving else None,
            "imageUrl": self.image_url,
            "cuisines": list(self.cuisines),
            "dishTypes": list(self.dish_types),
        }
