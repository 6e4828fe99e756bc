"""Field-level merge of tier outputs by source trust."""
from __future__ import annotations

from dataclasses import replace

from recipe_import.models.extraction import TRUST_ORDER, Conflict, ExtractionAttempt, SourceKind
from recipe_import.models.recipe import UNTITLED_RECIPE, DietaryFlags, Ingredient, RecipeCandidate
from recipe_import.pipeline.aggregator import canonical_unit, normalize_ingredient_name
from recipe_import.pipeline.normalizer import renumber


def _rank(attempt: ExtractionAttempt) -> int:
    return TRUST_ORDER.index(attempt.source)


def _describe(ingredient: Ingredient) -> str:
    return f"{ingredient.amount:g} {ingredient.unit}".strip()


class TrustHierarchyResolver:
    """Caption beats visual beats audio; lower sources only fill gaps."""

    def merge(self, attempts: list[ExtractionAttempt]) -> tuple[RecipeCandidate | None, list[Conflict]]:
        usable = sorted((a for a in attempts if a.produced_recipe), key=_rank)
        if not usable:
            return None, []

        top = usable[0]
        merged = replace(
            top.raw_recipe,
            ingredients=list(top.raw_recipe.ingredients),
            instructions=list(top.raw_recipe.instructions),
            cuisines=list(top.raw_recipe.cuisines),
            dish_types=list(top.raw_recipe.dish_types),
        )
        conflicts: list[Conflict] = []
        title_source = top.source
        steps_source = top.source if merged.instructions else None
        ready_source = top.source
        ingredient_sources = [top.source] * len(merged.ingredients)

        for attempt in usable[1:]:
            lower = attempt.raw_recipe
            source = attempt.source

            if lower.title != UNTITLED_RECIPE:
                if merged.title == UNTITLED_RECIPE:
                    merged.title = lower.title
                    title_source = source
                elif lower.title.strip().lower() != merged.title.strip().lower():
                    conflicts.append(Conflict("title", merged.title, lower.title, title_source, source))

            if not merged.summary and lower.summary:
                merged.summary = lower.summary
            if not merged.image_url and lower.image_url:
                merged.image_url = lower.image_url
            if merged.nutrition_per_serving is None and lower.nutrition_per_serving is not None:
                merged.nutrition_per_serving = lower.nutrition_per_serving

            if lower.ready_in_minutes is not None:
                if merged.ready_in_minutes is None:
                    merged.ready_in_minutes = lower.ready_in_minutes
                    ready_source = source
                elif merged.ready_in_minutes != lower.ready_in_minutes:
                    conflicts.append(
                        Conflict("readyInMinutes", merged.ready_in_minutes, lower.ready_in_minutes, ready_source, source)
                    )

            if merged.dietary_flags == DietaryFlags() and lower.dietary_flags != DietaryFlags():
                merged.dietary_flags = lower.dietary_flags

            for value in lower.cuisines:
                if value not in merged.cuisines:
                    merged.cuisines.append(value)
            for value in lower.dish_types:
                if value not in merged.dish_types:
                    merged.dish_types.append(value)

            conflicts.extend(self._merge_ingredients(merged, lower, ingredient_sources, source))

            if lower.instructions:
                if steps_source is None:
                    merged.instructions = renumber(lower.instructions)
                    steps_source = source
                elif len(lower.instructions) != len(merged.instructions):
                    conflicts.append(
                        Conflict(
                            "instructions",
                            len(merged.instructions),
                            len(lower.instructions),
                            steps_source,
                            source,
                        )
                    )

        return merged, conflicts

    def _merge_ingredients(
        self,
        merged: RecipeCandidate,
        lower: RecipeCandidate,
        kept_sources: list[SourceKind],
        lower_source: SourceKind,
    ) -> list[Conflict]:
        """kept_sources runs parallel to merged.ingredients and grows with it."""
        conflicts: list[Conflict] = []
        index = {normalize_ingredient_name(i.name): pos for pos, i in enumerate(merged.ingredients)}
        for candidate in lower.ingredients:
            key = normalize_ingredient_name(candidate.name)
            pos = index.get(key)
            if pos is None:
                index[key] = len(merged.ingredients)
                merged.ingredients.append(candidate)
                kept_sources.append(lower_source)
                continue

            current = merged.ingredients[pos]
            if not current.unit and candidate.unit:
                current = replace(current, unit=candidate.unit)
                merged.ingredients[pos] = current
            same_unit = canonical_unit(current.unit) == canonical_unit(candidate.unit) or not candidate.unit
            if current.amount != candidate.amount or not same_unit:
                conflicts.append(
                    Conflict(
                        f"ingredients[{current.name}]",
                        _describe(current),
                        _describe(candidate),
                        kept_sources[pos],
                        lower_source,
                    )
                )
        return conflicts
