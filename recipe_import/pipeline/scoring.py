from __future__ import annotations

from dataclasses import dataclass

from recipe_import.models.extraction import Conflict, ExtractionAttempt, SourceKind, Tier
from recipe_import.models.recipe import UNTITLED_RECIPE, RecipeCandidate


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """Heuristic constants; tune against labelled imports rather than trusting them as optimal."""

    base: float = 0.5
    per_source: float = 0.2
    many_ingredients_bonus: float = 0.05
    many_ingredients_threshold: int = 5
    many_steps_bonus: float = 0.05
    many_steps_threshold: int = 5
    conflict_penalty: float = 0.05
    untitled_penalty: float = 0.1
    fallback_floor: float = 0.1
    fallback_ceiling: float = 1.0
    primary_video_floor: float = 0.0
    primary_video_ceiling: float = 0.95


DEFAULT_WEIGHTS = ScoringWeights()


def sources_consulted(attempts: list[ExtractionAttempt]) -> set[SourceKind]:
    consulted: set[SourceKind] = set()
    for attempt in attempts:
        if attempt.produced_recipe:
            consulted.update(attempt.sources)
    return consulted


def decisive_attempt(attempts: list[ExtractionAttempt]) -> ExtractionAttempt | None:
    """The latest tier that produced a recipe; it sets the tier and confidence multiplier."""
    for attempt in reversed(attempts):
        if attempt.produced_recipe:
            return attempt
    return None


def score(
    candidate: RecipeCandidate,
    attempts: list[ExtractionAttempt],
    conflicts: list[Conflict] | None = None,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    decisive = decisive_attempt(attempts)
    value = weights.base + weights.per_source * len(sources_consulted(attempts))
    if len(candidate.ingredients) > weights.many_ingredients_threshold:
        value += weights.many_ingredients_bonus
    if len(candidate.instructions) > weights.many_steps_threshold:
        value += weights.many_steps_bonus
    value -= weights.conflict_penalty * len(conflicts or [])
    if candidate.title == UNTITLED_RECIPE:
        value -= weights.untitled_penalty
    if decisive is not None:
        value *= decisive.source_confidence

    if decisive is not None and decisive.tier == Tier.VIDEO_PRIMARY:
        low, high = weights.primary_video_floor, weights.primary_video_ceiling
    else:
        low, high = weights.fallback_floor, weights.fallback_ceiling
    return round(min(max(value, low), high), 4)
