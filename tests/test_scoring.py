from recipe_import.models.extraction import Conflict, ExtractionAttempt, SourceKind, Tier
from recipe_import.models.recipe import UNTITLED_RECIPE, Ingredient, InstructionStep, RecipeCandidate
from recipe_import.pipeline.scoring import ScoringWeights, score, sources_consulted


def _recipe(n_ingredients: int, n_steps: int, title: str = "Dish") -> RecipeCandidate:
    return RecipeCandidate(
        title=title,
        ingredients=[Ingredient(original_text=f"item {i}", name=f"item {i}", amount=1.0) for i in range(n_ingredients)],
        instructions=[InstructionStep(step_number=i + 1, text=f"step {i}") for i in range(n_steps)],
    )


def _conflict() -> Conflict:
    return Conflict("title", "A", "B", SourceKind.CAPTION, SourceKind.VISUAL)


def test_caption_only_result_scores_base_plus_one_source():
    recipe = _recipe(2, 2)
    attempts = [ExtractionAttempt(Tier.CAPTION_ONLY, recipe)]

    assert score(recipe, attempts) == 0.7


def test_video_counts_as_visual_and_audio_sources():
    recipe = _recipe(5, 4)
    attempts = [ExtractionAttempt(Tier.CAPTION_ONLY, skipped=True), ExtractionAttempt(Tier.VIDEO_PRIMARY, recipe)]

    assert sources_consulted(attempts) == {SourceKind.VISUAL, SourceKind.AUDIO}
    assert score(recipe, attempts) == 0.9


def test_primary_video_is_capped_below_one():
    recipe = _recipe(8, 8)
    attempts = [ExtractionAttempt(Tier.CAPTION_ONLY, recipe), ExtractionAttempt(Tier.VIDEO_PRIMARY, recipe)]

    assert score(recipe, attempts) == 0.95


def test_paid_fallback_multiplier_applies():
    recipe = _recipe(5, 4)
    attempts = [ExtractionAttempt(Tier.VIDEO_FALLBACK_PAID, recipe, source_confidence=0.95)]

    assert score(recipe, attempts) == round(0.9 * 0.95, 4)


def test_size_bonuses_conflicts_and_untitled_penalty():
    recipe = _recipe(6, 6, title=UNTITLED_RECIPE)
    attempts = [ExtractionAttempt(Tier.CAPTION_ONLY, recipe)]

    # 0.5 + 0.2 + 0.05 + 0.05 - 0.1 - 2 * 0.05
    assert score(recipe, attempts, [_conflict(), _conflict()]) == 0.6


def test_fallback_tiers_never_drop_below_floor():
    recipe = _recipe(1, 1, title=UNTITLED_RECIPE)
    attempts = [ExtractionAttempt(Tier.IMAGE_ONLY, recipe, source_confidence=0.9)]

    assert score(recipe, attempts, [_conflict()] * 20) == 0.1


def test_primary_video_floor_is_zero():
    recipe = _recipe(1, 1)
    attempts = [ExtractionAttempt(Tier.VIDEO_PRIMARY, recipe)]

    assert score(recipe, attempts, [_conflict()] * 40) == 0.0


def test_weights_are_tunable():
    recipe = _recipe(2, 2)
    attempts = [ExtractionAttempt(Tier.CAPTION_ONLY, recipe)]

    assert score(recipe, attempts, weights=ScoringWeights(base=0.3, per_source=0.1)) == 0.4
