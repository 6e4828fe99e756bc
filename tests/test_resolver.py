from recipe_import.models.extraction import ExtractionAttempt, SourceKind, Tier
from recipe_import.models.recipe import UNTITLED_RECIPE, Ingredient, InstructionStep, RecipeCandidate
from recipe_import.pipeline.resolver import TrustHierarchyResolver


def _recipe(title: str, ingredients: list[tuple[str, float, str]], steps: list[str], **kwargs) -> RecipeCandidate:
    return RecipeCandidate(
        title=title,
        ingredients=[Ingredient(original_text=f"{a:g} {u} {n}".strip(), name=n, amount=a, unit=u) for n, a, u in ingredients],
        instructions=[InstructionStep(step_number=i, text=t) for i, t in enumerate(steps, start=1)],
        **kwargs,
    )


def test_caption_amount_beats_visual_amount_and_records_one_conflict():
    caption = ExtractionAttempt(Tier.CAPTION_ONLY, _recipe("Bread", [("flour", 2.0, "cups")], ["Mix", "Bake"]))
    visual = ExtractionAttempt(Tier.IMAGE_ONLY, _recipe("Bread", [("flour", 3.0, "cups")], ["Mix", "Bake"]), 0.9)

    merged, conflicts = TrustHierarchyResolver().merge([visual, caption])

    assert merged.ingredients[0].amount == 2.0
    assert len(conflicts) == 1
    assert conflicts[0].kept_source == SourceKind.CAPTION
    assert conflicts[0].discarded_source == SourceKind.VISUAL
    assert conflicts[0].kept == "2 cups"
    assert conflicts[0].discarded == "3 cups"


def test_lower_sources_fill_gaps_only():
    caption = ExtractionAttempt(
        Tier.CAPTION_ONLY,
        _recipe(UNTITLED_RECIPE, [("salt", 1.0, "")], [], ready_in_minutes=None),
    )
    video = ExtractionAttempt(
        Tier.VIDEO_PRIMARY,
        _recipe("Salted Caramel", [("salt", 1.0, "tsp"), ("sugar", 200.0, "g")], ["Melt sugar", "Add salt"], ready_in_minutes=15),
    )

    merged, conflicts = TrustHierarchyResolver().merge([caption, video])

    assert merged.title == "Salted Caramel"
    assert merged.ready_in_minutes == 15
    assert [(i.name, i.unit) for i in merged.ingredients] == [("salt", "tsp"), ("sugar", "g")]
    assert [s.text for s in merged.instructions] == ["Melt sugar", "Add salt"]
    assert conflicts == []


def test_instructions_come_from_highest_source_that_has_them():
    caption = ExtractionAttempt(Tier.CAPTION_ONLY, _recipe("Soup", [("water", 1.0, "l")], ["Boil", "Season"]))
    video = ExtractionAttempt(Tier.VIDEO_PRIMARY, _recipe("Soup", [("water", 1.0, "l")], ["Boil", "Chop", "Season"]))

    merged, conflicts = TrustHierarchyResolver().merge([caption, video])

    assert [s.text for s in merged.instructions] == ["Boil", "Season"]
    assert [c.field for c in conflicts] == ["instructions"]


def test_failed_and_skipped_attempts_are_ignored():
    skipped = ExtractionAttempt(Tier.CAPTION_ONLY, skipped=True)
    video = ExtractionAttempt(Tier.VIDEO_PRIMARY, _recipe("Tacos", [("tortilla", 4.0, "")], ["Warm", "Fill"]))

    merged, conflicts = TrustHierarchyResolver().merge([skipped, video])

    assert merged.title == "Tacos"
    assert conflicts == []


def test_merge_without_usable_attempts_returns_none():
    merged, conflicts = TrustHierarchyResolver().merge([ExtractionAttempt(Tier.CAPTION_ONLY, skipped=True)])

    assert merged is None
    assert conflicts == []


def test_merge_does_not_mutate_attempt_recipes():
    caption_recipe = _recipe("Rice", [("rice", 1.0, "cup")], ["Cook"])
    caption = ExtractionAttempt(Tier.CAPTION_ONLY, caption_recipe)
    video = ExtractionAttempt(Tier.VIDEO_PRIMARY, _recipe("Rice", [("water", 2.0, "cups")], ["Cook"]))

    TrustHierarchyResolver().merge([caption, video])

    assert [i.name for i in caption_recipe.ingredients] == ["rice"]


def test_conflicts_name_the_source_that_filled_the_field():
    caption = ExtractionAttempt(
        Tier.CAPTION_ONLY,
        _recipe("Granola", [("oats", 2.0, "cups")], ["Mix", "Bake"], ready_in_minutes=None),
    )
    image = ExtractionAttempt(
        Tier.IMAGE_ONLY,
        _recipe("Granola", [("oats", 2.0, "cups"), ("honey", 60.0, "ml")], [], ready_in_minutes=40),
        0.9,
    )
    video = ExtractionAttempt(
        Tier.VIDEO_PRIMARY,
        _recipe("Granola", [("honey", 90.0, "ml")], [], ready_in_minutes=35),
        0.8,
    )

    merged, conflicts = TrustHierarchyResolver().merge([caption, image, video])

    assert merged.ready_in_minutes == 40
    by_field = {c.field: c for c in conflicts}
    assert by_field["readyInMinutes"].kept_source == SourceKind.VISUAL
    assert by_field["ingredients[honey]"].kept_source == SourceKind.VISUAL
    assert by_field["ingredients[honey]"].kept == "60 ml"
    assert "ingredients[oats]" not in by_field


def test_caption_values_still_report_caption_as_kept_source():
    caption = ExtractionAttempt(
        Tier.CAPTION_ONLY,
        _recipe("Soup", [("stock", 1.0, "l")], ["Simmer"], ready_in_minutes=30),
    )
    image = ExtractionAttempt(Tier.IMAGE_ONLY, _recipe("Soup", [("stock", 2.0, "l")], [], ready_in_minutes=45), 0.9)

    _, conflicts = TrustHierarchyResolver().merge([image, caption])

    assert {c.kept_source for c in conflicts} == {SourceKind.CAPTION}
    assert len(conflicts) == 2
