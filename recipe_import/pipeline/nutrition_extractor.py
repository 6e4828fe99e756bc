"""Per-serving nutrition read from the caption when the author states it."""
from __future__ import annotations

import re

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import ModelProviderError
from recipe_import.llm_client import OpenRouterProvider
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.media import ModelProvider
from recipe_import.models.recipe import Nutrition
from recipe_import.pipeline.caption_extractor import caption_text_for
from recipe_import.pipeline.normalizer import normalize_nutrition
from recipe_import.tools.json_utils import extract_json_object

NUTRITION_KEYWORDS = (
    re.compile(r"calorie", re.IGNORECASE),
    re.compile(r"\bk?cals?\b", re.IGNORECASE),
    re.compile(r"\bmacros?\b", re.IGNORECASE),
    re.compile(r"\bprotein\b", re.IGNORECASE),
    re.compile(r"\bcarb(?:s|ohydrates?)?\b", re.IGNORECASE),
    re.compile(r"\bfat\b", re.IGNORECASE),
    re.compile(r"\b(?:fiber|fibre|sugars?|sodium)\b", re.IGNORECASE),
    re.compile(r"nutrition", re.IGNORECASE),
    re.compile(r"per serving", re.IGNORECASE),
    # Shorthand like "25p/30c/12f" or "P: 30"
    re.compile(r"\b\d+\s*[pcf]\s*/\s*\d+\s*[pcf]\b", re.IGNORECASE),
    re.compile(r"\b[PCF]:\s*\d+"),
)

NUTRITION_PROMPT = """Extract ONLY the nutrition information stated in this social media post text.

Rules:
- Extract values only when the text states them explicitly. Never estimate or calculate.
- When totals for several servings are given, report per-serving values.
- Shorthand such as "25p/30c/12f" means grams of protein, carbohydrates and fat.
- If the text states no nutrition, set "found" to false.

Reply with one JSON object:
{{"found": bool,
  "perServing": {{"calories": number|null, "protein": number|null, "carbohydrates": number|null,
                 "fat": number|null, "fiber": number|null, "sugar": number|null, "sodium": number|null}}}}

Post text:
\"\"\"
{text}
\"\"\"
"""


def has_nutrition_keywords(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in NUTRITION_KEYWORDS)


def _is_empty(nutrition: Nutrition) -> bool:
    core = (nutrition.calories, nutrition.protein, nutrition.carbs, nutrition.fat)
    return all(v is None for v in core) and not nutrition.extra


class NutritionExtractor:
    """Runs after the tiers and only fills nutrition the recipe is missing."""

    def __init__(self, provider: ModelProvider | None = None):
        self.provider = provider or OpenRouterProvider(
            settings.nutrition_model,
            temperature=0.1,
            max_tokens=settings.nutrition_max_tokens,
        )

    def should_attempt(self, evidence: EvidenceBundle) -> bool:
        return has_nutrition_keywords(caption_text_for(evidence))

    async def extract(self, evidence: EvidenceBundle) -> Nutrition | None:
        if not self.should_attempt(evidence):
            return None

        try:
            text = await self.provider.generate(NUTRITION_PROMPT.format(text=caption_text_for(evidence)))
        except ModelProviderError as e:
            logger.warning(f"Nutrition extraction failed for {evidence.source_url}: {e}")
            return None

        payload = extract_json_object(text)
        if not payload or not payload.get("found"):
            logger.debug(f"No stated nutrition in {evidence.source_url}")
            return None
        nutrition = normalize_nutrition(payload.get("perServing"))
        if nutrition is None or _is_empty(nutrition):
            return None
        return nutrition
