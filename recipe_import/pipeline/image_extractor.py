"""Image tier: static post photos plus caption through a vision model."""
from __future__ import annotations

import time

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import ModelProviderError, NoRecipeFoundError
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import ExtractionAttempt, Tier
from recipe_import.models.media import MediaPayload, ModelProvider
from recipe_import.pipeline.caption_extractor import caption_text_for
from recipe_import.pipeline.normalizer import normalize
from recipe_import.tools.image_urls import is_valid_image_url
from recipe_import.tools.json_utils import extract_json_object

IMAGE_CONFIDENCE = 0.9

IMAGE_PROMPT = """These photos come from a social media cooking post. Read any recipe text visible in the
images (ingredient cards, handwritten notes, overlays) and combine it with the caption below.
Only report what is visible or written; give quantities as decimal numbers.

Caption:
\"\"\"
{caption}
\"\"\"

Reply with one JSON object with keys "title", "summary", "servings", "readyInMinutes",
"ingredients" (list of {{"originalText", "name", "amount", "unit"}}),
"instructions" (list of {{"stepNumber", "text"}}), "dietaryFlags", "cuisines", "dishTypes".
"""


class ImageExtractor:
    tier = Tier.IMAGE_ONLY

    def __init__(self, provider: ModelProvider | None = None, *, max_images: int | None = None):
        if provider is None:
            from recipe_import.llm_client import OpenRouterProvider

            provider = OpenRouterProvider(settings.image_model)
        self.provider = provider
        self.max_images = max_images or settings.image_tier_max_images

    def image_urls(self, evidence: EvidenceBundle) -> list[str]:
        return [i.url for i in evidence.images if is_valid_image_url(i.url)][: self.max_images]

    async def extract(self, evidence: EvidenceBundle) -> ExtractionAttempt:
        urls = self.image_urls(evidence)
        if not urls:
            logger.info(f"Skipping image tier for {evidence.source_url}: no usable images")
            return ExtractionAttempt(tier=self.tier, skipped=True, model=self.provider.model)

        started = time.monotonic()
        prompt = IMAGE_PROMPT.format(caption=caption_text_for(evidence))
        recipe = None
        error = None
        try:
            text = await self.provider.generate(prompt, MediaPayload(image_urls=urls))
        except ModelProviderError as e:
            error = e
        else:
            payload = extract_json_object(text)
            if payload is None:
                error = NoRecipeFoundError(f"{self.provider.model} reply contained no JSON object")
            else:
                recipe = normalize(payload)
        return ExtractionAttempt(
            tier=self.tier,
            raw_recipe=recipe,
            source_confidence=IMAGE_CONFIDENCE,
            error=error,
            model=self.provider.model,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
