"""Caption-only tier: one text model call over the post caption."""
from __future__ import annotations

import re
import time

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import ModelProviderError, NoRecipeFoundError
from recipe_import.llm_client import OpenRouterProvider
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import ExtractionAttempt, Tier
from recipe_import.models.media import ModelProvider
from recipe_import.pipeline.normalizer import normalize
from recipe_import.tools.json_utils import extract_json_object

REDIRECT_PATTERNS = (
    re.compile(r"full recipe (?:is )?(?:in|on) (?:the |my )?(?:video|reel)", re.IGNORECASE),
    re.compile(r"recipe (?:is )?(?:in|on) (?:the |my )?(?:video|reel)", re.IGNORECASE),
    re.compile(r"watch (?:the )?(?:video |reel )?(?:for|to see) (?:the )?(?:full )?(?:instructions|recipe|steps)", re.IGNORECASE),
    re.compile(r"(?:full )?recipe (?:is )?(?:at the )?link in (?:my )?bio", re.IGNORECASE),
    re.compile(r"recipe (?:is )?in (?:the )?comments", re.IGNORECASE),
    re.compile(r"(?:recipe|instructions) (?:is |are )?on (?:my |the )?(?:blog|website)", re.IGNORECASE),
)

_MENTION_RE = re.compile(r"(?<!\w)@[\w.]+")
_HASHTAG_ONLY_LINE_RE = re.compile(r"^(?:\s*#\w+)+\s*$", re.UNICODE)
_EMOJI_RE = re.compile("[\U0001F300-\U0001FAFF\u2600-\u27BF\uFE0F]")

CAPTION_PROMPT = """Extract the recipe contained in this social media post text.

Rules:
- Copy every ingredient line VERBATIM into "originalText", including preparation descriptors such as "finely chopped" or "at room temperature".
- Put the ingredient name (without quantity) in "name", the numeric quantity as a decimal number in "amount" (1/2 -> 0.5), and the unit in "unit".
- If the text contains a numbered list of steps, return EXACTLY that many instruction steps in the same order. Never merge the sentences of one numbered step, and never split one numbered step into several, even when it is long.
- Use only information present in the text. Do not invent ingredients or steps.
- If the text contains no recipe, return empty "ingredients" and "instructions" lists.

Reply with one JSON object:
{{"title": str, "summary": str, "servings": number, "readyInMinutes": number|null,
  "ingredients": [{{"originalText": str, "name": str, "amount": number, "unit": str}}],
  "instructions": [{{"stepNumber": number, "text": str}}],
  "dietaryFlags": {{"vegetarian": bool, "vegan": bool, "glutenFree": bool, "dairyFree": bool}},
  "cuisines": [str], "dishTypes": [str], "imageUrl": str|null}}

Post text:
\"\"\"
{text}
\"\"\"
"""


def clean_caption(text: str) -> str:
    """Drop hashtag-only lines, @-mentions and decorative emoji; collapse blank runs."""
    lines: list[str] = []
    for line in (text or "").splitlines():
        if _HASHTAG_ONLY_LINE_RE.match(line):
            continue
        line = _EMOJI_RE.sub("", _MENTION_RE.sub("", line)).rstrip()
        if line.strip() or (lines and lines[-1]):
            lines.append(line.strip())
    return "\n".join(lines).strip()


def points_at_video(text: str) -> bool:
    return any(pattern.search(text or "") for pattern in REDIRECT_PATTERNS)


def caption_text_for(evidence: EvidenceBundle) -> str:
    parts = [clean_caption(evidence.caption_text)]
    parts.extend(clean_caption(c) for c in evidence.author_comments)
    return "\n\n".join(p for p in parts if p)


class CaptionExtractor:
    tier = Tier.CAPTION_ONLY

    def __init__(self, provider: ModelProvider | None = None, *, min_length: int | None = None):
        self.provider = provider or OpenRouterProvider(settings.caption_model)
        self.min_length = min_length or settings.caption_min_length

    def should_attempt(self, evidence: EvidenceBundle) -> bool:
        # Author comments feed the prompt but never count toward the length gate.
        if len(clean_caption(evidence.caption_text)) < self.min_length:
            return False
        return not points_at_video(evidence.caption_text)

    async def extract(self, evidence: EvidenceBundle) -> ExtractionAttempt:
        if not self.should_attempt(evidence):
            logger.info(f"Skipping caption tier for {evidence.source_url}: caption too short or defers to video")
            return ExtractionAttempt(tier=self.tier, skipped=True, model=self.provider.model)

        started = time.monotonic()
        prompt = CAPTION_PROMPT.format(text=caption_text_for(evidence))
        try:
            text = await self.provider.generate(prompt)
        except ModelProviderError as e:
            return ExtractionAttempt(
                tier=self.tier,
                error=e,
                model=self.provider.model,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        payload = extract_json_object(text)
        duration_ms = int((time.monotonic() - started) * 1000)
        if payload is None:
            return ExtractionAttempt(
                tier=self.tier,
                error=NoRecipeFoundError("Caption model reply contained no JSON object"),
                model=self.provider.model,
                duration_ms=duration_ms,
            )
        return ExtractionAttempt(
            tier=self.tier,
            raw_recipe=normalize(payload),
            source_confidence=1.0,
            model=self.provider.model,
            duration_ms=duration_ms,
        )
