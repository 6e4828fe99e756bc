"""Video tier: transcribe speech and on-screen text with a multimodal model."""
from __future__ import annotations

import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

import httpx
from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import (
    MediaExpiredError,
    MediaTooLargeError,
    ModelProviderError,
    NetworkError,
    NoRecipeFoundError,
    RecipeImportError,
)
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import ExtractionAttempt, Tier
from recipe_import.models.media import MediaPayload, ModelProvider, VideoMedia
from recipe_import.pipeline.caption_extractor import clean_caption
from recipe_import.pipeline.normalizer import normalize
from recipe_import.pipeline.tiers import TierState, after_video_primary
from recipe_import.tools.json_utils import extract_json_object

PRIMARY_CONFIDENCE = 1.0
FALLBACK_CONFIDENCE = 0.95

VIDEO_PROMPT = """You are given a cooking video from a social media post. Extract the recipe it shows.

1. Transcribe ALL spoken content (narration, voice-over, dialogue).
2. Read ALL on-screen text overlays (ingredient lists, quantities, temperatures, times, step captions).
3. When on-screen text and narration disagree, the on-screen text wins: on-screen numbers are EXACT, spoken descriptions are APPROXIMATE.
4. Combine both into one recipe. Keep the order in which steps happen in the video.
5. Give every quantity as a decimal number (1/2 -> 0.5).

Post caption (may be empty or unrelated):
\"\"\"
{caption}
\"\"\"

Reply with one JSON object:
{{"title": str, "summary": str, "servings": number, "readyInMinutes": number|null,
  "ingredients": [{{"originalText": str, "name": str, "amount": number, "unit": str}}],
  "instructions": [{{"stepNumber": number, "text": str}}],
  "dietaryFlags": {{"vegetarian": bool, "vegan": bool, "glutenFree": bool, "dairyFree": bool}},
  "cuisines": [str], "dishTypes": [str]}}
"""

Downloader = Callable[[str], Awaitable[VideoMedia]]


async def download_video(
    url: str,
    *,
    max_bytes: int | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> VideoMedia:
    """Stream a video into a temp file; the caller owns (and must delete) the file."""
    limit = max_bytes or settings.video_max_bytes
    fd, raw_path = tempfile.mkstemp(prefix="recipe-video-", suffix=".mp4")
    os.close(fd)
    path = Path(raw_path)

    async def _do_request(client: httpx.AsyncClient) -> VideoMedia:
        async with client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            declared = int(response.headers.get("content-length") or 0)
            if declared > limit:
                raise MediaTooLargeError(declared, limit)
            mime_type = response.headers.get("content-type", "video/mp4").split(";")[0].strip()
            written = 0
            with path.open("wb") as handle:
                async for chunk in response.aiter_bytes():
                    written += len(chunk)
                    if written > limit:
                        raise MediaTooLargeError(written, limit)
                    handle.write(chunk)
        if not mime_type.startswith("video/"):
            mime_type = "video/mp4"
        return VideoMedia(path=path, mime_type=mime_type, size_bytes=written)

    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=settings.video_download_timeout_s) as client:
                return await _do_request(client)
        return await _do_request(http_client)
    except httpx.HTTPError as e:
        path.unlink(missing_ok=True)
        raise NetworkError(f"Video download failed: {e}") from e
    except BaseException:
        path.unlink(missing_ok=True)
        raise


class VideoSynthesizer:
    def __init__(
        self,
        primary: ModelProvider | None = None,
        fallback: ModelProvider | None = None,
        *,
        downloader: Downloader | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        if primary is None:
            from recipe_import.gemini_client import GeminiVideoProvider

            primary = GeminiVideoProvider()
        if fallback is None:
            from recipe_import.llm_client import OpenRouterProvider

            fallback = OpenRouterProvider(settings.video_fallback_model)
        self.primary = primary
        self.fallback = fallback
        self._download = downloader or download_video
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def extract(self, evidence: EvidenceBundle) -> list[ExtractionAttempt]:
        """Run the primary model, escalating once to the paid fallback on a rate limit.

        The returned list always ends with the attempt that decides the video tier.
        """
        video = evidence.usable_video(self._clock())
        if video is None:
            error = MediaExpiredError(f"Video URL for {evidence.source_url} expired or missing")
            logger.info(str(error))
            return [ExtractionAttempt(tier=Tier.VIDEO_PRIMARY, error=error, skipped=True)]

        try:
            media = await self._download(video.url)
        except (MediaTooLargeError, NetworkError) as e:
            logger.warning(f"Skipping video tier for {evidence.source_url}: {e}")
            return [ExtractionAttempt(tier=Tier.VIDEO_PRIMARY, error=e, skipped=True)]

        try:
            prompt = VIDEO_PROMPT.format(caption=clean_caption(evidence.caption_text))
            payload = MediaPayload(video=media)
            attempts = [await self._run(Tier.VIDEO_PRIMARY, self.primary, prompt, payload, PRIMARY_CONFIDENCE)]
            if after_video_primary(evidence, attempts[0]) == TierState.VIDEO_FALLBACK_PAID:
                logger.warning(
                    f"{self.primary.model} rate limited; retrying {evidence.source_url} with {self.fallback.model}"
                )
                attempts.append(
                    await self._run(Tier.VIDEO_FALLBACK_PAID, self.fallback, prompt, payload, FALLBACK_CONFIDENCE)
                )
            return attempts
        finally:
            media.path.unlink(missing_ok=True)

    async def _run(
        self,
        tier: Tier,
        provider: ModelProvider,
        prompt: str,
        media: MediaPayload,
        confidence: float,
    ) -> ExtractionAttempt:
        started = time.monotonic()
        error: RecipeImportError | None = None
        recipe = None
        try:
            text = await provider.generate(prompt, media)
        except ModelProviderError as e:
            error = e
        else:
            payload = extract_json_object(text)
            if payload is None:
                error = NoRecipeFoundError(f"{provider.model} reply contained no JSON object")
            else:
                recipe = normalize(payload)
        return ExtractionAttempt(
            tier=tier,
            raw_recipe=recipe,
            source_confidence=confidence,
            error=error,
            model=provider.model,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
