"""End-to-end recipe import: evidence, tiers, merge, score, stated nutrition."""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import (
    EvidenceUnavailable,
    MediaExpiredError,
    MediaTooLargeError,
    ModelProviderError,
    NetworkError,
    QuotaExceededError,
)
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import (
    ExtractionAttempt,
    ExtractionResult,
    FailureReason,
    SourcesUsed,
    Tier,
)
from recipe_import.models.recipe import UNTITLED_RECIPE
from recipe_import.pipeline.aggregator import aggregate_ingredients
from recipe_import.pipeline.cache import ResultCache
from recipe_import.pipeline.caption_extractor import CaptionExtractor
from recipe_import.pipeline.evidence_fetcher import EvidenceFetcher
from recipe_import.pipeline.image_extractor import ImageExtractor
from recipe_import.pipeline.image_selector import select_image
from recipe_import.pipeline.normalizer import renumber
from recipe_import.pipeline.nutrition_extractor import NutritionExtractor
from recipe_import.pipeline.resolver import TrustHierarchyResolver
from recipe_import.pipeline.scoring import DEFAULT_WEIGHTS, ScoringWeights, decisive_attempt, score
from recipe_import.pipeline.tiers import (
    TierState,
    after_caption,
    after_image,
    after_video_fallback,
    after_video_primary,
)
from recipe_import.pipeline.usage_gate import UsageGate
from recipe_import.pipeline.video_synthesizer import VideoSynthesizer
from recipe_import.services.logger import log_extraction_step

NOTE_CAPTION_SKIPPED = "Caption was too short or pointed at the video, so caption extraction was skipped."
NOTE_VIDEO_EXPIRED = "The video link had expired, so video analysis was skipped."
NOTE_VIDEO_TOO_LARGE = "The video was too large to analyse, so video analysis was skipped."
NOTE_VIDEO_UNREACHABLE = "The video could not be downloaded, so video analysis was skipped."
NOTE_PAID_FALLBACK = "The primary video model was rate limited; a fallback model was used."
NOTE_CONFLICTS = "Sources disagreed on some values; the caption's values were kept."
NOTE_UNTITLED = "No title was found; please add one."
NOTE_INCOMPLETE = "The recipe may be incomplete; please review it."
NOTE_LOW_CONFIDENCE = "Low confidence; please review before saving."
NOTE_NO_RECIPE = "No recipe was detected in this post."
NOTE_PROVIDER_DOWN = "The recipe extraction service is temporarily unavailable; please try again later."
NOTE_EVIDENCE_UNAVAILABLE = "Couldn't access this post."
NOTE_EVIDENCE_RETRY = "Couldn't access this post right now; please try again shortly."
NOTE_QUOTA = "You've reached your monthly import limit."
NOTE_TIMED_OUT = "The import took too long and was stopped."
NOTE_DEGRADED_QUOTA = "Usage tracking is unavailable; this import was allowed."

LOW_CONFIDENCE = 0.5


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _attempt_notes(attempts: list[ExtractionAttempt]) -> list[str]:
    notes: list[str] = []
    for attempt in attempts:
        if attempt.tier == Tier.CAPTION_ONLY and attempt.skipped:
            notes.append(NOTE_CAPTION_SKIPPED)
        elif attempt.tier == Tier.VIDEO_PRIMARY and attempt.skipped:
            if isinstance(attempt.error, MediaExpiredError):
                notes.append(NOTE_VIDEO_EXPIRED)
            elif isinstance(attempt.error, MediaTooLargeError):
                notes.append(NOTE_VIDEO_TOO_LARGE)
            elif isinstance(attempt.error, NetworkError):
                notes.append(NOTE_VIDEO_UNREACHABLE)
        elif attempt.tier == Tier.VIDEO_FALLBACK_PAID:
            notes.append(NOTE_PAID_FALLBACK)
    return notes


def failure_result(reason: FailureReason, note: str, started: float) -> ExtractionResult:
    return ExtractionResult(
        success=False,
        failure_reason=reason,
        notes=[note],
        processing_time_ms=_elapsed_ms(started),
    )


class RecipeImportPipeline:
    def __init__(
        self,
        *,
        fetcher: EvidenceFetcher,
        cache: ResultCache,
        usage_gate: UsageGate,
        caption_extractor: CaptionExtractor,
        video_synthesizer: VideoSynthesizer,
        image_extractor: ImageExtractor,
        resolver: TrustHierarchyResolver | None = None,
        nutrition_extractor: NutritionExtractor | None = None,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        timeout_s: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.usage_gate = usage_gate
        self.caption_extractor = caption_extractor
        self.video_synthesizer = video_synthesizer
        self.image_extractor = image_extractor
        self.resolver = resolver or TrustHierarchyResolver()
        self.nutrition_extractor = nutrition_extractor
        self.weights = weights
        self.timeout_s = timeout_s or settings.pipeline_timeout_s
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def extract(self, source_url: str, user_id: str) -> ExtractionResult:
        """Import a recipe from a post URL; only a corrupted cache raises."""
        started = time.monotonic()
        url = source_url.strip()

        cached = await self.cache.get_result(url)
        if cached is not None and cached.success:
            logger.info(f"Returning cached extraction for {url}")
            return cached

        try:
            decision = await self.usage_gate.reserve(user_id)
        except QuotaExceededError as e:
            logger.info(str(e))
            return failure_result(FailureReason.QUOTA_EXCEEDED, NOTE_QUOTA, started)

        try:
            async with asyncio.timeout(self.timeout_s):
                evidence = await self.cache.get_evidence(url)
                if evidence is None:
                    evidence = await self.fetcher.fetch(url, user_id)
                    await self.cache.put_evidence(evidence)
                result = await self._run_tiers(evidence, started)
        except EvidenceUnavailable as e:
            logger.warning(f"Evidence unavailable for {url}: {e}")
            note = NOTE_EVIDENCE_RETRY if e.retryable else NOTE_EVIDENCE_UNAVAILABLE
            return failure_result(FailureReason.EVIDENCE_UNAVAILABLE, note, started)
        except TimeoutError:
            logger.warning(f"Import of {url} exceeded {self.timeout_s}s")
            return failure_result(FailureReason.TIMED_OUT, NOTE_TIMED_OUT, started)

        if decision.degraded:
            result.notes.append(NOTE_DEGRADED_QUOTA)
        if result.success:
            await self.cache.put_result(url, result)
        return result

    async def extract_from_evidence(self, evidence: EvidenceBundle) -> ExtractionResult:
        """Run the tiers on an already-built bundle; no scraping, quota or caching."""
        return await self._run_tiers(evidence, time.monotonic())

    async def _run_tiers(self, evidence: EvidenceBundle, started: float) -> ExtractionResult:
        attempts: list[ExtractionAttempt] = []
        now = self._clock()
        state = TierState.CAPTION_ONLY

        while state != TierState.TERMINAL:
            if state == TierState.CAPTION_ONLY:
                attempt = await self.caption_extractor.extract(evidence)
                attempts.append(attempt)
                state = after_caption(evidence, attempt, now)
            elif state == TierState.VIDEO_PRIMARY:
                video_attempts = await self.video_synthesizer.extract(evidence)
                attempts.extend(video_attempts)
                last = video_attempts[-1]
                if last.tier == Tier.VIDEO_FALLBACK_PAID:
                    state = after_video_fallback(evidence, last)
                else:
                    state = after_video_primary(evidence, last)
                    if state == TierState.VIDEO_FALLBACK_PAID:
                        # The synthesizer escalates internally; reaching here means it chose not to.
                        state = TierState.TERMINAL
            elif state == TierState.IMAGE_ONLY:
                attempt = await self.image_extractor.extract(evidence)
                attempts.append(attempt)
                state = after_image(evidence, attempt)
            else:
                state = TierState.TERMINAL

        for attempt in attempts:
            log_extraction_step(
                evidence.source_url,
                attempt.tier.value,
                "skipped" if attempt.skipped else ("error" if attempt.error else "ok"),
                {
                    "model": attempt.model,
                    "duration_ms": attempt.duration_ms,
                    "complete": attempt.is_complete,
                    "error": str(attempt.error) if attempt.error else None,
                },
            )
        result = self._finalize(evidence, attempts, started)
        if result.success and result.recipe.nutrition_per_serving is None and self.nutrition_extractor is not None:
            result.recipe.nutrition_per_serving = await self.nutrition_extractor.extract(evidence)
            result.processing_time_ms = _elapsed_ms(started)
        return result

    def _finalize(
        self,
        evidence: EvidenceBundle,
        attempts: list[ExtractionAttempt],
        started: float,
    ) -> ExtractionResult:
        recipe, conflicts = self.resolver.merge(attempts)
        decisive = decisive_attempt(attempts)
        produced = [a for a in attempts if a.produced_recipe]
        sources_used = SourcesUsed(
            caption=any(a.tier == Tier.CAPTION_ONLY for a in produced),
            images=any(a.tier == Tier.IMAGE_ONLY for a in produced),
            video=any(a.tier in (Tier.VIDEO_PRIMARY, Tier.VIDEO_FALLBACK_PAID) for a in produced),
        )
        notes = _attempt_notes(attempts)

        if recipe is not None:
            recipe.ingredients = aggregate_ingredients(recipe.ingredients)
            recipe.instructions = renumber(recipe.instructions)
            recipe.image_url = select_image(recipe, evidence)

        if recipe is None or not recipe.has_content:
            if decisive is None and any(isinstance(a.error, ModelProviderError) for a in attempts):
                reason, note = FailureReason.MODEL_PROVIDER_ERROR, NOTE_PROVIDER_DOWN
            else:
                reason, note = FailureReason.NO_RECIPE_FOUND, NOTE_NO_RECIPE
            return ExtractionResult(
                success=False,
                recipe=recipe,
                confidence=0.0,
                tier_used=decisive.tier if decisive else None,
                sources_used=sources_used,
                notes=notes + [note],
                processing_time_ms=_elapsed_ms(started),
                failure_reason=reason,
                conflicts=conflicts,
            )

        confidence = score(recipe, attempts, conflicts, self.weights)
        if conflicts:
            notes.append(NOTE_CONFLICTS)
        if recipe.title == UNTITLED_RECIPE:
            notes.append(NOTE_UNTITLED)
        if not recipe.is_complete:
            notes.append(NOTE_INCOMPLETE)
        if confidence < LOW_CONFIDENCE:
            notes.append(NOTE_LOW_CONFIDENCE)

        return ExtractionResult(
            success=True,
            recipe=recipe,
            confidence=confidence,
            tier_used=decisive.tier,
            sources_used=sources_used,
            notes=notes,
            processing_time_ms=_elapsed_ms(started),
            conflicts=conflicts,
        )


def build_pipeline() -> RecipeImportPipeline:
    """Wire the production collaborators from settings."""
    return RecipeImportPipeline(
        fetcher=EvidenceFetcher(),
        cache=ResultCache(),
        usage_gate=UsageGate(),
        caption_extractor=CaptionExtractor(),
        video_synthesizer=VideoSynthesizer(),
        image_extractor=ImageExtractor(),
        nutrition_extractor=NutritionExtractor(),
    )
