"""Escalation policy between extraction tiers.

Each edge of the tier graph is one function that inspects the attempt just made
and returns the next state:

    CAPTION_ONLY ──► VIDEO_PRIMARY ──► VIDEO_FALLBACK_PAID ──► TERMINAL
         │                 │
         └──► IMAGE_ONLY ◄─┘ (video unusable)
"""
from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from recipe_import.errors import MediaExpiredError, MediaTooLargeError, NetworkError, ProviderRateLimitedError
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import ExtractionAttempt, Tier


class TierState(StrEnum):
    CAPTION_ONLY = Tier.CAPTION_ONLY.value
    VIDEO_PRIMARY = Tier.VIDEO_PRIMARY.value
    VIDEO_FALLBACK_PAID = Tier.VIDEO_FALLBACK_PAID.value
    IMAGE_ONLY = Tier.IMAGE_ONLY.value
    TERMINAL = "Terminal"


MEDIA_UNUSABLE = (MediaExpiredError, MediaTooLargeError, NetworkError)


def _images_or_terminal(evidence: EvidenceBundle) -> TierState:
    return TierState.IMAGE_ONLY if evidence.images else TierState.TERMINAL


def after_caption(
    evidence: EvidenceBundle,
    attempt: ExtractionAttempt,
    now: datetime | None = None,
) -> TierState:
    if attempt.is_complete:
        return TierState.TERMINAL
    if evidence.usable_video(now) is not None:
        return TierState.VIDEO_PRIMARY
    return _images_or_terminal(evidence)


def after_video_primary(evidence: EvidenceBundle, attempt: ExtractionAttempt) -> TierState:
    if attempt.produced_recipe:
        return TierState.TERMINAL
    if isinstance(attempt.error, ProviderRateLimitedError):
        return TierState.VIDEO_FALLBACK_PAID
    if isinstance(attempt.error, MEDIA_UNUSABLE):
        return _images_or_terminal(evidence)
    return TierState.TERMINAL


def after_video_fallback(evidence: EvidenceBundle, attempt: ExtractionAttempt) -> TierState:
    # The paid provider is the last video option; its failure ends the run.
    return TierState.TERMINAL


def after_image(evidence: EvidenceBundle, attempt: ExtractionAttempt) -> TierState:
    return TierState.TERMINAL
