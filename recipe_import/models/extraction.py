from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from recipe_import.errors import RecipeImportError
from recipe_import.models.recipe import RecipeCandidate


class Tier(StrEnum):
    CAPTION_ONLY = "CaptionOnly"
    VIDEO_PRIMARY = "VideoPrimary"
    VIDEO_FALLBACK_PAID = "VideoFallbackPaid"
    IMAGE_ONLY = "ImageOnly"


class SourceKind(StrEnum):
    CAPTION = "caption"
    VISUAL = "visual"
    AUDIO = "audio"


# Highest precedence first.
TRUST_ORDER: tuple[SourceKind, ...] = (SourceKind.CAPTION, SourceKind.VISUAL, SourceKind.AUDIO)

# Video models read both the frames and the soundtrack; the merged output is treated as visual.
SOURCES_BY_TIER: dict[Tier, tuple[SourceKind, ...]] = {
    Tier.CAPTION_ONLY: (SourceKind.CAPTION,),
    Tier.VIDEO_PRIMARY: (SourceKind.VISUAL, SourceKind.AUDIO),
    Tier.VIDEO_FALLBACK_PAID: (SourceKind.VISUAL, SourceKind.AUDIO),
    Tier.IMAGE_ONLY: (SourceKind.VISUAL,),
}


class FailureReason(StrEnum):
    EVIDENCE_UNAVAILABLE = "EvidenceUnavailable"
    QUOTA_EXCEEDED = "QuotaExceeded"
    NO_RECIPE_FOUND = "NoRecipeFound"
    MODEL_PROVIDER_ERROR = "ModelProviderError"
    TIMED_OUT = "TimedOut"


@dataclass(slots=True)
class ExtractionAttempt:
    tier: Tier
    raw_recipe: RecipeCandidate | None = None
    source_confidence: float = 1.0
    error: RecipeImportError | None = None
    skipped: bool = False
    model: str = ""
    duration_ms: int = 0

    @property
    def is_complete(self) -> bool:
        return self.raw_recipe is not None and self.raw_recipe.is_complete

    @property
    def source(self) -> SourceKind:
        return SOURCES_BY_TIER[self.tier][0]

    @property
    def sources(self) -> tuple[SourceKind, ...]:
        return SOURCES_BY_TIER[self.tier]

    @property
    def produced_recipe(self) -> bool:
        return self.raw_recipe is not None and self.error is None and not self.skipped


@dataclass(frozen=True, slots=True)
class Conflict:
    field: str
    kept: Any
    discarded: Any
    kept_source: SourceKind
    discarded_source: SourceKind

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "kept": self.kept,
            "discarded": self.discarded,
            "keptSource": self.kept_source.value,
            "discardedSource": self.discarded_source.value,
        }


@dataclass(slots=True)
class SourcesUsed:
    caption: bool = False
    images: bool = False
    video: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {"caption": self.caption, "images": self.images, "video": self.video}


@dataclass(slots=True)
class ExtractionResult:
    success: bool
    recipe: RecipeCandidate | None = None
    confidence: float = 0.0
    tier_used: Tier | None = None
    sources_used: SourcesUsed = field(default_factory=SourcesUsed)
    notes: list[str] = field(default_factory=list)
    processing_time_ms: int = 0
    failure_reason: FailureReason | None = None
    conflicts: list[Conflict] = field(default_factory=list)
    from_cache: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "recipe": self.recipe.to_dict() if self.recipe else None,
            "confidence": self.confidence,
            "tierUsed": self.tier_used.value if self.tier_used else None,
            "sourcesUsed": self.sources_used.to_dict(),
            "notes": list(self.notes),
            "processingTimeMs": self.processing_time_ms,
            "failureReason": self.failure_reason.value if self.failure_reason else None,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "fromCache": self.from_cache,
        }
