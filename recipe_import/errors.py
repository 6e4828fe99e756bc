"""Typed failures raised by pipeline components."""
from __future__ import annotations


class RecipeImportError(Exception):
    """Base class for every error raised by the import pipeline."""

    retryable: bool = False


class EvidenceUnavailable(RecipeImportError):
    """The post could not be scraped."""


class RateLimitedError(EvidenceUnavailable):
    retryable = True


class JobFailedError(EvidenceUnavailable):
    def __init__(self, message: str, *, status: str = "FAILED"):
        super().__init__(message)
        self.status = status


class JobTimedOutError(EvidenceUnavailable):
    retryable = True


class NetworkError(EvidenceUnavailable):
    pass


class QuotaExceededError(RecipeImportError):
    def __init__(self, user_id: str, used: int, limit: int):
        super().__init__(f"Monthly import limit reached for user {user_id} ({used}/{limit})")
        self.user_id = user_id
        self.used = used
        self.limit = limit


class NoRecipeFoundError(RecipeImportError):
    pass


class ModelProviderError(RecipeImportError):
    def __init__(self, message: str, *, provider: str = "", model: str = ""):
        super().__init__(message)
        self.provider = provider
        self.model = model


class ProviderRateLimitedError(ModelProviderError):
    retryable = True


class MediaTooLargeError(RecipeImportError):
    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(f"Media exceeds {limit_bytes} bytes (got at least {size_bytes})")
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class MediaExpiredError(RecipeImportError):
    pass


class CacheCorruptedError(RecipeImportError):
    def __init__(self, key: str, reason: str):
        super().__init__(f"Cached payload for {key!r} is unreadable: {reason}")
        self.key = key


RATE_LIMIT_MARKERS = ("429", "rate limit", "rate-limit", "ratelimit", "quota", "resource_exhausted", "resource exhausted", "free tier", "provider returned error")


def looks_rate_limited(message: str) -> bool:
    lowered = (message or "").lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)
