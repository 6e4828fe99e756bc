from __future__ import annotations

from recipe_import.config import settings
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.recipe import RecipeCandidate
from recipe_import.tools.image_urls import is_http_url, is_valid_image_url


def select_image(
    candidate: RecipeCandidate | None,
    evidence: EvidenceBundle,
    placeholder: str | None = None,
) -> str:
    """Model suggestion, then first CDN-validated post image, then avatar, then placeholder."""
    evidence_image = next((i.url for i in evidence.images if is_valid_image_url(i.url)), None)
    ordered = (
        candidate.image_url if candidate else None,
        evidence_image,
        evidence.author.avatar_url,
    )
    for url in ordered:
        if is_http_url(url):
            return url.strip()
    return placeholder or settings.placeholder_image_url
