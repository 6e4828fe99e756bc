from __future__ import annotations

import re
from urllib.parse import urlparse

ALLOWED_IMAGE_DOMAINS = (
    "cdninstagram.com",
    "instagram.com",
    "fbcdn.net",
    "facebook.com",
    "fbsbx.com",
    "akamaihd.net",
    "akamaized.net",
    "cloudfront.net",
    "apifyusercontent.com",
    "ig.me",
)

# Profile icons and tracking pixels served from the same CDNs, plus video files.
REJECTED_IMAGE_PATTERNS = (
    re.compile(r"/rsrc\.php/"),
    re.compile(r"_[st]\.jpg(\?|$)"),
    re.compile(r"/p\d{2}x\d{2}/"),
    re.compile(r"_s\d{2}x\d{2}"),
    re.compile(r"/s\d{2}x\d{2}/"),
    re.compile(r"(^|[/_.-])(pixel|spacer|1x1)\.(gif|png)", re.IGNORECASE),
    re.compile(r"\.(mp4|mov|webm|m3u8)(\?|$)", re.IGNORECASE),
)


def is_http_url(url: str | None) -> bool:
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _host_allowed(host: str) -> bool:
    host = host.lower()
    if host.startswith("scontent"):
        return True
    return any(host == domain or host.endswith("." + domain) for domain in ALLOWED_IMAGE_DOMAINS)


def is_valid_image_url(url: str | None) -> bool:
    """Accept only recipe-photo candidates served from the expected social CDNs."""
    if not is_http_url(url):
        return False
    parsed = urlparse(url.strip())
    if not _host_allowed(parsed.hostname or ""):
        return False
    return not any(pattern.search(url) for pattern in REJECTED_IMAGE_PATTERNS)


def filter_image_urls(urls: list[str]) -> list[str]:
    seen: set[str] = set()
    kept: list[str] = []
    for url in urls:
        if not is_valid_image_url(url):
            continue
        cleaned = url.strip()
        if cleaned in seen:
            continue
        seen.add(cleaned)
        kept.append(cleaned)
    return kept
