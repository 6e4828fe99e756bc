"""Per-actor adapters that turn raw scraper records into EvidenceBundles.

Each scraper actor names the same facts differently (and changes names between
releases), so every adapter reads its record defensively and the rest of the
pipeline only ever sees `EvidenceBundle`.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol
from urllib.parse import urlparse

from recipe_import.config import settings
from recipe_import.models.evidence import (
    Author,
    ContentType,
    Engagement,
    EvidenceBundle,
    ImageRef,
    Platform,
    VideoRef,
)
from recipe_import.tools.image_urls import filter_image_urls, is_valid_image_url

_HASHTAG_RE = re.compile(r"#(\w+)", re.UNICODE)
_APIFY_PROXY_RE = re.compile(r"https://images\.apifyusercontent\.com/[^\"\\\s]+")
_FB_CDN_RE = re.compile(r"https://[a-z0-9.-]*(?:fbcdn\.net|scontent[a-z0-9.-]*)/[^\"\\\s]+", re.IGNORECASE)


def detect_platform(url: str) -> Platform:
    host = (urlparse(url.strip()).hostname or "").lower()
    if host.endswith("instagram.com") or host == "instagr.am":
        return Platform.INSTAGRAM
    if host.endswith("facebook.com") or host == "fb.watch" or host.endswith("fb.com"):
        return Platform.FACEBOOK
    return Platform.UNKNOWN


def detect_content_type(url: str) -> ContentType:
    """Classify a post URL by its path so the matching scraper actor can be chosen."""
    lowered = url.strip().lower()
    if detect_platform(lowered) == Platform.INSTAGRAM:
        if any(marker in lowered for marker in ("/reel/", "/reels/", "/tv/")):
            return ContentType.REEL
        return ContentType.POST
    if any(marker in lowered for marker in ("/reel/", "fb.watch", "/share/r/")):
        return ContentType.REEL
    if any(marker in lowered for marker in ("/watch?v=", "/watch/?v=", "/videos/")):
        return ContentType.VIDEO
    return ContentType.POST


def extract_hashtags(text: str) -> tuple[str, ...]:
    seen: list[str] = []
    for tag in _HASHTAG_RE.findall(text or ""):
        lowered = tag.lower()
        if lowered not in seen:
            seen.append(lowered)
    return tuple(seen)


def _first(record: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record
        for part in key.split("."):
            value = value.get(part) if isinstance(value, dict) else None
            if value is None:
                break
        if value not in (None, "", [], {}):
            return value
    return None


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _as_float(value: Any) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _video_expiry(fetched_at: datetime) -> datetime:
    # Signed CDN video links stop resolving roughly an hour after scraping.
    return fetched_at + timedelta(minutes=settings.video_url_ttl_minutes)


class EvidenceAdapter(Protocol):
    platform: Platform

    def to_evidence(
        self,
        record: dict[str, Any],
        source_url: str,
        content_type: ContentType,
        fetched_at: datetime | None = None,
    ) -> EvidenceBundle: ...


class InstagramAdapter:
    platform = Platform.INSTAGRAM

    IMAGE_FIELDS = (
        "displayUrl",
        "thumbnailUrl",
        "videoThumbnail",
        "imageUrl",
        "coverPhotoUrl",
        "previewImageUrl",
    )
    IMAGE_LIST_FIELDS = ("imageUrls", "images", "displayUrls")

    def _images(self, record: dict[str, Any]) -> tuple[ImageRef, ...]:
        candidates: list[str] = []
        for key in self.IMAGE_FIELDS:
            value = record.get(key)
            if isinstance(value, str):
                candidates.append(value)
        for key in self.IMAGE_LIST_FIELDS:
            for item in record.get(key) or []:
                if isinstance(item, str):
                    candidates.append(item)
                elif isinstance(item, dict) and isinstance(item.get("url"), str):
                    candidates.append(item["url"])
        for child in record.get("childPosts") or []:
            if isinstance(child, dict) and isinstance(child.get("displayUrl"), str):
                candidates.append(child["displayUrl"])
        return tuple(ImageRef(url=url, trust_tag="post") for url in filter_image_urls(candidates))

    def _author_comments(self, record: dict[str, Any]) -> tuple[str, ...]:
        owner = str(record.get("ownerUsername") or "").lower()
        comments: list[str] = []
        for comment in record.get("latestComments") or []:
            if not isinstance(comment, dict):
                continue
            if owner and str(comment.get("ownerUsername") or "").lower() == owner and comment.get("text"):
                comments.append(str(comment["text"]))
        return tuple(comments)

    def to_evidence(
        self,
        record: dict[str, Any],
        source_url: str,
        content_type: ContentType,
        fetched_at: datetime | None = None,
    ) -> EvidenceBundle:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        caption = str(record.get("caption") or "")
        video = None
        video_url = record.get("videoUrl")
        if isinstance(video_url, str) and video_url:
            video = VideoRef(
                url=video_url,
                duration_seconds=_as_float(record.get("videoDuration")),
                expires_at=_video_expiry(fetched_at),
            )
        if video is not None or str(record.get("type") or "").lower() == "video":
            content_type = ContentType.REEL if content_type == ContentType.POST else content_type

        hashtags = record.get("hashtags")
        return EvidenceBundle(
            source_url=source_url,
            caption_text=caption,
            author_comments=self._author_comments(record),
            images=self._images(record),
            video=video,
            author=Author(
                handle=str(record.get("ownerUsername") or ""),
                display_name=str(record.get("ownerFullName") or ""),
                avatar_url=str(record.get("ownerProfilePicUrl") or ""),
            ),
            engagement=Engagement(
                likes=_as_int(record.get("likesCount")),
                comments=_as_int(record.get("commentsCount")),
                views=_as_int(_first(record, "videoViewCount", "videoPlayCount")),
            ),
            fetched_at=fetched_at,
            hashtags=tuple(str(h).lower() for h in hashtags) if isinstance(hashtags, list) else extract_hashtags(caption),
            platform=self.platform,
            content_type=content_type,
        )


class FacebookAdapter:
    """Reads both the reels actor and the posts actor record shapes."""

    platform = Platform.FACEBOOK

    THUMBNAIL_FIELDS = (
        "thumbnail",
        "thumbnailUrl",
        "preview_image_url",
        "thumbnailImage",
        "coverImage",
        "previewImage",
        "image",
        "preferred_thumbnail.image.uri",
    )

    def _caption(self, record: dict[str, Any], content_type: ContentType) -> str:
        if content_type == ContentType.POST:
            message = record.get("message")
            if isinstance(message, dict):
                message = message.get("text")
            value = _first(record, "postText", "text") or message
        else:
            value = _first(record, "text", "caption", "description")
        return str(value or "")

    def _images(self, record: dict[str, Any], content_type: ContentType) -> list[str]:
        preferred = _first(record, "preferred_thumbnail.image.uri")
        if isinstance(preferred, str) and is_valid_image_url(preferred):
            return [preferred]

        blob = json.dumps(record)
        proxied = _APIFY_PROXY_RE.search(blob)
        if proxied:
            return [proxied.group(0)]
        for match in _FB_CDN_RE.findall(blob):
            decoded = match.replace("&amp;", "&")
            if is_valid_image_url(decoded):
                return [decoded]

        candidates: list[str] = []
        for attachment in record.get("attachments") or []:
            media = attachment.get("media") if isinstance(attachment, dict) else None
            if not isinstance(media, dict):
                continue
            thumb = _first(
                media,
                "thumbnail_image.uri",
                "thumbnailUrl",
                "preview_image.uri",
                "image.uri",
                "preferred_thumbnail.image.uri",
            )
            if isinstance(thumb, str):
                candidates.append(thumb)
        if content_type == ContentType.POST:
            for media in record.get("mediaAttachments") or []:
                if isinstance(media, dict) and isinstance(media.get("url"), str):
                    candidates.append(media["url"])
        for key in self.THUMBNAIL_FIELDS:
            value = _first(record, key)
            if isinstance(value, str):
                candidates.append(value)
        return filter_image_urls(candidates)

    def to_evidence(
        self,
        record: dict[str, Any],
        source_url: str,
        content_type: ContentType,
        fetched_at: datetime | None = None,
    ) -> EvidenceBundle:
        fetched_at = fetched_at or datetime.now(timezone.utc)
        caption = self._caption(record, content_type)

        video = None
        if content_type != ContentType.POST:
            video_url = _first(record, "videoUrl", "video_url", "shareable_url")
            if isinstance(video_url, str):
                video = VideoRef(
                    url=video_url,
                    duration_seconds=_as_float(_first(record, "length_in_second", "duration")),
                    expires_at=_video_expiry(fetched_at),
                )

        return EvidenceBundle(
            source_url=source_url,
            caption_text=caption,
            images=tuple(ImageRef(url=url, trust_tag="post") for url in self._images(record, content_type)),
            video=video,
            author=Author(
                handle=str(_first(record, "ownerUsername", "owner.name", "pageName", "authorName") or ""),
                display_name=str(_first(record, "owner.name", "pageName", "authorName") or ""),
                avatar_url=str(_first(record, "owner.profilePicUrl", "ownerProfilePicUrl") or ""),
            ),
            engagement=Engagement(
                likes=_as_int(_first(record, "likesCount", "likes")),
                comments=_as_int(_first(record, "commentsCount", "comments")),
                views=_as_int(_first(record, "playCountRounded", "viewCount", "views")),
            ),
            fetched_at=fetched_at,
            hashtags=extract_hashtags(caption),
            platform=self.platform,
            content_type=content_type,
        )


ADAPTERS: dict[Platform, EvidenceAdapter] = {
    Platform.INSTAGRAM: InstagramAdapter(),
    Platform.FACEBOOK: FacebookAdapter(),
}


def adapter_for(platform: Platform) -> EvidenceAdapter:
    try:
        return ADAPTERS[platform]
    except KeyError:
        raise ValueError(f"Unsupported platform: {platform}") from None
