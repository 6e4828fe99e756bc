from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


class Platform(StrEnum):
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    UNKNOWN = "unknown"


class ContentType(StrEnum):
    POST = "post"
    REEL = "reel"
    VIDEO = "video"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True, slots=True)
class ImageRef:
    url: str
    trust_tag: str = "post"


@dataclass(frozen=True, slots=True)
class VideoRef:
    url: str
    duration_seconds: float | None = None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or _utcnow()) >= self.expires_at


@dataclass(frozen=True, slots=True)
class Author:
    handle: str = ""
    display_name: str = ""
    avatar_url: str = ""


@dataclass(frozen=True, slots=True)
class Engagement:
    likes: int = 0
    comments: int = 0
    views: int = 0


@dataclass(frozen=True, slots=True)
class EvidenceBundle:
    source_url: str
    caption_text: str = ""
    author_comments: tuple[str, ...] = ()
    images: tuple[ImageRef, ...] = ()
    video: VideoRef | None = None
    author: Author = field(default_factory=Author)
    engagement: Engagement = field(default_factory=Engagement)
    fetched_at: datetime = field(default_factory=_utcnow)
    hashtags: tuple[str, ...] = ()
    platform: Platform = Platform.UNKNOWN
    content_type: ContentType = ContentType.POST

    def usable_video(self, now: datetime | None = None) -> VideoRef | None:
        """Video reference, or None when absent or past its expiry."""
        if self.video is None or not self.video.url:
            return None
        if self.video.is_expired(now):
            return None
        return self.video

    def to_dict(self) -> dict[str, Any]:
        video = None
        if self.video is not None:
            video = {
                "url": self.video.url,
                "durationSeconds": self.video.duration_seconds,
                "expiresAt": self.video.expires_at.isoformat() if self.video.expires_at else None,
            }
        return {
            "sourceUrl": self.source_url,
            "captionText": self.caption_text,
            "authorComments": list(self.author_comments),
            "images": [{"url": i.url, "trustTag": i.trust_tag} for i in self.images],
            "video": video,
            "author": {
                "handle": self.author.handle,
                "displayName": self.author.display_name,
                "avatarUrl": self.author.avatar_url,
            },
            "engagement": {
                "likes": self.engagement.likes,
                "comments": self.engagement.comments,
                "views": self.engagement.views,
            },
            "fetchedAt": self.fetched_at.isoformat(),
            "hashtags": list(self.hashtags),
            "platform": self.platform.value,
            "contentType": self.content_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EvidenceBundle":
        """Rebuild a bundle from `to_dict` output; raises KeyError/ValueError on malformed input."""
        raw_video = data.get("video")
        video = None
        if isinstance(raw_video, dict) and raw_video.get("url"):
            video = VideoRef(
                url=str(raw_video["url"]),
                duration_seconds=raw_video.get("durationSeconds"),
                expires_at=_parse_ts(raw_video.get("expiresAt")),
            )
        author = data.get("author") or {}
        engagement = data.get("engagement") or {}
        return cls(
            source_url=str(data["sourceUrl"]),
            caption_text=str(data.get("captionText") or ""),
            author_comments=tuple(str(c) for c in data.get("authorComments") or []),
            images=tuple(
                ImageRef(url=str(i["url"]), trust_tag=str(i.get("trustTag") or "post"))
                for i in data.get("images") or []
            ),
            video=video,
            author=Author(
                handle=str(author.get("handle") or ""),
                display_name=str(author.get("displayName") or ""),
                avatar_url=str(author.get("avatarUrl") or ""),
            ),
            engagement=Engagement(
                likes=int(engagement.get("likes") or 0),
                comments=int(engagement.get("comments") or 0),
                views=int(engagement.get("views") or 0),
            ),
            fetched_at=_parse_ts(data.get("fetchedAt")) or _utcnow(),
            hashtags=tuple(str(h) for h in data.get("hashtags") or []),
            platform=Platform(data.get("platform") or Platform.UNKNOWN.value),
            content_type=ContentType(data.get("contentType") or ContentType.POST.value),
        )
