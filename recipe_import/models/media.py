from __future__ import annotations

import base64
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class VideoMedia:
    path: Path
    mime_type: str = "video/mp4"
    size_bytes: int = 0

    def read_base64(self) -> str:
        return base64.b64encode(self.path.read_bytes()).decode("ascii")


@dataclass(slots=True)
class MediaPayload:
    image_urls: list[str] = field(default_factory=list)
    video: VideoMedia | None = None

    def describe(self) -> str:
        if self.video is not None:
            return f"video:{self.video.size_bytes}b"
        if self.image_urls:
            return f"images:{len(self.image_urls)}"
        return "text"


class ModelProvider(Protocol):
    """Anything that turns a prompt (plus optional media) into model text."""

    name: str
    model: str

    async def generate(self, prompt: str, media: MediaPayload | None = None) -> str: ...
