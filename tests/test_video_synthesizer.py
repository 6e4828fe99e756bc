import asyncio
import json
import tempfile
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from recipe_import.errors import (
    MediaExpiredError,
    MediaTooLargeError,
    ModelProviderError,
    NetworkError,
    ProviderRateLimitedError,
)
from recipe_import.models.evidence import EvidenceBundle, VideoRef
from recipe_import.models.extraction import Tier
from recipe_import.models.media import VideoMedia
from recipe_import.pipeline.video_synthesizer import (
    FALLBACK_CONFIDENCE,
    VideoSynthesizer,
    download_video,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
VIDEO_URL = "https://scontent.cdninstagram.com/v/reel.mp4"

RECIPE = {
    "title": "Garlic Noodles",
    "ingredients": [
        {"originalText": "200 g noodles", "name": "noodles", "amount": 200, "unit": "g"},
        {"originalText": "4 cloves garlic", "name": "garlic", "amount": 4, "unit": "cloves"},
        {"originalText": "2 tbsp butter", "name": "butter", "amount": 2, "unit": "tbsp"},
    ],
    "instructions": [
        {"stepNumber": 1, "text": "Boil the noodles."},
        {"stepNumber": 2, "text": "Fry garlic in butter and toss."},
    ],
}


class FakeProvider:
    name = "fake"

    def __init__(self, model: str, reply: str | None = None, error: BaseException | None = None):
        self.model = model
        self.reply = reply
        self.error = error
        self.calls: list[tuple[str, object]] = []

    async def generate(self, prompt, media=None):
        self.calls.append((prompt, media))
        if self.error:
            raise self.error
        return self.reply


def _evidence(expires_at: datetime | None = None) -> EvidenceBundle:
    return EvidenceBundle(
        source_url="https://www.instagram.com/reel/abc/",
        caption_text="yum!",
        video=VideoRef(url=VIDEO_URL, expires_at=expires_at or NOW + timedelta(minutes=30)),
    )


def _file_downloader(tmp_path, calls: list[str] | None = None):
    async def downloader(url: str) -> VideoMedia:
        if calls is not None:
            calls.append(url)
        path = tmp_path / "clip.mp4"
        path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
        return VideoMedia(path=path, size_bytes=12)

    return downloader


def _synth(primary, fallback, downloader) -> VideoSynthesizer:
    return VideoSynthesizer(primary, fallback, downloader=downloader, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_expired_video_skips_without_download(tmp_path):
    calls: list[str] = []
    primary = FakeProvider("gemini", reply=json.dumps(RECIPE))
    synth = _synth(primary, FakeProvider("paid"), _file_downloader(tmp_path, calls))

    attempts = await synth.extract(_evidence(expires_at=NOW - timedelta(seconds=1)))

    assert len(attempts) == 1
    assert attempts[0].skipped is True
    assert isinstance(attempts[0].error, MediaExpiredError)
    assert calls == []
    assert primary.calls == []


@pytest.mark.asyncio
async def test_primary_success_and_temp_file_removed(tmp_path):
    primary = FakeProvider("gemini", reply=json.dumps(RECIPE))
    fallback = FakeProvider("paid", reply=json.dumps(RECIPE))

    attempts = await _synth(primary, fallback, _file_downloader(tmp_path)).extract(_evidence())

    assert [a.tier for a in attempts] == [Tier.VIDEO_PRIMARY]
    assert attempts[0].is_complete
    assert attempts[0].model == "gemini"
    assert fallback.calls == []
    assert not (tmp_path / "clip.mp4").exists()
    prompt, media = primary.calls[0]
    assert "on-screen text wins" in prompt
    assert media.video.size_bytes == 12


@pytest.mark.asyncio
async def test_rate_limited_primary_falls_back_once_with_same_input(tmp_path):
    primary = FakeProvider("gemini", error=ProviderRateLimitedError("429 quota"))
    fallback = FakeProvider("paid", reply=json.dumps(RECIPE))

    attempts = await _synth(primary, fallback, _file_downloader(tmp_path)).extract(_evidence())

    assert [a.tier for a in attempts] == [Tier.VIDEO_PRIMARY, Tier.VIDEO_FALLBACK_PAID]
    assert len(fallback.calls) == 1
    assert fallback.calls[0] == primary.calls[0]
    assert attempts[-1].source_confidence == FALLBACK_CONFIDENCE
    assert not (tmp_path / "clip.mp4").exists()


@pytest.mark.asyncio
async def test_other_primary_errors_do_not_use_paid_fallback(tmp_path):
    primary = FakeProvider("gemini", error=ModelProviderError("bad request"))
    fallback = FakeProvider("paid", reply=json.dumps(RECIPE))

    attempts = await _synth(primary, fallback, _file_downloader(tmp_path)).extract(_evidence())

    assert len(attempts) == 1
    assert isinstance(attempts[0].error, ModelProviderError)
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_both_providers_failing_records_both_errors(tmp_path):
    primary = FakeProvider("gemini", error=ProviderRateLimitedError("429"))
    fallback = FakeProvider("paid", error=ModelProviderError("503"))

    attempts = await _synth(primary, fallback, _file_downloader(tmp_path)).extract(_evidence())

    assert all(isinstance(a.error, ModelProviderError) for a in attempts)
    assert not (tmp_path / "clip.mp4").exists()


@pytest.mark.asyncio
async def test_cancellation_still_removes_temp_file(tmp_path):
    primary = FakeProvider("gemini", error=asyncio.CancelledError())

    with pytest.raises(asyncio.CancelledError):
        await _synth(primary, FakeProvider("paid"), _file_downloader(tmp_path)).extract(_evidence())

    assert not (tmp_path / "clip.mp4").exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [MediaTooLargeError(2_000, 1_000), NetworkError("reset by peer")])
async def test_unusable_download_is_skipped(error):
    async def downloader(url):
        raise error

    primary = FakeProvider("gemini", reply=json.dumps(RECIPE))

    attempts = await _synth(primary, FakeProvider("paid"), downloader).extract(_evidence())

    assert attempts[0].skipped is True
    assert attempts[0].error is error
    assert primary.calls == []


@pytest.mark.asyncio
async def test_download_video_streams_to_temp_file(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"abc123")
    )

    async with httpx.AsyncClient(transport=transport) as client:
        media = await download_video(VIDEO_URL, max_bytes=100, http_client=client)

    assert media.path.read_bytes() == b"abc123"
    assert media.mime_type == "video/mp4"
    assert media.size_bytes == 6
    media.path.unlink()


@pytest.mark.asyncio
async def test_download_video_enforces_size_limit_and_cleans_up(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * 50))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(MediaTooLargeError):
            await download_video(VIDEO_URL, max_bytes=10, http_client=client)

    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_download_video_http_error_is_network_error(tmp_path, monkeypatch):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    transport = httpx.MockTransport(lambda request: httpx.Response(403))

    async with httpx.AsyncClient(transport=transport) as client:
        with pytest.raises(NetworkError):
            await download_video(VIDEO_URL, max_bytes=10, http_client=client)

    assert list(tmp_path.iterdir()) == []
