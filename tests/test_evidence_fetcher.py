import asyncio

import pytest

from recipe_import.errors import JobFailedError, JobTimedOutError, NetworkError
from recipe_import.models.evidence import ContentType, Platform
from recipe_import.pipeline.evidence_fetcher import EvidenceFetcher
from recipe_import.tools.apify_client import JobStatus

FB_IMAGE = "https://scontent.xx.fbcdn.net/v/t15.5256-10/thumb_n.jpg"


class _FakeJobClient:
    """Scripted job service: each actor maps to a list of statuses and a record."""

    def __init__(self, scripts: dict[str, dict]):
        self.scripts = scripts
        self.submitted: list[tuple[str, str, ContentType]] = []
        self.status_calls = 0
        self._job_actor: dict[str, str] = {}
        self._statuses: dict[str, list] = {}

    async def submit_job(self, actor_id, url, *, platform, content_type):
        job_id = f"job{len(self.submitted) + 1}"
        self.submitted.append((actor_id, url, content_type))
        self._job_actor[job_id] = actor_id
        self._statuses[job_id] = list(self.scripts[actor_id]["statuses"])
        return JobStatus(job_id=job_id, status="READY")

    async def get_status(self, job_id):
        self.status_calls += 1
        step = self._statuses[job_id].pop(0)
        if isinstance(step, Exception):
            raise step
        return JobStatus(job_id=job_id, status=step, dataset_id=f"ds-{job_id}")

    async def get_result(self, dataset_id):
        job_id = dataset_id.removeprefix("ds-")
        return self.scripts[self._job_actor[job_id]].get("record")


async def _no_sleep(seconds: float) -> None:
    return None


def _fetcher(client, **kwargs) -> EvidenceFetcher:
    actors = {
        (Platform.INSTAGRAM, ContentType.POST): "ig",
        (Platform.INSTAGRAM, ContentType.REEL): "ig",
        (Platform.FACEBOOK, ContentType.POST): "fb-posts",
        (Platform.FACEBOOK, ContentType.REEL): "fb-reels",
        (Platform.FACEBOOK, ContentType.VIDEO): "fb-reels",
    }
    kwargs.setdefault("sleep", _no_sleep)
    return EvidenceFetcher(client, actors=actors, poll_interval_s=0, max_poll_attempts=5, **kwargs)


@pytest.mark.asyncio
async def test_polls_until_succeeded_and_normalizes_record():
    client = _FakeJobClient({"ig": {"statuses": ["RUNNING", "RUNNING", "SUCCEEDED"], "record": {"caption": "Soup recipe"}}})

    evidence = await _fetcher(client).fetch("  https://www.instagram.com/p/abc/ ", "user-1")

    assert evidence.caption_text == "Soup recipe"
    assert evidence.source_url == "https://www.instagram.com/p/abc/"
    assert client.status_calls == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("final_status", "error_type"),
    [("FAILED", JobFailedError), ("ABORTED", JobFailedError), ("TIMED-OUT", JobTimedOutError)],
)
async def test_terminal_failures_are_typed(final_status, error_type):
    client = _FakeJobClient({"ig": {"statuses": ["RUNNING", final_status]}})

    with pytest.raises(error_type) as excinfo:
        await _fetcher(client).fetch("https://www.instagram.com/p/abc/", "user-1")

    assert excinfo.value.retryable is (error_type is JobTimedOutError)


@pytest.mark.asyncio
async def test_poll_attempts_exhausted_is_a_timeout():
    client = _FakeJobClient({"ig": {"statuses": ["RUNNING"] * 10}})

    with pytest.raises(JobTimedOutError):
        await _fetcher(client).fetch("https://www.instagram.com/p/abc/", "user-1")

    assert client.status_calls == 5


@pytest.mark.asyncio
async def test_transient_poll_errors_are_retried():
    client = _FakeJobClient(
        {"ig": {"statuses": [NetworkError("blip"), "SUCCEEDED"], "record": {"caption": "ok"}}}
    )

    evidence = await _fetcher(client, poll_error_retries=1).fetch("https://www.instagram.com/p/abc/", "u")

    assert evidence.caption_text == "ok"


@pytest.mark.asyncio
async def test_empty_dataset_is_a_job_failure():
    client = _FakeJobClient({"ig": {"statuses": ["SUCCEEDED"], "record": None}})

    with pytest.raises(JobFailedError):
        await _fetcher(client).fetch("https://www.instagram.com/p/abc/", "u")


@pytest.mark.asyncio
async def test_unsupported_url_fails_without_submitting():
    client = _FakeJobClient({})

    with pytest.raises(JobFailedError):
        await _fetcher(client).fetch("https://example.com/recipe", "u")

    assert client.submitted == []


@pytest.mark.asyncio
async def test_captionless_reel_retries_post_actor_and_merges():
    client = _FakeJobClient(
        {
            "fb-reels": {
                "statuses": ["SUCCEEDED"],
                "record": {"video_url": "https://video.xx.fbcdn.net/v/r.mp4", "thumbnail": FB_IMAGE},
            },
            "fb-posts": {"statuses": ["SUCCEEDED"], "record": {"postText": "2 eggs, 1 cup milk. Whisk and fry."}},
        }
    )

    evidence = await _fetcher(client).fetch("https://www.facebook.com/reel/123", "u")

    assert [s[0] for s in client.submitted] == ["fb-reels", "fb-posts"]
    assert evidence.caption_text.startswith("2 eggs")
    assert [i.url for i in evidence.images] == [FB_IMAGE]
    assert evidence.video is not None
    assert evidence.content_type == ContentType.REEL


@pytest.mark.asyncio
async def test_failed_post_actor_fallback_keeps_first_result():
    client = _FakeJobClient(
        {
            "fb-reels": {"statuses": ["SUCCEEDED"], "record": {"thumbnail": FB_IMAGE}},
            "fb-posts": {"statuses": ["FAILED"]},
        }
    )

    evidence = await _fetcher(client).fetch("https://www.facebook.com/reel/123", "u")

    assert evidence.caption_text == ""
    assert [i.url for i in evidence.images] == [FB_IMAGE]


@pytest.mark.asyncio
async def test_instagram_reel_does_not_refetch_with_same_actor():
    client = _FakeJobClient({"ig": {"statuses": ["SUCCEEDED"], "record": {}}})

    await _fetcher(client).fetch("https://www.instagram.com/reel/abc/", "u")

    assert len(client.submitted) == 1


@pytest.mark.asyncio
async def test_polling_is_cancelled_by_caller_deadline():
    client = _FakeJobClient({"ig": {"statuses": ["RUNNING"] * 100}})
    fetcher = EvidenceFetcher(
        client,
        actors={(Platform.INSTAGRAM, ContentType.POST): "ig"},
        poll_interval_s=10,
        max_poll_attempts=100,
    )

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.05):
            await fetcher.fetch("https://www.instagram.com/p/abc/", "u")

    assert client.status_calls == 0
