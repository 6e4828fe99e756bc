"""Scrape a post through an asynchronous job service and normalize it into evidence."""
from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Awaitable, Callable

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import (
    EvidenceUnavailable,
    JobFailedError,
    JobTimedOutError,
    NetworkError,
    RateLimitedError,
)
from recipe_import.models.evidence import ContentType, EvidenceBundle, Platform
from recipe_import.services.logger import log_event
from recipe_import.tools.apify_client import JobStatus, ScrapeJobClient
from recipe_import.tools.evidence_adapters import adapter_for, detect_content_type, detect_platform

Sleep = Callable[[float], Awaitable[None]]


def default_actors() -> dict[tuple[Platform, ContentType], str]:
    return {
        (Platform.INSTAGRAM, ContentType.POST): settings.apify_instagram_actor,
        (Platform.INSTAGRAM, ContentType.REEL): settings.apify_instagram_actor,
        (Platform.INSTAGRAM, ContentType.VIDEO): settings.apify_instagram_actor,
        (Platform.FACEBOOK, ContentType.POST): settings.apify_facebook_post_actor,
        (Platform.FACEBOOK, ContentType.REEL): settings.apify_facebook_reel_actor,
        (Platform.FACEBOOK, ContentType.VIDEO): settings.apify_facebook_reel_actor,
    }


def merge_fallback(primary: EvidenceBundle, fallback: EvidenceBundle) -> EvidenceBundle:
    """Combine a captionless reel scrape with the post-actor retry of the same URL."""
    if not fallback.caption_text.strip():
        if primary.images or not fallback.images:
            return primary
        return replace(primary, images=fallback.images)
    return replace(
        fallback,
        images=fallback.images or primary.images,
        video=fallback.video or primary.video,
        content_type=primary.content_type,
        author=fallback.author if fallback.author.handle else primary.author,
    )


class EvidenceFetcher:
    def __init__(
        self,
        job_client: ScrapeJobClient | None = None,
        *,
        actors: dict[tuple[Platform, ContentType], str] | None = None,
        poll_interval_s: float | None = None,
        max_poll_attempts: int | None = None,
        poll_error_retries: int | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.job_client = job_client or ScrapeJobClient()
        self.actors = actors or default_actors()
        self.poll_interval_s = settings.apify_poll_interval_s if poll_interval_s is None else poll_interval_s
        self.max_poll_attempts = max_poll_attempts or settings.apify_poll_max_attempts
        self.poll_error_retries = settings.apify_poll_error_retries if poll_error_retries is None else poll_error_retries
        self._sleep = sleep

    def actor_for(self, platform: Platform, content_type: ContentType) -> str:
        try:
            return self.actors[(platform, content_type)]
        except KeyError:
            raise JobFailedError(f"No scraper configured for {platform} {content_type}") from None

    async def fetch(self, url: str, user_id: str) -> EvidenceBundle:
        url = url.strip()
        platform = detect_platform(url)
        if platform == Platform.UNKNOWN:
            raise JobFailedError(f"Unsupported post URL: {url}")
        content_type = detect_content_type(url)
        actor = self.actor_for(platform, content_type)
        started = time.monotonic()

        evidence = await self._run_actor(actor, url, platform, content_type)

        if content_type != ContentType.POST and not evidence.caption_text.strip():
            post_actor = self.actor_for(platform, ContentType.POST)
            if post_actor != actor:
                logger.info(f"{actor} returned no caption for {url}; retrying with {post_actor}")
                try:
                    fallback = await self._run_actor(post_actor, url, platform, ContentType.POST)
                except EvidenceUnavailable as e:
                    logger.warning(f"Post-actor fallback failed for {url}: {e}")
                else:
                    evidence = merge_fallback(evidence, fallback)

        log_event(
            "evidence_fetched",
            f"Fetched evidence for {url}",
            user_id=user_id,
            platform=platform.value,
            content_type=evidence.content_type.value,
            caption_chars=len(evidence.caption_text),
            images=len(evidence.images),
            has_video=evidence.video is not None,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return evidence

    async def _run_actor(
        self,
        actor: str,
        url: str,
        platform: Platform,
        content_type: ContentType,
    ) -> EvidenceBundle:
        job = await self.job_client.submit_job(actor, url, platform=platform, content_type=content_type)
        logger.debug(f"Submitted {actor} job {job.job_id} for {url}")

        status = job
        for _ in range(self.max_poll_attempts):
            if status.finished:
                break
            await self._sleep(self.poll_interval_s)
            status = await self._poll(job.job_id)

        if status.status == "SUCCEEDED":
            if not status.dataset_id:
                raise JobFailedError(f"Job {job.job_id} succeeded without a dataset", status=status.status)
            record = await self.job_client.get_result(status.dataset_id)
            if record is None:
                raise JobFailedError(f"Job {job.job_id} produced no records for {url}", status="EMPTY")
            return adapter_for(platform).to_evidence(record, url, content_type)
        if status.status == "TIMED-OUT":
            raise JobTimedOutError(f"Scrape job {job.job_id} timed out")
        if status.status in {"FAILED", "ABORTED"}:
            raise JobFailedError(f"Scrape job {job.job_id} ended with {status.status}", status=status.status)
        raise JobTimedOutError(
            f"Scrape job {job.job_id} still {status.status} after {self.max_poll_attempts} polls"
        )

    async def _poll(self, job_id: str) -> JobStatus:
        for attempt in range(1, self.poll_error_retries + 2):
            try:
                return await self.job_client.get_status(job_id)
            except (NetworkError, RateLimitedError) as e:
                if attempt > self.poll_error_retries:
                    raise
                logger.warning(f"Poll {attempt} for job {job_id} failed: {e}")
                await self._sleep(min(0.25 * attempt, 1.0))
        raise NetworkError(f"Could not poll job {job_id}")
