from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from recipe_import.config import settings
from recipe_import.errors import JobFailedError, NetworkError, RateLimitedError
from recipe_import.models.evidence import ContentType, Platform

TERMINAL_STATUSES = {"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"}


@dataclass(slots=True)
class JobStatus:
    job_id: str
    status: str
    dataset_id: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in TERMINAL_STATUSES


def build_actor_input(url: str, platform: Platform, content_type: ContentType) -> dict[str, Any]:
    if platform == Platform.FACEBOOK:
        return {"startUrls": [{"url": url}], "resultsLimit": 1}
    return {"directUrls": [url], "resultsLimit": 1, "resultsType": "posts"}


def _parse_run(payload: Any) -> JobStatus:
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict) or not data.get("id"):
        raise JobFailedError("Scrape service returned a malformed run payload")
    return JobStatus(
        job_id=str(data["id"]),
        status=str(data.get("status") or "READY").upper(),
        dataset_id=data.get("defaultDatasetId"),
    )


class ScrapeJobClient:
    """Thin async client for the Apify actor-run REST API."""

    def __init__(
        self,
        *,
        api_token: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_token = api_token if api_token is not None else settings.apify_api_token
        self.base_url = (base_url or settings.apify_base_url).rstrip("/")
        self.timeout_s = timeout_s or settings.apify_request_timeout_s
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        async def _do_request(client: httpx.AsyncClient) -> Any:
            response = await client.request(method, f"{self.base_url}{path}", headers=self._headers(), **kwargs)
            response.raise_for_status()
            try:
                return response.json()
            except ValueError as e:
                content_type = response.headers.get("content-type", "unknown")
                raise NetworkError(f"Scrape service returned non-JSON ({content_type}) for {method} {path}") from e

        try:
            if self._http_client is None:
                async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                    return await _do_request(client)
            return await _do_request(self._http_client)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise RateLimitedError(f"Scrape service rate limited {method} {path}") from e
            if status >= 500:
                raise NetworkError(f"Scrape service error {status} on {method} {path}") from e
            raise JobFailedError(f"Scrape service rejected {method} {path} with {status}", status=str(status)) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Scrape service unreachable: {e}") from e

    async def submit_job(
        self,
        actor_id: str,
        url: str,
        *,
        platform: Platform,
        content_type: ContentType,
    ) -> JobStatus:
        payload = await self._request(
            "POST",
            f"/acts/{actor_id}/runs",
            params={"timeout": settings.apify_job_timeout_s, "memory": settings.apify_job_memory_mb},
            json=build_actor_input(url, platform, content_type),
        )
        return _parse_run(payload)

    async def get_status(self, job_id: str) -> JobStatus:
        payload = await self._request("GET", f"/actor-runs/{job_id}")
        return _parse_run(payload)

    async def get_result(self, dataset_id: str) -> dict[str, Any] | None:
        """First record of a finished run's dataset, or None when the dataset is empty."""
        payload = await self._request("GET", f"/datasets/{dataset_id}/items", params={"limit": 1})
        if isinstance(payload, list) and payload and isinstance(payload[0], dict):
            return payload[0]
        return None
