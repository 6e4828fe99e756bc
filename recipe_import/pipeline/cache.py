"""Advisory cache for evidence bundles and finished extraction results."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import CacheCorruptedError
from recipe_import.models.evidence import EvidenceBundle
from recipe_import.models.extraction import (
    Conflict,
    ExtractionResult,
    FailureReason,
    SourceKind,
    SourcesUsed,
    Tier,
)
from recipe_import.pipeline.normalizer import normalize
from recipe_import.services import supabase as db
from recipe_import.services.logger import log_db_operation

EVIDENCE = "evidence"
RESULT = "result"


@dataclass(slots=True)
class CacheEntry:
    data: Any
    expires_at: datetime


class KeyValueStore(Protocol):
    async def get(self, key: str) -> CacheEntry | None: ...

    async def upsert(self, key: str, entry: CacheEntry, *, url: str, kind: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store; one store-wide lock serializes writes."""

    def __init__(self):
        self._rows: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> CacheEntry | None:
        return self._rows.get(key)

    async def upsert(self, key: str, entry: CacheEntry, *, url: str, kind: str) -> None:
        async with self._lock:
            self._rows[key] = entry

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._rows.pop(key, None)


class SupabaseKeyValueStore:
    """Rows in the cache table, written with upsert-on-conflict so concurrent writers never interleave."""

    def __init__(self, db_client=None):
        self._db = db_client

    async def get(self, key: str) -> CacheEntry | None:
        row = await db.get_cache_row(key, db=self._db)
        if row is None:
            return None
        expires_at = datetime.fromisoformat(str(row["expires_at"]).replace("Z", "+00:00"))
        data = row.get("data")
        if isinstance(data, str):
            # Older rows stored the payload as a JSON string.
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                pass
        return CacheEntry(data=data, expires_at=expires_at)

    async def upsert(self, key: str, entry: CacheEntry, *, url: str, kind: str) -> None:
        await db.upsert_cache_row(
            {
                "cache_key": key,
                "kind": kind,
                "url": url,
                "data": entry.data,
                "expires_at": entry.expires_at.isoformat(),
            },
            db=self._db,
        )

    async def delete(self, key: str) -> None:
        await db.delete_cache_row(key, db=self._db)


def cache_key(url: str, kind: str) -> str:
    return f"{kind}:{url.strip()}"


def result_from_dict(data: dict[str, Any]) -> ExtractionResult:
    recipe = data.get("recipe")
    sources = data.get("sourcesUsed") or {}
    return ExtractionResult(
        success=bool(data["success"]),
        recipe=normalize(recipe) if isinstance(recipe, dict) else None,
        confidence=float(data.get("confidence") or 0.0),
        tier_used=Tier(data["tierUsed"]) if data.get("tierUsed") else None,
        sources_used=SourcesUsed(
            caption=bool(sources.get("caption")),
            images=bool(sources.get("images")),
            video=bool(sources.get("video")),
        ),
        notes=[str(n) for n in data.get("notes") or []],
        processing_time_ms=int(data.get("processingTimeMs") or 0),
        failure_reason=FailureReason(data["failureReason"]) if data.get("failureReason") else None,
        conflicts=[
            Conflict(
                field=str(c["field"]),
                kept=c.get("kept"),
                discarded=c.get("discarded"),
                kept_source=SourceKind(c["keptSource"]),
                discarded_source=SourceKind(c["discardedSource"]),
            )
            for c in data.get("conflicts") or []
        ],
    )


class ResultCache:
    """A miss is never an error: store failures are logged and read as misses."""

    def __init__(self, store: KeyValueStore | None = None, *, enabled: bool | None = None):
        self.store = store if store is not None else SupabaseKeyValueStore()
        self.enabled = settings.cache_enabled if enabled is None else enabled

    async def get(self, url: str, kind: str = EVIDENCE) -> EvidenceBundle | ExtractionResult | None:
        if kind == RESULT:
            return await self.get_result(url)
        return await self.get_evidence(url)

    async def put(
        self,
        url: str,
        value: EvidenceBundle | ExtractionResult,
        ttl: timedelta | None = None,
    ) -> None:
        kind = RESULT if isinstance(value, ExtractionResult) else EVIDENCE
        if ttl is None:
            hours = settings.result_cache_ttl_hours if kind == RESULT else settings.evidence_cache_ttl_hours
            ttl = timedelta(hours=hours)
        await self._write(url, kind, value.to_dict(), ttl)

    async def get_evidence(self, url: str) -> EvidenceBundle | None:
        data = await self._read(url, EVIDENCE)
        if data is None:
            return None
        try:
            return EvidenceBundle.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptedError(cache_key(url, EVIDENCE), str(e)) from e

    async def get_result(self, url: str) -> ExtractionResult | None:
        data = await self._read(url, RESULT)
        if data is None:
            return None
        try:
            result = result_from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptedError(cache_key(url, RESULT), str(e)) from e
        result.from_cache = True
        return result

    async def put_evidence(self, evidence: EvidenceBundle) -> None:
        await self.put(evidence.source_url, evidence)

    async def put_result(self, url: str, result: ExtractionResult) -> None:
        await self.put(url, result)

    async def invalidate(self, url: str) -> None:
        for kind in (EVIDENCE, RESULT):
            key = cache_key(url, kind)
            try:
                await self.store.delete(key)
            except Exception as e:
                log_db_operation("delete", "cache", "error", details=key, error=str(e))

    async def _read(self, url: str, kind: str) -> dict[str, Any] | None:
        if not self.enabled:
            return None
        key = cache_key(url, kind)
        try:
            entry = await self.store.get(key)
        except Exception as e:
            log_db_operation("select", "cache", "error", details=key, error=str(e))
            return None
        if entry is None:
            logger.debug(f"Cache miss: {key}")
            return None
        if entry.expires_at <= datetime.now(timezone.utc):
            logger.debug(f"Cache expired: {key}")
            return None
        if not isinstance(entry.data, dict):
            raise CacheCorruptedError(key, f"expected an object, got {type(entry.data).__name__}")
        logger.info(f"Cache hit: {key}")
        return entry.data

    async def _write(self, url: str, kind: str, data: dict[str, Any], ttl: timedelta) -> None:
        if not self.enabled:
            return
        key = cache_key(url, kind)
        entry = CacheEntry(data=data, expires_at=datetime.now(timezone.utc) + ttl)
        try:
            await self.store.upsert(key, entry, url=url.strip(), kind=kind)
            log_db_operation("upsert", "cache", "success", details=key)
        except Exception as e:
            log_db_operation("upsert", "cache", "error", details=key, error=str(e))
