"""Per-user monthly import quota."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Protocol

from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import QuotaExceededError
from recipe_import.services import supabase as db
from recipe_import.services.logger import log_db_operation


@dataclass(slots=True)
class UsageDecision:
    allowed: bool
    remaining: int
    used: int
    limit: int
    degraded: bool = False


@dataclass(slots=True)
class UsageStats:
    used: int
    limit: int
    remaining: int
    percentage: int
    month_year: str


class UsageCounterStore(Protocol):
    async def get(self, user_id: str, month_year: str) -> int: ...

    async def increment(self, user_id: str, month_year: str) -> int: ...


class SupabaseUsageStore:
    def __init__(self, db_client=None):
        self._db = db_client

    async def get(self, user_id: str, month_year: str) -> int:
        return await db.get_usage_count(user_id, month_year, db=self._db)

    async def increment(self, user_id: str, month_year: str) -> int:
        return await db.increment_usage(user_id, month_year, db=self._db)


class InMemoryUsageStore:
    def __init__(self):
        self._counts: dict[tuple[str, str], int] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str, month_year: str) -> int:
        return self._counts.get((user_id, month_year), 0)

    async def increment(self, user_id: str, month_year: str) -> int:
        key = (user_id, month_year)
        async with self._lock:
            self._counts[key] = self._counts.get(key, 0) + 1
            return self._counts[key]


def current_month(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


class UsageGate:
    """Fails open: a counter outage may over-serve a user but never blocks an import."""

    def __init__(
        self,
        store: UsageCounterStore | None = None,
        *,
        monthly_limit: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store if store is not None else SupabaseUsageStore()
        self.monthly_limit = monthly_limit or settings.import_monthly_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def check_and_reserve(self, user_id: str) -> UsageDecision:
        month = current_month(self._clock())
        limit = self.monthly_limit
        try:
            used = await self.store.get(user_id, month)
        except Exception as e:
            log_db_operation("select", "usage", "error", details=f"{user_id}/{month}", error=str(e))
            return UsageDecision(allowed=True, remaining=limit, used=0, limit=limit, degraded=True)

        if used >= limit:
            logger.info(f"Usage limit reached for {user_id}: {used}/{limit} in {month}")
            return UsageDecision(allowed=False, remaining=0, used=used, limit=limit)

        try:
            used = await self.store.increment(user_id, month)
        except Exception as e:
            log_db_operation("rpc", "usage", "error", details=f"{user_id}/{month}", error=str(e))
            return UsageDecision(allowed=True, remaining=max(limit - used - 1, 0), used=used + 1, limit=limit, degraded=True)

        if used > limit:
            # Another request reserved the last slot between our read and increment.
            logger.info(f"Usage limit raced for {user_id}: {used}/{limit} in {month}")
            return UsageDecision(allowed=False, remaining=0, used=used, limit=limit)
        return UsageDecision(allowed=True, remaining=limit - used, used=used, limit=limit)

    async def reserve(self, user_id: str) -> UsageDecision:
        """Reserve one import or raise QuotaExceededError; outages still fail open."""
        decision = await self.check_and_reserve(user_id)
        if not decision.allowed:
            raise QuotaExceededError(user_id, decision.used, decision.limit)
        return decision

    async def usage_stats(self, user_id: str) -> UsageStats:
        month = current_month(self._clock())
        limit = self.monthly_limit
        try:
            used = await self.store.get(user_id, month)
        except Exception as e:
            log_db_operation("select", "usage", "error", details=f"{user_id}/{month}", error=str(e))
            used = 0
        remaining = max(limit - used, 0)
        percentage = round(used / limit * 100) if limit else 0
        return UsageStats(used=used, limit=limit, remaining=remaining, percentage=percentage, month_year=month)
