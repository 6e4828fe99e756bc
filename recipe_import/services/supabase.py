from __future__ import annotations

import asyncio
from typing import Any

from supabase import Client, create_client

from recipe_import.config import settings


def get_client() -> Client:
    return create_client(settings.supabase_url, settings.supabase_service_key)


_client: Client | None = None


def client() -> Client:
    global _client
    if _client is None:
        _client = get_client()
    return _client


async def _execute(query: Any) -> Any:
    """Run blocking Supabase query execution in a worker thread."""
    return await asyncio.to_thread(query.execute)


# --- Import cache ---


async def get_cache_row(cache_key: str, db: Client | None = None) -> dict[str, Any] | None:
    db = db or client()
    result = await _execute(db.table(settings.cache_table).select("*").eq("cache_key", cache_key).limit(1))
    return result.data[0] if result.data else None


async def upsert_cache_row(row: dict[str, Any], db: Client | None = None) -> None:
    db = db or client()
    await _execute(db.table(settings.cache_table).upsert(row, on_conflict="cache_key"))


async def delete_cache_row(cache_key: str, db: Client | None = None) -> None:
    db = db or client()
    await _execute(db.table(settings.cache_table).delete().eq("cache_key", cache_key))


# --- Usage counters ---


async def get_usage_count(user_id: str, month_year: str, db: Client | None = None) -> int:
    db = db or client()
    result = await _execute(
        db.table(settings.usage_table)
        .select("usage_count")
        .eq("user_id", user_id)
        .eq("month_year", month_year)
        .limit(1)
    )
    if not result.data:
        return 0
    return int(result.data[0].get("usage_count") or 0)


async def increment_usage(user_id: str, month_year: str, db: Client | None = None) -> int:
    """Atomically bump the counter server-side and return the new value."""
    db = db or client()
    result = await _execute(
        db.rpc(settings.usage_increment_rpc, {"p_user_id": user_id, "p_month_year": month_year})
    )
    data = result.data
    if isinstance(data, list):
        data = data[0] if data else 0
    if isinstance(data, dict):
        data = data.get("usage_count", 0)
    return int(data or 0)


# --- Storage ---


async def upload_object(path: str, data: bytes, content_type: str, db: Client | None = None) -> str:
    db = db or client()
    bucket = db.storage.from_(settings.storage_bucket)
    await asyncio.to_thread(
        bucket.upload,
        path,
        data,
        {"content-type": content_type, "upsert": "true"},
    )
    return bucket.get_public_url(path)


async def delete_object(path: str, db: Client | None = None) -> None:
    db = db or client()
    await asyncio.to_thread(db.storage.from_(settings.storage_bucket).remove, [path])
