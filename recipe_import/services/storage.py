"""Object storage for approved recipe photos."""
from __future__ import annotations

import time
from typing import Protocol

import httpx
from loguru import logger

from recipe_import.config import settings
from recipe_import.errors import MediaTooLargeError, NetworkError
from recipe_import.services import supabase as db
from recipe_import.tools.image_urls import is_http_url

EXTENSIONS_BY_TYPE = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}


class ImageStore(Protocol):
    async def upload(self, data: bytes, path: str, content_type: str = "image/jpeg") -> str: ...

    async def delete(self, path: str) -> None: ...


class SupabaseImageStore:
    def __init__(self, db_client=None):
        self._db = db_client

    async def upload(self, data: bytes, path: str, content_type: str = "image/jpeg") -> str:
        url = await db.upload_object(path, data, content_type, db=self._db)
        logger.info(f"Uploaded {len(data)} bytes to {settings.storage_bucket}/{path}")
        return url

    async def delete(self, path: str) -> None:
        await db.delete_object(path, db=self._db)
        logger.info(f"Deleted {settings.storage_bucket}/{path}")


async def download_image(
    image_url: str,
    *,
    max_bytes: int | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> tuple[bytes, str]:
    """Fetch an image, enforcing an image/* content type and a size ceiling."""
    limit = max_bytes or settings.image_max_bytes

    async def _do_request(client: httpx.AsyncClient) -> tuple[bytes, str]:
        async with client.stream("GET", image_url, follow_redirects=True) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if not content_type.startswith("image/"):
                raise ValueError(f"Not an image: {content_type or 'unknown content type'}")
            buffer = bytearray()
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                if len(buffer) > limit:
                    raise MediaTooLargeError(len(buffer), limit)
            return bytes(buffer), content_type

    try:
        if http_client is None:
            async with httpx.AsyncClient(timeout=30.0) as client:
                return await _do_request(client)
        return await _do_request(http_client)
    except httpx.HTTPError as e:
        raise NetworkError(f"Image download failed: {e}") from e


async def persist_recipe_image(
    image_url: str,
    user_id: str,
    recipe_id: str,
    *,
    store: ImageStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> str:
    """Copy an approved remote image into permanent storage and return its public URL."""
    if not is_http_url(image_url):
        raise ValueError(f"Invalid image URL: {image_url!r}")
    store = store or SupabaseImageStore()
    data, content_type = await download_image(image_url, http_client=http_client)
    extension = EXTENSIONS_BY_TYPE.get(content_type, "jpg")
    path = f"{user_id}/{recipe_id}-{int(time.time() * 1000)}.{extension}"
    return await store.upload(data, path, content_type)
