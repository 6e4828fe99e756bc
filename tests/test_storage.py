from unittest.mock import MagicMock

import httpx
import pytest

from recipe_import.errors import MediaTooLargeError, NetworkError
from recipe_import.services import supabase as db
from recipe_import.services.storage import download_image, persist_recipe_image

IMAGE_URL = "https://scontent.cdninstagram.com/v/t51/photo.jpg"


class FakeStore:
    def __init__(self):
        self.uploads: list[tuple[bytes, str, str]] = []

    async def upload(self, data, path, content_type="image/jpeg"):
        self.uploads.append((data, path, content_type))
        return f"https://storage.test/recipe-images/{path}"

    async def delete(self, path):
        pass


def _http(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_persist_uploads_under_user_folder():
    store = FakeStore()
    client = _http(lambda request: httpx.Response(200, headers={"content-type": "image/png"}, content=b"png-bytes"))

    url = await persist_recipe_image(IMAGE_URL, "user-1", "recipe-9", store=store, http_client=client)

    data, path, content_type = store.uploads[0]
    assert data == b"png-bytes"
    assert content_type == "image/png"
    assert path.startswith("user-1/recipe-9-") and path.endswith(".png")
    assert url == f"https://storage.test/recipe-images/{path}"


@pytest.mark.asyncio
async def test_rejects_non_images_and_bad_urls():
    client = _http(lambda request: httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html>"))

    with pytest.raises(ValueError):
        await download_image(IMAGE_URL, http_client=client)
    with pytest.raises(ValueError):
        await persist_recipe_image("not a url", "u", "r", store=FakeStore())


@pytest.mark.asyncio
async def test_enforces_size_limit():
    client = _http(lambda request: httpx.Response(200, headers={"content-type": "image/jpeg"}, content=b"x" * 64))

    with pytest.raises(MediaTooLargeError):
        await download_image(IMAGE_URL, max_bytes=16, http_client=client)


@pytest.mark.asyncio
async def test_http_errors_become_network_errors():
    client = _http(lambda request: httpx.Response(404))

    with pytest.raises(NetworkError):
        await download_image(IMAGE_URL, http_client=client)


@pytest.mark.asyncio
async def test_upload_object_uses_bucket_public_url():
    client = MagicMock()
    bucket = client.storage.from_.return_value
    bucket.get_public_url.return_value = "https://storage.test/recipe-images/u/r.jpg"

    url = await db.upload_object("u/r.jpg", b"data", "image/jpeg", db=client)

    assert url == "https://storage.test/recipe-images/u/r.jpg"
    client.storage.from_.assert_called_with("recipe-images")
    bucket.upload.assert_called_once_with("u/r.jpg", b"data", {"content-type": "image/jpeg", "upsert": "true"})
