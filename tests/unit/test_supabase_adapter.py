import asyncio
import json

import httpx
import pytest

from draftdesk.storage.exceptions import StorageError
from draftdesk.storage.supabase_adapter import SupabaseStorageAdapter


def _adapter(handler) -> SupabaseStorageAdapter:
    return SupabaseStorageAdapter(
        base_url="https://proj.supabase.co/",
        api_key="service-key",
        bucket="blog",
        transport=httpx.MockTransport(handler),
    )


async def _with_client(adapter: SupabaseStorageAdapter, call):
    await adapter.boot()
    try:
        return await call()
    finally:
        await adapter.close()


class TestUpload:
    def test_uploads_and_returns_public_url(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"Key": "blog/post-1/img.png"})

        adapter = _adapter(handler)
        url = asyncio.run(
            _with_client(adapter, lambda: adapter.upload("post-1", "img", b"png", "image/png"))
        )

        assert url == "https://proj.supabase.co/storage/v1/object/public/blog/post-1/img.png"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/storage/v1/object/blog/post-1/img.png"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Content-Type"] == "image/png"
        assert request.headers["x-upsert"] == "true"
        assert request.content == b"png"

    def test_jpeg_uses_jpg_extension(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200, json={}))
        url = asyncio.run(
            _with_client(adapter, lambda: adapter.upload("p", "img", b"x", "image/jpeg"))
        )
        assert url.endswith("/p/img.jpg")

    def test_error_status_raises_storage_error(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(413, text="Payload too large"))
        with pytest.raises(StorageError, match="413"):
            asyncio.run(
                _with_client(adapter, lambda: adapter.upload("p", "img", b"x", "image/png"))
            )

    def test_network_error_raises_storage_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter = _adapter(handler)
        with pytest.raises(StorageError, match="network error"):
            asyncio.run(
                _with_client(adapter, lambda: adapter.upload("p", "img", b"x", "image/png"))
            )

    def test_requires_boot(self) -> None:
        adapter = _adapter(lambda request: httpx.Response(200))
        with pytest.raises(StorageError, match="boot"):
            asyncio.run(adapter.upload("p", "img", b"x", "image/png"))


class TestListAndDelete:
    def test_list_objects(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"name": "a.png"}, {"name": "b.webp"}, {"id": 1}])

        adapter = _adapter(handler)
        names = asyncio.run(_with_client(adapter, lambda: adapter.list_objects("post-1")))

        assert names == ["a.png", "b.webp"]
        assert seen[0].url.path == "/storage/v1/object/list/blog"
        assert json.loads(seen[0].content) == {"prefix": "post-1", "limit": 100, "offset": 0}

    def test_delete_sends_prefixed_paths(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        adapter = _adapter(handler)
        asyncio.run(_with_client(adapter, lambda: adapter.delete("post-1", ["a.png", "b.png"])))

        assert seen[0].method == "DELETE"
        assert json.loads(seen[0].content) == {"prefixes": ["post-1/a.png", "post-1/b.png"]}

    def test_delete_nothing_makes_no_request(self) -> None:
        seen: list[httpx.Request] = []
        adapter = _adapter(lambda request: seen.append(request) or httpx.Response(200))
        asyncio.run(_with_client(adapter, lambda: adapter.delete("post-1", [])))
        assert seen == []


class TestConfiguration:
    def test_requires_base_url(self) -> None:
        with pytest.raises(ValueError, match="supabase_url"):
            SupabaseStorageAdapter(base_url="", api_key="", bucket="blog")

    def test_no_auth_headers_without_key(self) -> None:
        seen: list[httpx.Request] = []
        adapter = SupabaseStorageAdapter(
            base_url="https://proj.supabase.co",
            api_key="",
            bucket="blog",
            transport=httpx.MockTransport(lambda r: seen.append(r) or httpx.Response(200, json=[])),
        )
        asyncio.run(_with_client(adapter, lambda: adapter.list_objects("p")))
        assert "Authorization" not in seen[0].headers
