import httpx

from draftdesk.logging.logger import Log
from draftdesk.storage.base import BaseObjectStore, object_name
from draftdesk.storage.exceptions import StorageError


class SupabaseStorageAdapter(BaseObjectStore):
    """Object store adapter for the Supabase Storage REST API."""

    LIST_LIMIT = 100

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        bucket: str,
        timeout_seconds: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("supabase_url is required for object_store_engine=supabase")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._bucket = bucket
        self._timeout = timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def boot(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/storage/v1",
            headers=self._auth_headers(),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def upload(self, owner_id: str, image_id: str, data: bytes, media_type: str) -> str:
        path = f"{owner_id}/{object_name(image_id, media_type)}"
        await self._request(
            "POST",
            f"/object/{self._bucket}/{path}",
            content=data,
            headers={
                "Content-Type": media_type,
                "Cache-Control": "max-age=3600",
                "x-upsert": "true",
            },
        )
        Log.debug(f"Uploaded {len(data)} bytes to {self._bucket}/{path}")
        return self.public_url(owner_id, object_name(image_id, media_type))

    async def delete(self, owner_id: str, names: list[str]) -> None:
        if not names:
            return
        await self._request(
            "DELETE",
            f"/object/{self._bucket}",
            json={"prefixes": [f"{owner_id}/{name}" for name in names]},
        )

    async def list_objects(self, owner_id: str) -> list[str]:
        response = await self._request(
            "POST",
            f"/object/list/{self._bucket}",
            json={"prefix": owner_id, "limit": self.LIST_LIMIT, "offset": 0},
        )
        try:
            entries = response.json()
        except ValueError as exc:
            raise StorageError(f"Invalid listing response: {exc}") from exc
        if not isinstance(entries, list):
            raise StorageError("Listing response must be a list")
        return [e["name"] for e in entries if isinstance(e, dict) and e.get("name")]

    def public_url(self, owner_id: str, name: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{owner_id}/{name}"

    def _auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}", "apikey": self._api_key}

    async def _request(self, method: str, url: str, **kwargs: object) -> httpx.Response:
        if self._client is None:
            raise StorageError("Storage client not initialised. Call boot() first.")
        try:
            response = await self._client.request(method, url, **kwargs)  # type: ignore[arg-type]
        except httpx.HTTPError as exc:
            raise StorageError(f"Storage network error: {exc}") from exc
        if response.status_code >= 300:
            raise StorageError(
                f"Storage request {method} {url} failed with status "
                f"{response.status_code}: {response.text}"
            )
        return response
