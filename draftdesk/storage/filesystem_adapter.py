"""Object store adapter that keeps uploads on local disk.

No network calls. Useful for local development and tests, and as a template
for new adapters: implement BaseObjectStore and register it in
ObjectStoreFactory.
"""

import asyncio
from pathlib import Path

from draftdesk.storage.base import BaseObjectStore, object_name
from draftdesk.storage.exceptions import StorageError


class LocalDiskObjectStore(BaseObjectStore):
    def __init__(self, root: Path, base_url: str = "") -> None:
        self._root = root
        self._base_url = base_url.rstrip("/")

    async def upload(self, owner_id: str, image_id: str, data: bytes, media_type: str) -> str:
        name = object_name(image_id, media_type)
        target = self._root / owner_id / name
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as exc:
            raise StorageError(f"Failed to store {target}: {exc}") from exc
        return self.public_url(owner_id, name)

    async def delete(self, owner_id: str, names: list[str]) -> None:
        for name in names:
            try:
                (self._root / owner_id / name).unlink(missing_ok=True)
            except OSError as exc:
                raise StorageError(f"Failed to delete {owner_id}/{name}: {exc}") from exc

    async def list_objects(self, owner_id: str) -> list[str]:
        folder = self._root / owner_id
        if not folder.is_dir():
            return []
        return sorted(p.name for p in folder.iterdir() if p.is_file())

    def public_url(self, owner_id: str, name: str) -> str:
        if self._base_url:
            return f"{self._base_url}/{owner_id}/{name}"
        return (self._root / owner_id / name).resolve().as_uri()

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
