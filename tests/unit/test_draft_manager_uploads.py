import asyncio

import pytest

from draftdesk.config.settings import Settings
from draftdesk.drafts.exceptions import DraftNotFoundError, UploadFailedError
from draftdesk.drafts.local_storage import FileLocalStorage
from draftdesk.drafts.manager import DraftManager
from draftdesk.drafts.models import ImageState
from draftdesk.storage.base import BaseObjectStore
from draftdesk.storage.exceptions import StorageError


class FlakyObjectStore(BaseObjectStore):
    """Records uploads, fails for chosen payloads and tracks concurrency."""

    def __init__(self, failing_payloads: set[bytes] | None = None, delay: float = 0.0) -> None:
        self.failing_payloads = failing_payloads or set()
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, owner_id: str, image_id: str, data: bytes, media_type: str) -> str:
        self.calls.append((owner_id, image_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if data in self.failing_payloads:
                raise StorageError("bucket unavailable")
            return self.public_url(owner_id, f"{image_id}.png")
        finally:
            self.in_flight -= 1

    async def delete(self, owner_id: str, names: list[str]) -> None:
        return None

    async def list_objects(self, owner_id: str) -> list[str]:
        return []

    def public_url(self, owner_id: str, name: str) -> str:
        return f"https://store/{owner_id}/{name}"


def _manager(settings: Settings, local_storage: FileLocalStorage, store: BaseObjectStore) -> DraftManager:
    return DraftManager(settings, local_storage, store)


class TestUploadAll:
    def test_partial_failure_is_aggregated(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore(failing_payloads={b"bad"})
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        ok1 = manager.stage(b"one", "image/png")
        bad = manager.stage(b"bad", "image/png")
        ok2 = manager.stage(b"two", "image/png")

        report = asyncio.run(manager.upload_all(draft.id, "post-1"))

        assert report.placeholder_map == {
            ok1.placeholder: f"https://store/post-1/{ok1.id}.png",
            ok2.placeholder: f"https://store/post-1/{ok2.id}.png",
        }
        assert report.failed_ids == [bad.id]
        failure = report.failures[0]
        assert isinstance(failure, UploadFailedError)
        assert isinstance(failure.cause, StorageError)
        assert bad.state == ImageState.FAILED
        assert bad.error == "bucket unavailable"
        assert ok1.state == ImageState.UPLOADED
        assert ok1.final_url == report.placeholder_map[ok1.placeholder]

    def test_failed_image_keeps_its_payload_for_retry(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore(failing_payloads={b"bad"})
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        bad = manager.stage(b"bad", "image/png")
        asyncio.run(manager.upload_all(draft.id, "post-1"))

        assert manager.previews.is_live(bad.preview_handle)
        store.failing_payloads.clear()
        report = asyncio.run(manager.upload_image(draft.id, bad.id, "post-1"))

        assert report.failures == []
        assert bad.state == ImageState.UPLOADED
        assert bad.error is None

    def test_includes_featured_image(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore()
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        featured = manager.stage(b"hero", "image/png", featured=True)

        report = asyncio.run(manager.upload_all(draft.id, "post-1"))

        assert featured.placeholder in report.placeholder_map
        assert draft.featured_image.final_url is not None

    def test_uploaded_images_are_not_sent_again(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore()
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        manager.stage(b"one", "image/png")

        asyncio.run(manager.upload_all(draft.id, "post-1"))
        second = asyncio.run(manager.upload_all(draft.id, "post-1"))

        assert len(store.calls) == 1
        assert second.placeholder_map == {}

    def test_concurrency_is_capped(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore(delay=0.01)
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        for i in range(5):
            manager.stage(bytes([i + 1]), "image/png")

        report = asyncio.run(manager.upload_all(draft.id, "post-1"))

        assert len(report.placeholder_map) == 5
        assert 1 < store.max_in_flight <= settings.upload_concurrency

    def test_same_image_is_never_uploaded_twice_concurrently(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore(delay=0.01)
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        image = manager.stage(b"one", "image/png")

        async def both() -> list:
            return await asyncio.gather(
                manager.upload_all(draft.id, "post-1"),
                manager.upload_image(draft.id, image.id, "post-1"),
            )

        first, second = asyncio.run(both())

        assert store.calls == [("post-1", image.id)]
        assert first.placeholder_map == second.placeholder_map

    def test_image_removed_during_upload_is_ignored(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore(delay=0.01)
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        image = manager.stage(b"one", "image/png")

        async def upload_and_remove():
            task = asyncio.create_task(manager.upload_all(draft.id, "post-1"))
            await asyncio.sleep(0.005)
            manager.unstage(image.id)
            return await task

        report = asyncio.run(upload_and_remove())

        assert report.placeholder_map == {}
        assert image.state == ImageState.REMOVED
        assert draft.content_images == []

    def test_failed_upload_of_removed_image_is_not_reported(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore(failing_payloads={b"bad"}, delay=0.05)
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        image = manager.stage(b"bad", "image/png")

        async def upload_and_remove():
            task = asyncio.create_task(manager.upload_all(draft.id, "post-1"))
            await asyncio.sleep(0.01)
            manager.unstage(image.id)
            return await task

        report = asyncio.run(upload_and_remove())

        assert store.calls == [("post-1", image.id)]
        assert report.failures == []
        assert image.state == ImageState.REMOVED
        assert image.error is None

    def test_image_without_payload_fails_without_network(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        store = FlakyObjectStore()
        manager = _manager(settings, local_storage, store)
        draft = manager.new_draft()
        image = manager.stage(b"one", "image/png")
        image.data = None

        report = asyncio.run(manager.upload_all(draft.id, "post-1"))

        assert report.failed_ids == [image.id]
        assert store.calls == []

    def test_unknown_draft_raises(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        manager = _manager(settings, local_storage, FlakyObjectStore())
        manager.new_draft()
        with pytest.raises(DraftNotFoundError):
            asyncio.run(manager.upload_all("other", "post-1"))

    def test_unknown_image_raises(
        self, settings: Settings, local_storage: FileLocalStorage
    ) -> None:
        manager = _manager(settings, local_storage, FlakyObjectStore())
        draft = manager.new_draft()
        with pytest.raises(DraftNotFoundError):
            asyncio.run(manager.upload_image(draft.id, "missing", "post-1"))
