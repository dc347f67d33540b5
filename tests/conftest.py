from pathlib import Path

import pytest

from draftdesk.config.settings import Settings
from draftdesk.drafts.local_storage import FileLocalStorage
from draftdesk.drafts.manager import DraftManager
from draftdesk.storage.filesystem_adapter import LocalDiskObjectStore

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        max_image_size_bytes=1024,
        max_local_drafts=3,
        upload_concurrency=2,
        autosave_interval_seconds=0.01,
        drafts_dir=str(tmp_path / "drafts"),
        object_store_engine="local",
        local_object_store_dir=str(tmp_path / "uploads"),
        local_object_store_base_url="https://store",
    )


@pytest.fixture()
def local_storage(settings: Settings) -> FileLocalStorage:
    return FileLocalStorage(Path(settings.drafts_dir), max_entries=5)


@pytest.fixture()
def object_store(settings: Settings) -> LocalDiskObjectStore:
    return LocalDiskObjectStore(
        Path(settings.local_object_store_dir), base_url=settings.local_object_store_base_url
    )


@pytest.fixture()
def manager(
    settings: Settings, local_storage: FileLocalStorage, object_store: LocalDiskObjectStore
) -> DraftManager:
    return DraftManager(settings, local_storage, object_store)


@pytest.fixture()
def png_bytes() -> bytes:
    return PNG_BYTES
