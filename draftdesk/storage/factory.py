from pathlib import Path

from draftdesk.config.settings import Settings
from draftdesk.storage.base import BaseObjectStore
from draftdesk.storage.filesystem_adapter import LocalDiskObjectStore
from draftdesk.storage.supabase_adapter import SupabaseStorageAdapter


class ObjectStoreFactory:
    """Creates the configured object store adapter."""

    ENGINES = ("supabase", "local")

    @classmethod
    def create(cls, settings: Settings) -> BaseObjectStore:
        engine = settings.object_store_engine.lower()
        if engine == "supabase":
            return SupabaseStorageAdapter(
                base_url=settings.supabase_url,
                api_key=settings.supabase_key,
                bucket=settings.supabase_bucket,
                timeout_seconds=settings.supabase_timeout_seconds,
            )
        if engine == "local":
            return LocalDiskObjectStore(
                root=Path(settings.local_object_store_dir),
                base_url=settings.local_object_store_base_url,
            )
        raise ValueError(
            f"Unknown object store engine '{engine}'. Choose from: {list(cls.ENGINES)}"
        )
