"""Local draft and image staging manager for the blog authoring session."""

import asyncio
import uuid
from dataclasses import fields
from typing import Any

from draftdesk.config.settings import Settings
from draftdesk.content.exceptions import DocumentFormatError
from draftdesk.content.models import RichNode
from draftdesk.content.parser import build_document
from draftdesk.drafts.exceptions import (
    DraftNotFoundError,
    FileTooLargeError,
    InvalidFileError,
    NoActiveDraftError,
    PersistenceFailedError,
    UploadFailedError,
)
from draftdesk.drafts.local_storage import BaseLocalStorage
from draftdesk.drafts.locks import KeyedLocks
from draftdesk.drafts.models import (
    Draft,
    DraftMetadata,
    DraftSummary,
    ImageState,
    PublicationStatus,
    StagedImage,
    UploadReport,
)
from draftdesk.drafts.preview import PreviewRegistry
from draftdesk.drafts.slug import generate_slug
from draftdesk.drafts.snapshot import DraftSnapshot, dump_snapshots, load_snapshots
from draftdesk.logging.logger import Log
from draftdesk.storage.base import BaseObjectStore

_UPLOADABLE_STATES = frozenset({ImageState.LOCAL, ImageState.FAILED})
_METADATA_FIELDS = frozenset(f.name for f in fields(DraftMetadata))


def generate_id() -> str:
    return uuid.uuid4().hex


class DraftManager:
    """Owns the active draft, its staged images and their persistence.

    One manager serves one authoring session, so at most one draft is active
    at a time. Opening another draft releases the preview handles of the
    previous one.
    """

    def __init__(
        self,
        settings: Settings,
        local_storage: BaseLocalStorage,
        object_store: BaseObjectStore,
        previews: PreviewRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._local_storage = local_storage
        self._object_store = object_store
        self._previews = previews if previews is not None else PreviewRegistry()
        self._active: Draft | None = None
        self._draft_locks = KeyedLocks()
        self._image_locks = KeyedLocks()
        self._store_locks = KeyedLocks()

    @property
    def previews(self) -> PreviewRegistry:
        return self._previews

    @property
    def active_draft(self) -> Draft | None:
        return self._active

    def require_active(self) -> Draft:
        if self._active is None:
            raise NoActiveDraftError("No draft is currently open")
        return self._active

    # Draft lifecycle

    def new_draft(self) -> Draft:
        """Start an empty draft and make it the active one."""
        self._close_active()
        self._active = Draft(id=generate_id())
        Log.info(f"Started draft {self._active.id}")
        return self._active

    def discard_draft(self) -> None:
        """Release every preview handle of the active draft and close it."""
        if self._active is None:
            return
        Log.info(f"Discarding draft {self._active.id}")
        self._close_active()

    def release_all(self, draft_id: str) -> int:
        """Release all live preview handles owned by the draft. Returns how many."""
        draft = self._active
        if draft is None or draft.id != draft_id:
            Log.debug(f"No live previews for draft {draft_id}")
            return 0
        released = 0
        for image in draft.all_images():
            released += self._release_image(image)
        if released:
            Log.debug(f"Released {released} preview handles for draft {draft_id}")
        return released

    def release_pending(self, draft_id: str) -> int:
        """Release the preview handles of images that are not uploaded yet."""
        draft = self._active
        if draft is None or draft.id != draft_id:
            return 0
        return sum(self._release_image(img) for img in draft.all_images() if not img.is_uploaded)

    # Field edits

    def set_title(self, title: str) -> None:
        draft = self.require_active()
        draft.title = title
        if not draft.slug_edited:
            draft.slug = generate_slug(title)
        draft.touch()

    def set_slug(self, slug: str) -> None:
        draft = self.require_active()
        draft.slug = slug
        draft.slug_edited = True
        draft.touch()

    def set_excerpt(self, excerpt: str) -> None:
        draft = self.require_active()
        draft.excerpt = excerpt
        draft.touch()

    def set_content(self, content: RichNode | dict[str, Any] | None) -> None:
        """Replace the document; editor JSON is validated and converted."""
        draft = self.require_active()
        if isinstance(content, dict):
            content = build_document(content)
        draft.content = content
        draft.touch()

    def set_metadata(self, **values: Any) -> None:
        draft = self.require_active()
        unknown = set(values) - _METADATA_FIELDS
        if unknown:
            raise ValueError(f"Unknown metadata fields: {sorted(unknown)}")
        metadata = draft.metadata
        if "tags" in values:
            metadata.tags = _unique(values["tags"])
        if "category_ids" in values:
            metadata.category_ids = _unique(str(c) for c in values["category_ids"])
        if "meta_title" in values:
            metadata.meta_title = values["meta_title"]
        if "meta_description" in values:
            metadata.meta_description = values["meta_description"]
        if "status" in values:
            metadata.status = PublicationStatus(values["status"])
        draft.touch()

    def add_tag(self, tag: str) -> bool:
        draft = self.require_active()
        tag = tag.strip()
        if not tag or tag in draft.metadata.tags:
            return False
        draft.metadata.tags.append(tag)
        draft.touch()
        return True

    def remove_tag(self, tag: str) -> None:
        draft = self.require_active()
        if tag in draft.metadata.tags:
            draft.metadata.tags.remove(tag)
            draft.touch()

    # Image staging

    def stage(
        self,
        data: bytes,
        media_type: str,
        *,
        filename: str | None = None,
        featured: bool = False,
    ) -> StagedImage:
        """Validate a selected file and hold it locally in the active draft.

        Raises:
            InvalidFileError: if the media type is not an accepted image type.
            FileTooLargeError: if the file is larger than max_image_size_bytes.
            NoActiveDraftError: if no draft is open.
        """
        draft = self.require_active()
        self._validate_file(data, media_type)

        image_id = generate_id()
        image = StagedImage(
            id=image_id,
            placeholder=f"local-image-{image_id}",
            media_type=media_type.lower(),
            size_bytes=len(data),
            filename=filename,
            data=data,
            preview_handle=self._previews.create(data),
        )
        if featured:
            if draft.featured_image is not None:
                self._release_image(draft.featured_image)
                draft.featured_image.state = ImageState.REMOVED
            draft.featured_image = image
        else:
            draft.content_images.append(image)
        draft.touch()
        Log.info(f"Staged image {image_id} ({image.size_bytes} bytes) in draft {draft.id}")
        return image

    def unstage(self, image_id: str) -> None:
        """Remove an image from the active draft. Unknown ids are ignored."""
        draft = self._active
        if draft is None:
            return
        image = draft.find_image(image_id)
        if image is None:
            return
        self._release_image(image)
        image.state = ImageState.REMOVED
        draft.content_images = [img for img in draft.content_images if img.id != image_id]
        if draft.featured_image is not None and draft.featured_image.id == image_id:
            draft.featured_image = None
        draft.touch()
        Log.info(f"Unstaged image {image_id} from draft {draft.id}")

    # Uploads

    async def upload_all(self, draft_id: str, owner_id: str) -> UploadReport:
        """Upload every staged image not yet uploaded, concurrently.

        Individual failures are collected in the report and never abort the
        batch. Returns only once every upload has settled.
        """
        draft = self._require_draft(draft_id)
        pending = [img for img in draft.all_images() if img.state in _UPLOADABLE_STATES]
        report = UploadReport()
        if not pending:
            return report

        Log.info(f"Uploading {len(pending)} images for draft {draft_id} to {owner_id}")
        semaphore = asyncio.Semaphore(self._settings.upload_concurrency)
        await asyncio.gather(
            *(self._upload_one(img, owner_id, report, semaphore) for img in pending)
        )
        Log.info(
            f"Upload batch for draft {draft_id} finished: "
            f"{len(report.placeholder_map)} uploaded, {len(report.failures)} failed"
        )
        return report

    async def upload_image(self, draft_id: str, image_id: str, owner_id: str) -> UploadReport:
        """Retry the upload of one staged image."""
        draft = self._require_draft(draft_id)
        image = draft.find_image(image_id)
        if image is None:
            raise DraftNotFoundError(f"Image {image_id} is not part of draft {draft_id}")
        report = UploadReport()
        semaphore = asyncio.Semaphore(1)
        await self._upload_one(image, owner_id, report, semaphore)
        return report

    async def _upload_one(
        self,
        image: StagedImage,
        owner_id: str,
        report: UploadReport,
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with self._image_locks.hold(image.id):
            if image.state == ImageState.UPLOADED and image.final_url:
                report.placeholder_map[image.placeholder] = image.final_url
                return
            if image.state not in _UPLOADABLE_STATES:
                return
            if image.data is None:
                self._mark_failed(image, report, "image must be selected again")
                return

            async with semaphore:
                image.state = ImageState.UPLOADING
                try:
                    url = await self._object_store.upload(
                        owner_id, image.id, image.data, image.media_type
                    )
                except asyncio.CancelledError:
                    if image.state != ImageState.REMOVED:
                        image.state = ImageState.LOCAL
                    raise
                except Exception as exc:
                    if image.state == ImageState.REMOVED:
                        Log.warning(f"Image {image.id} was removed while uploading: {exc}")
                        return
                    self._mark_failed(image, report, exc)
                    return

            if image.state == ImageState.REMOVED:
                Log.warning(f"Image {image.id} was removed while uploading, ignoring result")
                return
            image.state = ImageState.UPLOADED
            image.final_url = url
            image.error = None
            report.placeholder_map[image.placeholder] = url

    @staticmethod
    def _mark_failed(image: StagedImage, report: UploadReport, cause: Exception | str) -> None:
        image.state = ImageState.FAILED
        image.error = str(cause)
        report.failures.append(UploadFailedError(image.id, cause))
        Log.error(f"Upload of image {image.id} failed: {cause}")

    # Persistence

    async def persist_draft(self, draft: Draft, *, auto_save: bool = False) -> None:
        """Write a snapshot of the draft to durable local storage.

        Raises:
            PersistenceFailedError: if the storage write fails.
        """
        async with self._draft_locks.hold(draft.id):
            draft.is_auto_save = auto_save
            snapshot = DraftSnapshot.from_draft(draft)
            async with self._store_locks.hold(self._settings.drafts_storage_key):
                await asyncio.to_thread(self._write_snapshot, snapshot)
        Log.debug(f"Persisted draft {draft.id} (auto_save={auto_save})")

    async def resume_draft(self, draft_id: str) -> Draft | None:
        """Load a persisted draft and make it the active one.

        Images that were not uploaded come back without payload or preview
        handle and report ``needs_reselection``.

        Raises:
            PersistenceFailedError: if the stored snapshot cannot be read.
        """
        snapshot = await self._find_snapshot(draft_id)
        if snapshot is None:
            return None
        try:
            draft = snapshot.to_draft()
        except DocumentFormatError as exc:
            raise PersistenceFailedError(f"Draft {draft_id} has invalid content: {exc}") from exc

        self._close_active()
        self._active = draft
        stale = draft.images_needing_reselection()
        if stale:
            Log.warning(
                f"Draft {draft_id} resumed; {len(stale)} images must be selected again"
            )
        else:
            Log.info(f"Draft {draft_id} resumed")
        return draft

    async def list_drafts(self) -> list[DraftSummary]:
        raw = await asyncio.to_thread(self._local_storage.get, self._settings.drafts_storage_key)
        return [
            DraftSummary(
                id=s.id,
                title=s.title,
                image_count=len(s.content_images) + (1 if s.featured_image else 0),
                last_saved=s.updated_at,
                is_auto_save=s.is_auto_save,
            )
            for s in load_snapshots(raw)
        ]

    async def delete_draft(self, draft_id: str) -> bool:
        """Drop the persisted snapshot; closes the draft if it is active."""
        async with self._draft_locks.hold(draft_id):
            async with self._store_locks.hold(self._settings.drafts_storage_key):
                removed = await asyncio.to_thread(self._remove_snapshot, draft_id)
        if self._active is not None and self._active.id == draft_id:
            self._close_active()
        return removed

    def _write_snapshot(self, snapshot: DraftSnapshot) -> None:
        key = self._settings.drafts_storage_key
        try:
            snapshots = load_snapshots(self._local_storage.get(key))
        except PersistenceFailedError as exc:
            Log.warning(f"Replacing unreadable draft store: {exc}")
            snapshots = []
        snapshots = [s for s in snapshots if s.id != snapshot.id]
        snapshots.append(snapshot)
        overflow = len(snapshots) - self._settings.max_local_drafts
        if overflow > 0:
            Log.info(f"Evicting {overflow} oldest local drafts")
            snapshots = snapshots[overflow:]
        self._local_storage.set(key, dump_snapshots(snapshots))

    def _remove_snapshot(self, draft_id: str) -> bool:
        key = self._settings.drafts_storage_key
        snapshots = load_snapshots(self._local_storage.get(key))
        remaining = [s for s in snapshots if s.id != draft_id]
        if len(remaining) == len(snapshots):
            return False
        self._local_storage.set(key, dump_snapshots(remaining))
        return True

    async def _find_snapshot(self, draft_id: str) -> DraftSnapshot | None:
        raw = await asyncio.to_thread(self._local_storage.get, self._settings.drafts_storage_key)
        for snapshot in load_snapshots(raw):
            if snapshot.id == draft_id:
                return snapshot
        return None

    # Helpers

    def _require_draft(self, draft_id: str) -> Draft:
        draft = self.require_active()
        if draft.id != draft_id:
            raise DraftNotFoundError(f"Draft {draft_id} is not the active draft")
        return draft

    def _close_active(self) -> None:
        if self._active is not None:
            self.release_all(self._active.id)
            self._active = None

    def _release_image(self, image: StagedImage) -> int:
        handle = image.preview_handle
        image.preview_handle = None
        if not image.is_uploaded:
            image.data = None
        if handle is None:
            return 0
        return self._previews.release_many([handle])

    def _validate_file(self, data: bytes, media_type: str) -> None:
        media_type = media_type.lower()
        if not media_type.startswith("image/") or not self._is_accepted(media_type):
            raise InvalidFileError(f"'{media_type}' is not an accepted image type")
        if not data:
            raise InvalidFileError("Image file is empty")
        limit = self._settings.max_image_size_bytes
        if len(data) > limit:
            raise FileTooLargeError(f"Image is {len(data)} bytes, limit is {limit} bytes")

    def _is_accepted(self, media_type: str) -> bool:
        for accepted in self._settings.accepted_media_types:
            accepted = accepted.lower()
            if accepted.endswith("/*"):
                if media_type.startswith(accepted[:-1]):
                    return True
            elif media_type == accepted:
                return True
        return False


def _unique(values: Any) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen
