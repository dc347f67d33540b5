import asyncio
from typing import Any

from draftdesk.content.models import RichNode
from draftdesk.content.parser import document_to_dict
from draftdesk.content.rewriter import extract_image_sources, rewrite
from draftdesk.database.exceptions import DocumentStoreError
from draftdesk.database.models import BlogRecord
from draftdesk.database.repositories.blog_repository import BlogRepository
from draftdesk.drafts.exceptions import PersistenceFailedError
from draftdesk.drafts.manager import DraftManager
from draftdesk.drafts.models import Draft, PublicationStatus, UploadReport
from draftdesk.logging.logger import Log
from draftdesk.publishing.exceptions import PublishError
from draftdesk.publishing.models import SaveResult
from draftdesk.storage.base import BaseObjectStore
from draftdesk.storage.exceptions import StorageError


class PostPublisher:
    """Turns the active draft into a stored blog post.

    Flow: store post -> upload staged images -> rewrite references ->
    store final content -> release local resources.
    """

    def __init__(
        self,
        manager: DraftManager,
        repository: BlogRepository,
        object_store: BaseObjectStore,
    ) -> None:
        self._manager = manager
        self._repository = repository
        self._object_store = object_store

    async def save(
        self,
        status: PublicationStatus | str | None = None,
        *,
        cleanup_unused: bool = False,
    ) -> SaveResult:
        """Save the active draft as a blog post.

        Raises:
            PublishError: if the draft is incomplete or the post cannot be stored.
        """
        draft = self._manager.require_active()
        if status is not None:
            self._manager.set_metadata(status=status)
        self._validate(draft)

        Log.info(f"Saving draft {draft.id} as {draft.metadata.status}")
        try:
            post = await self._store_post(draft, self._post_fields(draft))
            draft.post_id = post.id

            report = await self._manager.upload_all(draft.id, post.id)
            result = rewrite(draft.content, self._final_urls(draft, report), draft.all_images())

            final_fields: dict[str, Any] = {"content": document_to_dict(result.document)}
            featured = draft.featured_image
            if featured is None:
                final_fields["featured_image"] = None
            elif featured.is_uploaded:
                final_fields["featured_image"] = featured.final_url
            post = await asyncio.to_thread(self._repository.update_blog, post.id, final_fields)
        except asyncio.CancelledError:
            self._release_pending(draft)
            raise
        except (DocumentStoreError, StorageError) as exc:
            Log.error(f"Saving draft {draft.id} failed: {exc}")
            raise PublishError(f"Could not save post: {exc}") from exc

        draft.content = result.document
        completed = not report.failures and result.is_complete
        if completed:
            await self._finish(draft)
            if cleanup_unused:
                await self._cleanup_quietly(post.id, result.document, post.featured_image)
        else:
            Log.warning(
                f"Post {post.id} saved with {len(report.failures)} failed uploads and "
                f"{len(result.unresolved)} unresolved images; draft {draft.id} kept for retry"
            )
            await self._persist_quietly(draft)

        return SaveResult(
            post=post,
            failures=report.failures,
            unresolved=result.unresolved,
            completed=completed,
        )

    async def delete_post(self, post_id: str) -> None:
        """Delete a post and every stored image under its prefix.

        Image removal failures are logged and do not stop the row deletion.
        """
        try:
            names = await self._object_store.list_objects(post_id)
            await self._object_store.delete(post_id, names)
            Log.info(f"Deleted {len(names)} images for post {post_id}")
        except StorageError as exc:
            Log.warning(f"Failed to delete images for post {post_id}: {exc}")
        await asyncio.to_thread(self._repository.delete_blog, post_id)
        Log.info(f"Deleted post {post_id}")

    async def cleanup_unused_images(
        self,
        post_id: str,
        document: RichNode | None,
        featured_image: str | None = None,
    ) -> int:
        """Remove stored images of a post that neither its content nor its
        featured image references.

        Raises:
            StorageError: if listing or deleting fails.
        """
        names = await self._object_store.list_objects(post_id)
        sources = extract_image_sources(document)
        if featured_image:
            sources.append(featured_image)
        used = {src.rsplit("/", 1)[-1] for src in sources}
        unused = [name for name in names if name not in used]
        if not unused:
            return 0
        await self._object_store.delete(post_id, unused)
        Log.info(f"Cleaned up {len(unused)} unused images for post {post_id}")
        return len(unused)

    @staticmethod
    def _validate(draft: Draft) -> None:
        if not draft.title.strip():
            raise PublishError("A title is required")
        if draft.content is None:
            raise PublishError("Content is required")

    @staticmethod
    def _final_urls(draft: Draft, report: UploadReport) -> dict[str, str]:
        """Placeholder map of this batch plus images uploaded by an earlier attempt."""
        urls = {
            img.placeholder: img.final_url
            for img in draft.all_images()
            if img.is_uploaded and img.final_url
        }
        urls.update(report.placeholder_map)
        return urls

    @staticmethod
    def _post_fields(draft: Draft) -> dict[str, Any]:
        metadata = draft.metadata
        return {
            "title": draft.title,
            "slug": draft.slug,
            "excerpt": draft.excerpt or None,
            "content": document_to_dict(draft.content),
            "status": str(metadata.status),
            "meta_title": metadata.meta_title or None,
            "meta_description": metadata.meta_description or None,
            "tags": list(metadata.tags),
        }

    async def _store_post(self, draft: Draft, fields: dict[str, Any]) -> BlogRecord:
        categories = list(draft.metadata.category_ids)
        if draft.post_id is None:
            return await asyncio.to_thread(self._repository.create_blog, fields, categories)
        return await asyncio.to_thread(
            self._repository.update_blog, draft.post_id, fields, categories
        )

    async def _finish(self, draft: Draft) -> None:
        self._manager.release_all(draft.id)
        try:
            await self._manager.delete_draft(draft.id)
        except PersistenceFailedError as exc:
            Log.warning(f"Could not remove local copy of draft {draft.id}: {exc}")
        Log.info(f"Draft {draft.id} saved as post {draft.post_id}")

    async def _persist_quietly(self, draft: Draft) -> None:
        try:
            await self._manager.persist_draft(draft)
        except PersistenceFailedError as exc:
            Log.warning(f"Could not keep local copy of draft {draft.id}: {exc}")

    async def _cleanup_quietly(
        self, post_id: str, document: RichNode | None, featured_image: str | None
    ) -> None:
        try:
            await self.cleanup_unused_images(post_id, document, featured_image)
        except StorageError as exc:
            Log.warning(f"Cleanup of unused images for post {post_id} failed: {exc}")

    def _release_pending(self, draft: Draft) -> None:
        released = self._manager.release_pending(draft.id)
        Log.warning(f"Save of draft {draft.id} cancelled, released {released} pending previews")
