"""Serializable snapshots of drafts for durable local storage.

Snapshots never carry image bytes or preview handles: both are only valid
inside the process that created them.
"""

import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from draftdesk.content.parser import build_document, document_to_dict
from draftdesk.drafts.exceptions import PersistenceFailedError
from draftdesk.drafts.models import (
    Draft,
    DraftMetadata,
    ImageState,
    PublicationStatus,
    StagedImage,
)


class StagedImageSnapshot(BaseModel):
    id: str
    placeholder: str
    media_type: str
    size_bytes: int
    filename: str | None = None
    state: ImageState = ImageState.LOCAL
    final_url: str | None = None

    @classmethod
    def from_image(cls, image: StagedImage) -> "StagedImageSnapshot":
        state = image.state
        # an upload in flight is not durable; it restarts from scratch
        if state == ImageState.UPLOADING:
            state = ImageState.LOCAL
        return cls(
            id=image.id,
            placeholder=image.placeholder,
            media_type=image.media_type,
            size_bytes=image.size_bytes,
            filename=image.filename,
            state=state,
            final_url=image.final_url,
        )

    def to_image(self) -> StagedImage:
        return StagedImage(
            id=self.id,
            placeholder=self.placeholder,
            media_type=self.media_type,
            size_bytes=self.size_bytes,
            filename=self.filename,
            state=self.state,
            final_url=self.final_url,
        )


class MetadataSnapshot(BaseModel):
    tags: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    meta_title: str = ""
    meta_description: str = ""
    status: PublicationStatus = PublicationStatus.DRAFT


class DraftSnapshot(BaseModel):
    id: str
    title: str = ""
    slug: str = ""
    excerpt: str = ""
    content: dict[str, Any] | None = None
    featured_image: StagedImageSnapshot | None = None
    content_images: list[StagedImageSnapshot] = Field(default_factory=list)
    metadata: MetadataSnapshot = Field(default_factory=MetadataSnapshot)
    updated_at: datetime
    is_auto_save: bool = False
    post_id: str | None = None
    slug_edited: bool = False

    @classmethod
    def from_draft(cls, draft: Draft) -> "DraftSnapshot":
        featured = draft.featured_image
        return cls(
            id=draft.id,
            title=draft.title,
            slug=draft.slug,
            excerpt=draft.excerpt,
            content=document_to_dict(draft.content),
            featured_image=StagedImageSnapshot.from_image(featured) if featured else None,
            content_images=[StagedImageSnapshot.from_image(i) for i in draft.content_images],
            metadata=MetadataSnapshot(
                tags=list(draft.metadata.tags),
                category_ids=list(draft.metadata.category_ids),
                meta_title=draft.metadata.meta_title,
                meta_description=draft.metadata.meta_description,
                status=draft.metadata.status,
            ),
            updated_at=draft.updated_at,
            is_auto_save=draft.is_auto_save,
            post_id=draft.post_id,
            slug_edited=draft.slug_edited,
        )

    def to_draft(self) -> Draft:
        return Draft(
            id=self.id,
            title=self.title,
            slug=self.slug,
            excerpt=self.excerpt,
            content=build_document(self.content),
            featured_image=self.featured_image.to_image() if self.featured_image else None,
            content_images=[i.to_image() for i in self.content_images],
            metadata=DraftMetadata(**self.metadata.model_dump()),
            updated_at=self.updated_at,
            is_auto_save=self.is_auto_save,
            post_id=self.post_id,
            slug_edited=self.slug_edited,
        )


def dump_snapshots(snapshots: list[DraftSnapshot]) -> bytes:
    return json.dumps([s.model_dump(mode="json") for s in snapshots]).encode("utf-8")


def load_snapshots(raw: bytes | None) -> list[DraftSnapshot]:
    """Parse the stored draft list.

    Raises:
        PersistenceFailedError: if the stored value is not a valid draft list.
    """
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PersistenceFailedError(f"Stored drafts are not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise PersistenceFailedError("Stored drafts must be a list")
    try:
        return [DraftSnapshot.model_validate(item) for item in data]
    except ValidationError as exc:
        raise PersistenceFailedError(f"Stored drafts are malformed: {exc}") from exc
