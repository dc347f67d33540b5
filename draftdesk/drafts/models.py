from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from draftdesk.content.models import RichNode
from draftdesk.drafts.exceptions import UploadFailedError


class ImageState(StrEnum):
    LOCAL = "local"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"
    REMOVED = "removed"


class PublicationStatus(StrEnum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class StagedImage:
    """An author-selected image held locally before and during upload."""

    id: str
    placeholder: str
    media_type: str
    size_bytes: int
    filename: str | None = None
    data: bytes | None = field(default=None, repr=False)
    preview_handle: str | None = None
    state: ImageState = ImageState.LOCAL
    final_url: str | None = None
    error: str | None = None

    @property
    def is_uploaded(self) -> bool:
        return self.state == ImageState.UPLOADED

    @property
    def needs_reselection(self) -> bool:
        """True when the image was never uploaded and its local payload is gone."""
        return not self.is_uploaded and (self.data is None or self.preview_handle is None)


@dataclass
class DraftMetadata:
    tags: list[str] = field(default_factory=list)
    category_ids: list[str] = field(default_factory=list)
    meta_title: str = ""
    meta_description: str = ""
    status: PublicationStatus = PublicationStatus.DRAFT


@dataclass
class Draft:
    """Full in-progress authoring state for one post."""

    id: str
    title: str = ""
    slug: str = ""
    excerpt: str = ""
    content: RichNode | None = None
    featured_image: StagedImage | None = None
    content_images: list[StagedImage] = field(default_factory=list)
    metadata: DraftMetadata = field(default_factory=DraftMetadata)
    updated_at: datetime = field(default_factory=utcnow)
    is_auto_save: bool = False
    post_id: str | None = None
    slug_edited: bool = False

    def all_images(self) -> list[StagedImage]:
        images = list(self.content_images)
        if self.featured_image is not None:
            images.append(self.featured_image)
        return images

    def find_image(self, image_id: str) -> StagedImage | None:
        for image in self.all_images():
            if image.id == image_id:
                return image
        return None

    def images_needing_reselection(self) -> list[StagedImage]:
        return [img for img in self.all_images() if img.needs_reselection]

    def touch(self) -> None:
        self.updated_at = utcnow()


@dataclass
class UploadReport:
    """Outcome of one upload batch: placeholder -> final URL, plus failures."""

    placeholder_map: dict[str, str] = field(default_factory=dict)
    failures: list[UploadFailedError] = field(default_factory=list)

    @property
    def failed_ids(self) -> list[str]:
        return [f.image_id for f in self.failures]


@dataclass(frozen=True)
class DraftSummary:
    """Listing entry for a persisted draft."""

    id: str
    title: str
    image_count: int
    last_saved: datetime | None
    is_auto_save: bool
