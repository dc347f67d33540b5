import mimetypes
from abc import ABC, abstractmethod

_EXTENSION_OVERRIDES = {"image/jpeg": ".jpg", "image/svg+xml": ".svg"}


def object_name(image_id: str, media_type: str) -> str:
    """File name for an uploaded image: ``<image_id><ext>``."""
    ext = _EXTENSION_OVERRIDES.get(media_type) or mimetypes.guess_extension(media_type) or ""
    return f"{image_id}{ext}"


class BaseObjectStore(ABC):
    """Contract for object storage adapters holding uploaded post images.

    Objects are grouped under an owner prefix (the post id), so that all
    images of one post can be listed and removed together.
    """

    async def boot(self) -> None:
        """Acquire any resources needed before the first request."""

    async def close(self) -> None:
        """Release resources acquired by boot()."""

    @abstractmethod
    async def upload(self, owner_id: str, image_id: str, data: bytes, media_type: str) -> str:
        """Store an image and return its public URL.

        Raises:
            StorageError: if the upload fails for any reason.
        """

    @abstractmethod
    async def delete(self, owner_id: str, names: list[str]) -> None:
        """Remove the named objects under owner_id.

        Raises:
            StorageError: if the deletion fails.
        """

    @abstractmethod
    async def list_objects(self, owner_id: str) -> list[str]:
        """Return the names of all objects stored under owner_id.

        Raises:
            StorageError: if the listing fails.
        """

    @abstractmethod
    def public_url(self, owner_id: str, name: str) -> str:
        """Public URL of an object; no request is made."""
