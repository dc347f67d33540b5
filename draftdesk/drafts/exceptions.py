class DraftError(Exception):
    """Base exception for all draft and image-staging errors."""


class InvalidFileError(DraftError):
    """Raised when a selected file is not an accepted image type."""


class FileTooLargeError(DraftError):
    """Raised when a selected file exceeds the configured size limit."""


class UploadFailedError(DraftError):
    """Raised when a single staged image could not be uploaded."""

    def __init__(self, image_id: str, cause: Exception | str) -> None:
        self.image_id = image_id
        self.cause = cause
        super().__init__(f"Upload of image {image_id} failed: {cause}")


class PersistenceFailedError(DraftError):
    """Raised when a draft snapshot cannot be written to or read from local storage."""


class PreviewHandleStaleError(DraftError):
    """Raised when a preview handle is unknown to this process or already released."""


class DraftNotFoundError(DraftError):
    """Raised when a draft id does not match the active or any persisted draft."""


class NoActiveDraftError(DraftError):
    """Raised when an operation needs an active draft and none is open."""
