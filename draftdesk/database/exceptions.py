class DocumentStoreError(Exception):
    """Base exception for blog database errors."""


class BlogNotFoundError(DocumentStoreError):
    """Raised when a blog post cannot be found in the database."""
