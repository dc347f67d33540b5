class PublishError(Exception):
    """Raised when an explicit save cannot complete. The draft is left intact."""
