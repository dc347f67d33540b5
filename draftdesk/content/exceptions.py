class DocumentFormatError(Exception):
    """Raised when editor JSON does not describe a valid rich-text tree."""
