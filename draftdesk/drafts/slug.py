import re

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def generate_slug(title: str) -> str:
    """Lowercase, collapse non-alphanumerics to '-', strip leading/trailing '-'."""
    return _NON_ALNUM.sub("-", title.lower()).strip("-")
