from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class BlogRecord:
    """Represents a row from the blogs table."""

    id: str
    title: str
    slug: str
    status: str
    content: dict[str, Any] | None = None
    excerpt: str | None = None
    featured_image: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    tags: list[str] = field(default_factory=list)
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
