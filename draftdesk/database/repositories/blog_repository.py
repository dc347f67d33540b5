from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from draftdesk.database.connection import get_connection
from draftdesk.database.exceptions import BlogNotFoundError, DocumentStoreError
from draftdesk.database.models import BlogRecord

_COLUMNS = (
    "id, title, slug, status, content, excerpt, featured_image, meta_title, "
    "meta_description, tags, published_at, created_at, updated_at"
)
_WRITABLE_FIELDS = frozenset({
    "title",
    "slug",
    "excerpt",
    "content",
    "featured_image",
    "status",
    "published_at",
    "meta_title",
    "meta_description",
    "tags",
})


class BlogRepository:
    """Database operations for the blogs and blog_categories tables."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))

    def create_blog(
        self, fields: dict[str, Any], category_ids: list[str] | None = None
    ) -> BlogRecord:
        """Insert a blog post and its category links.

        ``published_at`` is stamped when the post is created as published.

        Raises:
            DocumentStoreError: on any database failure.
        """
        values = self._prepare(fields)
        if values.get("status") == "published" and "published_at" not in values:
            values["published_at"] = self._clock()
        names = list(values)
        query = sql.SQL("INSERT INTO blogs ({}) VALUES ({}) RETURNING {}").format(
            sql.SQL(", ").join(sql.Identifier(n) for n in names),
            sql.SQL(", ").join(sql.Placeholder() for _ in names),
            sql.SQL(_COLUMNS),
        )
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, [values[n] for n in names])
                    row = cur.fetchone()
                    if row is None:
                        raise DocumentStoreError("Insert into blogs returned no row")
                    if category_ids:
                        self._link_categories(cur, row["id"], category_ids)
                conn.commit()
        except psycopg.Error as exc:
            raise DocumentStoreError(f"Failed to create blog: {exc}") from exc
        return self._to_record(row)

    def update_blog(
        self,
        blog_id: str,
        fields: dict[str, Any],
        category_ids: list[str] | None = None,
    ) -> BlogRecord:
        """Update the given columns; category links are replaced when given.

        Raises:
            BlogNotFoundError: if no blog with this ID exists.
            DocumentStoreError: on any other database failure.
        """
        values = self._prepare(fields)
        if values.get("status") == "published" and not values.get("published_at"):
            values["published_at"] = self._clock()
        values["updated_at"] = self._clock()
        names = list(values)
        query = sql.SQL("UPDATE blogs SET {} WHERE id = %s RETURNING {}").format(
            sql.SQL(", ").join(
                sql.SQL("{} = {}").format(sql.Identifier(n), sql.Placeholder()) for n in names
            ),
            sql.SQL(_COLUMNS),
        )
        try:
            with get_connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    cur.execute(query, [*(values[n] for n in names), blog_id])
                    row = cur.fetchone()
                    if row is None:
                        raise BlogNotFoundError(f"Blog {blog_id} not found")
                    if category_ids is not None:
                        cur.execute("DELETE FROM blog_categories WHERE blog_id = %s", (blog_id,))
                        self._link_categories(cur, blog_id, category_ids)
                conn.commit()
        except psycopg.Error as exc:
            raise DocumentStoreError(f"Failed to update blog {blog_id}: {exc}") from exc
        return self._to_record(row)

    def find_by_id(self, blog_id: str) -> BlogRecord:
        """Find a blog post by ID.

        Raises:
            BlogNotFoundError: if no blog with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"SELECT {_COLUMNS} FROM blogs WHERE id = %s", (blog_id,))
                row = cur.fetchone()

        if row is None:
            raise BlogNotFoundError(f"Blog {blog_id} not found")
        return self._to_record(row)

    def delete_blog(self, blog_id: str) -> None:
        """Delete a blog post; its category links cascade.

        Raises:
            BlogNotFoundError: if no blog with this ID exists.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM blogs WHERE id = %s", (blog_id,))
                if cur.rowcount == 0:
                    raise BlogNotFoundError(f"Blog {blog_id} not found")
            conn.commit()

    def is_slug_unique(self, slug: str, exclude_id: str | None = None) -> bool:
        with get_connection() as conn:
            with conn.cursor() as cur:
                if exclude_id is None:
                    cur.execute("SELECT id FROM blogs WHERE slug = %s LIMIT 1", (slug,))
                else:
                    cur.execute(
                        "SELECT id FROM blogs WHERE slug = %s AND id <> %s LIMIT 1",
                        (slug, exclude_id),
                    )
                return cur.fetchone() is None

    @staticmethod
    def _prepare(fields: dict[str, Any]) -> dict[str, Any]:
        unknown = set(fields) - _WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown blog fields: {sorted(unknown)}")
        values = dict(fields)
        if "content" in values and values["content"] is not None:
            values["content"] = Jsonb(values["content"])
        return values

    @staticmethod
    def _link_categories(cur: psycopg.Cursor[Any], blog_id: str, category_ids: list[str]) -> None:
        if not category_ids:
            return
        cur.executemany(
            "INSERT INTO blog_categories (blog_id, category_id) VALUES (%s, %s)",
            [(blog_id, category_id) for category_id in category_ids],
        )

    @staticmethod
    def _to_record(row: dict[str, Any]) -> BlogRecord:
        return BlogRecord(
            id=str(row["id"]),
            title=row["title"],
            slug=row["slug"],
            status=row["status"],
            content=row["content"],
            excerpt=row["excerpt"],
            featured_image=row["featured_image"],
            meta_title=row["meta_title"],
            meta_description=row["meta_description"],
            tags=list(row["tags"] or []),
            published_at=row["published_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
