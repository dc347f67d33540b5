import os
from collections.abc import Generator
from typing import Any

import psycopg
import pytest

from draftdesk.config.settings import Settings
from draftdesk.database.connection import close_pool, get_connection, init_pool


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "draftdesk_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT to_regclass('public.blogs')")
                row = cur.fetchone()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    if row is None or row[0] is None:
        close_pool()
        pytest.skip("Table blogs missing in the test database")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def created_blogs(integration_pool: None) -> Generator[list[str], None, None]:
    """Collects blog ids created by a test and deletes them afterwards."""
    ids: list[str] = []
    yield ids
    if not ids:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for blog_id in ids:
                cur.execute("DELETE FROM blog_categories WHERE blog_id = %s", (blog_id,))
                cur.execute("DELETE FROM blogs WHERE id = %s", (blog_id,))
        conn.commit()
