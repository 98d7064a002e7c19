"""Shared fixtures.

Hey future me - every test gets its OWN file-backed SQLite database under tmp_path.
In-memory SQLite would give each pooled connection a different empty database.
"""

import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest

from cardcatalog.config import get_settings
from cardcatalog.config.settings import (
    DatabaseSettings,
    ResolverSettings,
    SearchIndexSettings,
)
from cardcatalog.infrastructure.persistence.database import Database


@pytest.fixture
def database_settings(tmp_path: Path) -> DatabaseSettings:
    return DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")


@pytest.fixture
async def database(database_settings: DatabaseSettings) -> AsyncIterator[Database]:
    db = Database(database_settings)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Keep the developer's config.yaml / CARDCATALOG_* env out of the tests."""
    for key in list(os.environ):
        if key.startswith("CARDCATALOG_"):
            monkeypatch.delenv(key)
    monkeypatch.setenv("CARDCATALOG_CONFIG_FILE", str(tmp_path / "absent.yaml"))
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def resolver_settings() -> ResolverSettings:
    return ResolverSettings()


@pytest.fixture
def search_index_settings() -> SearchIndexSettings:
    return SearchIndexSettings(max_attempts=3, retry_backoff_seconds=0.5)
