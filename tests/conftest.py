"""
Pytest configuration and fixtures for cache tests.
"""

from __future__ import annotations

import os
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Generator
from unittest.mock import patch

import pytest

from sqlcache.cache import AsyncSqlCache, SqlCache
from sqlcache.config import clear_settings_cache
from sqlcache.storage.queries import CacheQueries

TABLE_NAME = "CacheItems"
START = datetime(2024, 1, 1, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when a test advances it."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def utc_now(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test databases."""
    return tmp_path


@pytest.fixture
def clock() -> ManualClock:
    """Provide a manual clock starting at a fixed instant."""
    return ManualClock()


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Provide a database file with an empty cache table."""
    path = temp_dir / "cache.db"
    with sqlite3.connect(path) as connection:
        connection.execute("PRAGMA journal_mode=WAL")
        connection.executescript(CacheQueries(TABLE_NAME).script())
    connection.close()
    return path


@pytest.fixture
async def cache(db_path: Path, clock: ManualClock) -> AsyncGenerator[AsyncSqlCache, None]:
    """Provide an async cache over the test table, driven by the manual clock."""
    cache = AsyncSqlCache.connect(
        db_path,
        TABLE_NAME,
        clock=clock,
        expired_items_deletion_interval=timedelta(hours=2),
    )
    # Take the first sweep up front so none runs behind a test's clock moves
    cache.scanner.scan_if_required()
    await cache.close()
    yield cache
    await cache.close()


@pytest.fixture
def sync_cache(db_path: Path, clock: ManualClock) -> Generator[SqlCache, None, None]:
    """Provide a blocking cache over the test table."""
    cache = SqlCache.connect(
        db_path,
        TABLE_NAME,
        clock=clock,
        expired_items_deletion_interval=timedelta(hours=2),
    )
    yield cache
    cache.close()


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide cache environment variables for testing."""
    env_vars = {
        "SQLCACHE_CONNECTION": str(temp_dir / "env.db"),
        "SQLCACHE_TABLE_NAME": "EnvCache",
        "SQLCACHE_EXPIRED_ITEMS_DELETION_INTERVAL": "PT10M",
        "SQLCACHE_DEFAULT_SLIDING_EXPIRATION": "PT1H",
        "SQLCACHE_LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
