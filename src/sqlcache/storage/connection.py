"""Connection factories handing out one short-lived connection per operation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator

import aiosqlite

from sqlcache.exceptions import CacheConfigurationError


class ConnectionFactory(ABC):
    """Opens a connection bound to the lifetime of one ``async with`` block."""

    @abstractmethod
    def connect(self) -> AsyncContextManager[aiosqlite.Connection]:
        """Open a connection; it is closed when the block exits, however it exits."""
        ...


class SqliteConnectionFactory(ConnectionFactory):
    """Factory for SQLite databases through aiosqlite.

    Connections run in autocommit mode, so every statement is its own
    transaction. ``file:`` URIs are passed through, which allows shared
    in-memory databases (``file:name?mode=memory&cache=shared``).
    """

    def __init__(self, database: str | Path, timeout: float = 5.0) -> None:
        """Initialize the factory.

        Args:
            database: Database file path or ``file:`` URI.
            timeout: Seconds a statement waits for a lock held by another connection.
        """
        if not database:
            raise CacheConfigurationError("Database connection cannot be empty.")
        self.database = str(database)
        self.timeout = timeout

    @property
    def is_uri(self) -> bool:
        return self.database.startswith("file:")

    @asynccontextmanager
    async def connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(
            self.database,
            timeout=self.timeout,
            isolation_level=None,
            uri=self.is_uri,
        ) as db:
            yield db

    def __repr__(self) -> str:
        return f"SqliteConnectionFactory(database={self.database!r}, timeout={self.timeout})"
