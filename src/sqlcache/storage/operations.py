"""
Storage operations against the cache table.

Each operation opens its own connection from a connection factory, binds
parameters, executes and interprets the result. Nothing here holds an
in-process lock: all coordination between cache clients is left to the
per-statement atomicity of the database.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import aiosqlite

from sqlcache.clock import Clock
from sqlcache.exceptions import CacheStoreError, CacheValidationError
from sqlcache.logging import get_logger, log_context
from sqlcache.storage import columns
from sqlcache.storage.connection import ConnectionFactory
from sqlcache.storage.queries import CacheQueries
from sqlcache.types import CacheEntryInfo, CacheEntryOptions

logger = get_logger(__name__)

_DUPLICATE_KEY_ERROR_CODES = frozenset(
    {sqlite3.SQLITE_CONSTRAINT_PRIMARYKEY, sqlite3.SQLITE_CONSTRAINT_UNIQUE}
)


def is_duplicate_key_error(exc: BaseException) -> bool:
    """Whether ``exc`` is a primary key / unique violation on insert."""
    if not isinstance(exc, sqlite3.IntegrityError):
        return False
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None:
        return code in _DUPLICATE_KEY_ERROR_CODES
    return "UNIQUE constraint failed" in str(exc)


class DatabaseOperations(ABC):
    """Storage contract used by the cache facade."""

    @abstractmethod
    async def get_cache_item(self, key: str, include_value: bool = True) -> bytes | None:
        """Touch the item's sliding expiration, then read it.

        Returns:
            The value, or None when the item is missing or expired (or when
            ``include_value`` is False).
        """
        ...

    @abstractmethod
    async def refresh_cache_item(self, key: str) -> None:
        """Touch the item's sliding expiration without reading the value."""
        ...

    @abstractmethod
    async def set_cache_item(
        self,
        key: str,
        value: bytes,
        options: CacheEntryOptions,
        utc_now: datetime | None = None,
    ) -> None:
        """Insert or overwrite an item and all of its expiration fields.

        ``utc_now`` is the instant the caller resolved ``options`` against;
        the clock is read when it is not given.
        """
        ...

    @abstractmethod
    async def delete_cache_item(self, key: str) -> None:
        """Delete an item; a missing item is not an error."""
        ...

    @abstractmethod
    async def delete_expired_cache_items(self) -> int:
        """Delete every expired row and return how many were removed."""
        ...

    @abstractmethod
    async def get_cache_item_info(self, key: str) -> CacheEntryInfo | None:
        """Read a row as stored, without touching it or filtering on expiry."""
        ...


class SqliteDatabaseOperations(DatabaseOperations):
    """DatabaseOperations over SQLite through aiosqlite.

    Every statement that can change a row goes through the write connection
    factory, including reads, which touch before selecting. The read
    connection factory only serves non-mutating inspection.
    """

    def __init__(
        self,
        read_connections: ConnectionFactory,
        write_connections: ConnectionFactory,
        queries: CacheQueries,
        clock: Clock,
    ) -> None:
        self.read_connections = read_connections
        self.write_connections = write_connections
        self.queries = queries
        self.clock = clock

    def _store_error(
        self, operation: str, exc: BaseException, key: str | None = None
    ) -> CacheStoreError:
        context: dict[str, Any] = {
            "operation": operation,
            "table": self.queries.qualified_table_name,
        }
        if key is not None:
            context["key"] = key
        return CacheStoreError(f"Cache {operation} failed: {exc}", context=context)

    async def get_cache_item(self, key: str, include_value: bool = True) -> bytes | None:
        utc_now = self.clock.utc_now()
        params = columns.bind_get(key, utc_now)
        operation = "get" if include_value else "refresh"

        with log_context(table=self.queries.qualified_table_name, operation=operation):
            try:
                async with self.write_connections.connect() as db:
                    cursor = await db.execute(self.queries.touch_cache_item, params)
                    touched = cursor.rowcount
                    await cursor.close()

                    if not include_value:
                        logger.debug("Refreshed cache item", key=key, touched=touched)
                        return None

                    async with db.execute(self.queries.get_cache_item, params) as cursor:
                        row = await cursor.fetchone()
            except aiosqlite.Error as exc:
                raise self._store_error(operation, exc, key) from exc

            if row is None:
                logger.debug("Cache miss", key=key)
                return None

            logger.debug("Cache hit", key=key, touched=touched)
            return columns.row_value(row)

    async def refresh_cache_item(self, key: str) -> None:
        await self.get_cache_item(key, include_value=False)

    async def set_cache_item(
        self,
        key: str,
        value: bytes,
        options: CacheEntryOptions,
        utc_now: datetime | None = None,
    ) -> None:
        if utc_now is None:
            utc_now = self.clock.utc_now()

        absolute_expiration = options.resolve_absolute_expiration(utc_now)
        if options.sliding_expiration is None and absolute_expiration is None:
            raise CacheValidationError(
                "Either absolute or sliding expiration needs to be provided.",
                context={"field": "options", "key": key},
            )

        params = columns.bind_set(
            key,
            value,
            utc_now,
            options.sliding_expiration,
            absolute_expiration,
        )

        with log_context(table=self.queries.qualified_table_name, operation="set"):
            try:
                async with self.write_connections.connect() as db:
                    cursor = await db.execute(self.queries.set_cache_item, params)
                    await cursor.close()
            except aiosqlite.Error as exc:
                if is_duplicate_key_error(exc):
                    # Another writer created the same key first; its row stands.
                    logger.debug("Concurrent insert of cache item ignored", key=key)
                    return
                raise self._store_error("set", exc, key) from exc

            logger.debug(
                "Stored cache item",
                key=key,
                size=len(value),
                sliding_seconds=params["sliding_expiration_in_seconds"],
                absolute=absolute_expiration.isoformat() if absolute_expiration else None,
            )

    async def delete_cache_item(self, key: str) -> None:
        with log_context(table=self.queries.qualified_table_name, operation="remove"):
            try:
                async with self.write_connections.connect() as db:
                    cursor = await db.execute(
                        self.queries.delete_cache_item, columns.bind_key(key)
                    )
                    deleted = cursor.rowcount
                    await cursor.close()
            except aiosqlite.Error as exc:
                raise self._store_error("remove", exc, key) from exc

            logger.debug("Removed cache item", key=key, deleted=deleted)

    async def delete_expired_cache_items(self) -> int:
        utc_now = self.clock.utc_now()

        with log_context(table=self.queries.qualified_table_name, operation="delete_expired"):
            try:
                async with self.write_connections.connect() as db:
                    cursor = await db.execute(
                        self.queries.delete_expired_cache_items,
                        columns.bind_delete_expired(utc_now),
                    )
                    affected = cursor.rowcount
                    await cursor.close()
            except aiosqlite.Error as exc:
                raise self._store_error("delete_expired", exc) from exc

            logger.info("Deleted expired cache items", count=affected)
            return affected

    async def get_cache_item_info(self, key: str) -> CacheEntryInfo | None:
        with log_context(table=self.queries.qualified_table_name, operation="inspect"):
            try:
                async with self.read_connections.connect() as db:
                    async with db.execute(
                        self.queries.get_cache_item_info, columns.bind_key(key)
                    ) as cursor:
                        row = await cursor.fetchone()
            except aiosqlite.Error as exc:
                raise self._store_error("inspect", exc, key) from exc

        if row is None:
            return None
        return columns.row_to_entry_info(row)

    def __repr__(self) -> str:
        return f"SqliteDatabaseOperations(table={self.queries.qualified_table_name})"
