"""
Cache facade over a shared SQL table.

AsyncSqlCache is the primary implementation: it validates arguments, resolves
the entry's absolute expiration, delegates to the storage operations and then
gives the expiration scanner a chance to start a background sweep.

SqlCache is the blocking calling convention. It drives the same AsyncSqlCache
on a private event loop thread, so both conventions share one implementation
and one ordering: operation first, scanner gate second.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from pathlib import Path
from types import TracebackType
from typing import Any, Coroutine, TypeVar

from sqlcache.clock import Clock, SystemClock
from sqlcache.config import DEFAULT_SLIDING_EXPIRATION, DEFAULT_TABLE_NAME, CacheSettings
from sqlcache.exceptions import CacheConfigurationError, CacheValidationError
from sqlcache.logging import get_logger
from sqlcache.scanner import ExpirationScanner
from sqlcache.storage import columns
from sqlcache.storage.connection import SqliteConnectionFactory
from sqlcache.storage.operations import DatabaseOperations, SqliteDatabaseOperations
from sqlcache.storage.queries import CacheQueries
from sqlcache.types import CacheEntryInfo, CacheEntryOptions

logger = get_logger(__name__)

T = TypeVar("T")


class AsyncSqlCache:
    """Shared cache backed by a relational table.

    Entries expire by an absolute instant, a sliding window, or both. Reads
    extend sliding entries in the same round trip that fetches them. Missing,
    expired and removed entries all read as None.
    """

    def __init__(
        self,
        operations: DatabaseOperations,
        clock: Clock | None = None,
        expired_items_deletion_interval: timedelta | None = None,
        default_sliding_expiration: timedelta = DEFAULT_SLIDING_EXPIRATION,
    ) -> None:
        """Initialize the cache.

        Args:
            operations: Storage operations for the cache table.
            clock: Source of the current time; the system clock by default.
            expired_items_deletion_interval: Minimum time between sweeps of
                expired rows (at least 5 minutes, 30 by default).
            default_sliding_expiration: Window applied by ``set`` when the caller
                opts into defaults and gives no expiration.

        Raises:
            CacheConfigurationError: If the interval or default window is invalid.
        """
        if default_sliding_expiration <= timedelta(0):
            raise CacheConfigurationError(
                "The default sliding expiration value must be positive.",
                context={"default_sliding_expiration": str(default_sliding_expiration)},
            )

        self._clock = clock or SystemClock()
        self._operations = operations
        self._scanner = ExpirationScanner(
            operations, self._clock, expired_items_deletion_interval
        )
        self.default_sliding_expiration = default_sliding_expiration

    @classmethod
    def connect(
        cls,
        database: str | Path,
        table_name: str = DEFAULT_TABLE_NAME,
        schema_name: str | None = None,
        *,
        read_database: str | Path | None = None,
        busy_timeout: float = 5.0,
        clock: Clock | None = None,
        expired_items_deletion_interval: timedelta | None = None,
        default_sliding_expiration: timedelta = DEFAULT_SLIDING_EXPIRATION,
    ) -> AsyncSqlCache:
        """Build a cache over a SQLite database.

        Args:
            database: Database used for every statement that can change a row.
            table_name: Cache table name.
            schema_name: Optional schema (attached database) holding the table.
            read_database: Database used for inspection; defaults to ``database``.
            busy_timeout: Seconds a statement waits on a locked database.
            clock: Source of the current time.
            expired_items_deletion_interval: Minimum time between sweeps.
            default_sliding_expiration: Window used when callers opt into defaults.
        """
        clock = clock or SystemClock()
        write_connections = SqliteConnectionFactory(database, timeout=busy_timeout)
        read_connections = (
            SqliteConnectionFactory(read_database, timeout=busy_timeout)
            if read_database is not None
            else write_connections
        )
        operations = SqliteDatabaseOperations(
            read_connections,
            write_connections,
            CacheQueries(table_name, schema_name),
            clock,
        )
        return cls(
            operations,
            clock=clock,
            expired_items_deletion_interval=expired_items_deletion_interval,
            default_sliding_expiration=default_sliding_expiration,
        )

    @classmethod
    def from_settings(cls, settings: CacheSettings, clock: Clock | None = None) -> AsyncSqlCache:
        """Build a cache from loaded settings."""
        return cls.connect(
            settings.write_connection,
            settings.TABLE_NAME,
            settings.SCHEMA_NAME,
            read_database=settings.read_connection,
            busy_timeout=settings.BUSY_TIMEOUT_SECONDS,
            clock=clock,
            expired_items_deletion_interval=settings.EXPIRED_ITEMS_DELETION_INTERVAL,
            default_sliding_expiration=settings.DEFAULT_SLIDING_EXPIRATION,
        )

    @property
    def scanner(self) -> ExpirationScanner:
        return self._scanner

    async def get(self, key: str) -> bytes | None:
        """Get a value, extending its sliding expiration.

        Returns:
            The stored bytes, or None if the entry is missing or expired.
        """
        key = columns.validate_key(key)
        value = await self._operations.get_cache_item(key)
        self._scanner.scan_if_required()
        return value

    async def refresh(self, key: str) -> None:
        """Extend an entry's sliding expiration without reading it.

        A missing or expired entry is left alone.
        """
        key = columns.validate_key(key)
        await self._operations.refresh_cache_item(key)
        self._scanner.scan_if_required()

    async def remove(self, key: str) -> None:
        """Remove an entry; removing a missing entry is not an error."""
        key = columns.validate_key(key)
        await self._operations.delete_cache_item(key)
        self._scanner.scan_if_required()

    async def set(
        self,
        key: str,
        value: bytes,
        options: CacheEntryOptions,
        *,
        use_default_sliding: bool = False,
    ) -> None:
        """Store a value under ``key``, replacing any existing entry.

        Args:
            key: Cache key; compared byte for byte.
            value: Bytes to store.
            options: Expiration policy for the entry.
            use_default_sliding: Apply the default sliding window when
                ``options`` sets no expiration at all.

        Raises:
            CacheValidationError: If no expiration is set, or the absolute
                expiration is not strictly in the future. Nothing is written.
        """
        key = columns.validate_key(key)
        value = columns.encode_value(value)
        if options is None:
            raise CacheValidationError(
                "Cache entry options cannot be None.", context={"field": "options"}
            )

        if not options.has_expiration:
            if not use_default_sliding:
                raise CacheValidationError(
                    "Either absolute or sliding expiration needs to be provided.",
                    context={"field": "options", "key": key},
                )
            options = CacheEntryOptions(sliding_expiration=self.default_sliding_expiration)

        utc_now = self._clock.utc_now()
        absolute_expiration = options.resolve_absolute_expiration(utc_now)
        resolved = CacheEntryOptions(
            absolute_expiration=absolute_expiration,
            sliding_expiration=options.sliding_expiration,
        )

        await self._operations.set_cache_item(key, value, resolved, utc_now)
        self._scanner.scan_if_required()

    async def delete_expired_now(self) -> int:
        """Delete every expired row immediately.

        Administrative; does not go through the scanner.

        Returns:
            Number of rows removed.
        """
        return await self._operations.delete_expired_cache_items()

    async def get_entry_info(self, key: str) -> CacheEntryInfo | None:
        """Read an entry's stored row without extending or filtering it."""
        key = columns.validate_key(key)
        return await self._operations.get_cache_item_info(key)

    async def close(self) -> None:
        """Wait for background sweeps started from this event loop."""
        await self._scanner.wait_idle()

    async def __aenter__(self) -> AsyncSqlCache:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"AsyncSqlCache(operations={self._operations!r}, scanner={self._scanner!r})"


class SqlCache:
    """Blocking wrapper around AsyncSqlCache.

    Calls may come from any thread, including one already running an event
    loop: coroutines run on a private loop thread owned by this wrapper.
    """

    def __init__(self, cache: AsyncSqlCache) -> None:
        self._cache = cache
        self._closed = False
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, name="sqlcache-loop", daemon=True
        )
        self._thread.start()

    @classmethod
    def connect(cls, database: str | Path, *args: Any, **kwargs: Any) -> SqlCache:
        """Build a blocking cache; arguments as for ``AsyncSqlCache.connect``."""
        return cls(AsyncSqlCache.connect(database, *args, **kwargs))

    @classmethod
    def from_settings(cls, settings: CacheSettings, clock: Clock | None = None) -> SqlCache:
        """Build a blocking cache from loaded settings."""
        return cls(AsyncSqlCache.from_settings(settings, clock=clock))

    @property
    def async_cache(self) -> AsyncSqlCache:
        return self._cache

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._closed:
            coro.close()
            raise RuntimeError("SqlCache is closed")
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def get(self, key: str) -> bytes | None:
        return self._run(self._cache.get(key))

    def refresh(self, key: str) -> None:
        self._run(self._cache.refresh(key))

    def remove(self, key: str) -> None:
        self._run(self._cache.remove(key))

    def set(
        self,
        key: str,
        value: bytes,
        options: CacheEntryOptions,
        *,
        use_default_sliding: bool = False,
    ) -> None:
        self._run(self._cache.set(key, value, options, use_default_sliding=use_default_sliding))

    def delete_expired_now(self) -> int:
        return self._run(self._cache.delete_expired_now())

    def get_entry_info(self, key: str) -> CacheEntryInfo | None:
        return self._run(self._cache.get_entry_info(key))

    def close(self) -> None:
        """Wait for background sweeps, then stop the loop thread."""
        if self._closed:
            return
        try:
            self._run(self._cache.close())
        finally:
            self._closed = True
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join()
            self._loop.close()
            logger.debug("Blocking cache closed")

    def __enter__(self) -> SqlCache:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SqlCache({self._cache!r})"
