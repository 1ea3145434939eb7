"""
Tests for the blocking cache wrapper.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta

import pytest

from sqlcache.cache import SqlCache
from sqlcache.exceptions import CacheValidationError
from sqlcache.types import CacheEntryOptions

VALUE = b"blocking"


class TestSqlCache:
    """Tests for blocking calls over the shared implementation."""

    def test_set_get_remove(self, sync_cache: SqlCache) -> None:
        sync_cache.set("k", VALUE, CacheEntryOptions.sliding(timedelta(minutes=5)))
        assert sync_cache.get("k") == VALUE

        sync_cache.remove("k")
        assert sync_cache.get("k") is None

    def test_sliding_extended_by_refresh(self, sync_cache: SqlCache, clock) -> None:
        start = clock.now
        sync_cache.set("k", VALUE, CacheEntryOptions.sliding(timedelta(seconds=10)))

        clock.advance(5)
        sync_cache.refresh("k")

        info = sync_cache.get_entry_info("k")
        assert info.expires_at == start + timedelta(seconds=15)

    def test_expired_reads_none(self, sync_cache: SqlCache, clock) -> None:
        sync_cache.set("k", VALUE, CacheEntryOptions.relative(timedelta(seconds=10)))

        clock.advance(11)

        assert sync_cache.get("k") is None

    def test_validation_errors_propagate(self, sync_cache: SqlCache) -> None:
        with pytest.raises(CacheValidationError):
            sync_cache.set("k", VALUE, CacheEntryOptions())

    def test_default_sliding(self, sync_cache: SqlCache) -> None:
        sync_cache.set("k", VALUE, CacheEntryOptions(), use_default_sliding=True)

        info = sync_cache.get_entry_info("k")
        assert info.sliding_expiration == timedelta(minutes=20)

    def test_delete_expired_now(self, sync_cache: SqlCache, clock) -> None:
        sync_cache.set("k", VALUE, CacheEntryOptions.sliding(timedelta(minutes=5)))

        assert sync_cache.delete_expired_now() == 0
        assert sync_cache.get("k") == VALUE

    def test_calls_from_many_threads(self, sync_cache: SqlCache) -> None:
        options = CacheEntryOptions.sliding(timedelta(minutes=5))
        errors: list[BaseException] = []

        def worker(index: int) -> None:
            try:
                sync_cache.set(f"k{index}", str(index).encode(), options)
                assert sync_cache.get(f"k{index}") == str(index).encode()
            except BaseException as exc:  # collected for the main thread
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []

    @pytest.mark.asyncio
    async def test_usable_inside_running_loop(self, sync_cache: SqlCache) -> None:
        assert asyncio.get_running_loop() is not None

        sync_cache.set("k", VALUE, CacheEntryOptions.sliding(timedelta(minutes=5)))

        assert sync_cache.get("k") == VALUE


class TestLifecycle:
    def test_closed_cache_rejects_calls(self, db_path, clock) -> None:
        cache = SqlCache.connect(db_path, clock=clock)
        cache.close()

        with pytest.raises(RuntimeError, match="closed"):
            cache.get("k")

    def test_close_is_idempotent(self, db_path, clock) -> None:
        cache = SqlCache.connect(db_path, clock=clock)

        cache.close()
        cache.close()

    def test_context_manager(self, db_path, clock) -> None:
        with SqlCache.connect(db_path, clock=clock) as cache:
            cache.set("k", VALUE, CacheEntryOptions.sliding(timedelta(minutes=5)))
            assert cache.get("k") == VALUE

            # first operation claimed the initial sweep on the wrapper's loop
            assert cache.async_cache.scanner.last_scan == clock.now
