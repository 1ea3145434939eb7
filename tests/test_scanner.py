"""
Tests for the expired-item scanner.

Uses an in-memory stand-in for the storage operations so sweeps can be
counted, blocked and failed on demand.
"""

from __future__ import annotations

import asyncio
import threading
from datetime import timedelta

import pytest

from sqlcache.exceptions import CacheConfigurationError, CacheStoreError
from sqlcache.scanner import ExpirationScanner


class StubOperations:
    """Counts sweeps; optionally blocks or fails them."""

    def __init__(self, deleted: int = 0, error: Exception | None = None) -> None:
        self.deleted = deleted
        self.error = error
        self.calls = 0
        self.release: asyncio.Event | None = None

    async def delete_expired_cache_items(self) -> int:
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.deleted


@pytest.fixture
def stub() -> StubOperations:
    return StubOperations(deleted=2)


@pytest.fixture
def scanner(stub, clock) -> ExpirationScanner:
    return ExpirationScanner(stub, clock, timedelta(minutes=10))


class TestConfiguration:
    """Tests for the interval floor."""

    def test_default_interval(self, stub, clock) -> None:
        assert ExpirationScanner(stub, clock).interval == timedelta(minutes=30)

    def test_minimum_interval_accepted(self, stub, clock) -> None:
        scanner = ExpirationScanner(stub, clock, timedelta(minutes=5))
        assert scanner.interval == timedelta(minutes=5)

    def test_below_minimum_rejected(self, stub, clock) -> None:
        with pytest.raises(CacheConfigurationError, match="5 minutes"):
            ExpirationScanner(stub, clock, timedelta(minutes=4, seconds=59))


class TestThrottling:
    """Tests for how often sweeps start."""

    @pytest.mark.asyncio
    async def test_first_call_sweeps(self, scanner, stub, clock) -> None:
        task = scanner.scan_if_required()

        assert task is not None
        assert await task == 2
        assert stub.calls == 1
        assert scanner.last_scan == clock.now

    @pytest.mark.asyncio
    async def test_calls_within_interval_do_not_sweep(self, scanner, stub, clock) -> None:
        scanner.scan_if_required()
        await scanner.wait_idle()

        clock.advance(minutes=5)
        assert scanner.scan_if_required() is None
        clock.advance(minutes=5)
        assert scanner.scan_if_required() is None

        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_sweep_after_interval_has_elapsed(self, scanner, stub, clock) -> None:
        scanner.scan_if_required()
        await scanner.wait_idle()

        clock.advance(minutes=10, microseconds=1)
        task = scanner.scan_if_required()

        assert task is not None
        await scanner.wait_idle()
        assert stub.calls == 2
        assert scanner.last_scan == clock.now

    @pytest.mark.asyncio
    async def test_many_calls_one_sweep(self, scanner, stub) -> None:
        tasks = [scanner.scan_if_required() for _ in range(20)]
        await scanner.wait_idle()

        assert sum(task is not None for task in tasks) == 1
        assert stub.calls == 1


class TestDispatch:
    """Tests for background execution."""

    @pytest.mark.asyncio
    async def test_caller_does_not_wait_for_sweep(self, scanner, stub) -> None:
        stub.release = asyncio.Event()

        task = scanner.scan_if_required()

        assert task is not None
        assert not task.done()

        stub.release.set()
        await scanner.wait_idle()
        assert task.done()

    @pytest.mark.asyncio
    async def test_failed_sweep_is_contained(self, clock) -> None:
        stub = StubOperations(error=CacheStoreError("database is locked"))
        scanner = ExpirationScanner(stub, clock)

        task = scanner.scan_if_required()

        assert await task == 0
        assert scanner.last_scan == clock.now

    @pytest.mark.asyncio
    async def test_wait_idle_without_sweeps(self, scanner) -> None:
        await scanner.wait_idle()


class TestClaim:
    """Tests for the compare-and-swap on the last sweep time."""

    def test_claim_busy_skips(self, scanner, clock) -> None:
        scanner._claim.acquire()
        try:
            assert scanner._try_claim(clock.now) is False
        finally:
            scanner._claim.release()

        assert scanner._try_claim(clock.now) is True

    def test_exactly_one_thread_claims(self, scanner, clock) -> None:
        barrier = threading.Barrier(8)
        results: list[bool] = []
        lock = threading.Lock()

        def claim() -> None:
            barrier.wait()
            won = scanner._try_claim(clock.now)
            with lock:
                results.append(won)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert scanner.last_scan == clock.now

    def test_repr(self, scanner) -> None:
        assert "interval=0:10:00" in repr(scanner)
