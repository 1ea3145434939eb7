"""Clock abstraction so expiration math can be driven deterministically."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol, runtime_checkable


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


@runtime_checkable
class Clock(Protocol):
    """Supplies the current instant to the cache and its storage layer."""

    def utc_now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Clock backed by the machine's wall clock."""

    def utc_now(self) -> datetime:
        return utc_now()

    def __repr__(self) -> str:
        return "SystemClock()"
