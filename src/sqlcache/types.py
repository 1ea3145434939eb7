"""
Core types for the SQL-backed cache.

This module defines the data structures shared by the facade and storage layer:
- CacheEntryOptions: caller-supplied expiration policy for a Set
- CacheEntryInfo: raw snapshot of a stored row (no touch, no expiry filter)
- Helpers for normalizing instants to UTC
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from sqlcache.exceptions import CacheValidationError


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class CacheEntryOptions:
    """Expiration policy for a cache entry.

    Sliding and absolute expiration compose: a sliding entry is extended on
    every read but never past its absolute expiration. When both absolute
    forms are given, the relative one wins.
    """

    absolute_expiration: datetime | None = None
    absolute_expiration_relative_to_now: timedelta | None = None
    sliding_expiration: timedelta | None = None

    def __post_init__(self) -> None:
        relative = self.absolute_expiration_relative_to_now
        if relative is not None and relative <= timedelta(0):
            raise CacheValidationError(
                "The relative expiration value must be positive.",
                context={"field": "absolute_expiration_relative_to_now", "value": relative},
            )
        if self.sliding_expiration is not None and self.sliding_expiration <= timedelta(0):
            raise CacheValidationError(
                "The sliding expiration value must be positive.",
                context={"field": "sliding_expiration", "value": self.sliding_expiration},
            )

    @classmethod
    def sliding(cls, window: timedelta) -> CacheEntryOptions:
        """Options that expire ``window`` after the last access."""
        return cls(sliding_expiration=window)

    @classmethod
    def absolute(cls, when: datetime) -> CacheEntryOptions:
        """Options that expire at a fixed instant."""
        return cls(absolute_expiration=when)

    @classmethod
    def relative(cls, delta: timedelta) -> CacheEntryOptions:
        """Options that expire a fixed time after being written."""
        return cls(absolute_expiration_relative_to_now=delta)

    def with_sliding(self, window: timedelta) -> CacheEntryOptions:
        return replace(self, sliding_expiration=window)

    def with_absolute(self, when: datetime) -> CacheEntryOptions:
        return replace(self, absolute_expiration=when)

    def with_relative(self, delta: timedelta) -> CacheEntryOptions:
        return replace(self, absolute_expiration_relative_to_now=delta)

    @property
    def has_expiration(self) -> bool:
        """Whether any expiration dimension is set."""
        return (
            self.absolute_expiration is not None
            or self.absolute_expiration_relative_to_now is not None
            or self.sliding_expiration is not None
        )

    def resolve_absolute_expiration(self, now: datetime) -> datetime | None:
        """Compute the absolute expiration instant as seen at ``now``.

        Args:
            now: Current UTC time.

        Returns:
            The absolute expiration in UTC, or None if the entry only slides.

        Raises:
            CacheValidationError: If an explicit absolute expiration is not
                strictly after ``now``.
        """
        if self.absolute_expiration_relative_to_now is not None:
            return as_utc(now) + self.absolute_expiration_relative_to_now

        if self.absolute_expiration is not None:
            absolute = as_utc(self.absolute_expiration)
            if absolute <= as_utc(now):
                raise CacheValidationError(
                    "The absolute expiration value must be in the future.",
                    context={"field": "absolute_expiration", "value": absolute.isoformat()},
                )
            return absolute

        return None


@dataclass(frozen=True)
class CacheEntryInfo:
    """Snapshot of a stored cache row.

    Read without extending its expiration and without filtering out expired
    rows, so it reflects exactly what is in the table.
    """

    key: str
    value: bytes
    expires_at: datetime
    sliding_expiration: timedelta | None = None
    absolute_expiration: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Whether reads at ``now`` treat this entry as absent."""
        return as_utc(now) > self.expires_at
