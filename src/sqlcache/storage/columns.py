"""
Column layout and parameter binding for the cache table.

Maps cache keys, values and expiration fields to the wire representation of
the backing columns:
- instants are INTEGER microseconds since the Unix epoch (UTC)
- sliding expiration is INTEGER whole seconds
- values are bound as bytes
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from sqlcache.exceptions import CacheValidationError
from sqlcache.types import CacheEntryInfo, as_utc

MICROSECONDS_PER_SECOND = 1_000_000

# Longest key the Id column accepts; longer keys are rejected, never truncated
CACHE_ITEM_ID_MAX_LENGTH = 449

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Names:
    """Column names of the cache table."""

    CACHE_ITEM_ID = "Id"
    CACHE_ITEM_VALUE = "Value"
    EXPIRES_AT_TIME = "ExpiresAtTime"
    SLIDING_EXPIRATION_IN_SECONDS = "SlidingExpirationInSeconds"
    ABSOLUTE_EXPIRATION = "AbsoluteExpiration"


class Indexes:
    """Result positions; depend on how the select statements list their columns."""

    CACHE_ITEM_ID = 0
    EXPIRES_AT_TIME = 1
    SLIDING_EXPIRATION_IN_SECONDS = 2
    ABSOLUTE_EXPIRATION = 3
    CACHE_ITEM_VALUE = 4


def to_db_time(value: datetime) -> int:
    """Convert an instant to microseconds since the epoch."""
    delta = as_utc(value) - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * MICROSECONDS_PER_SECOND + delta.microseconds


def from_db_time(value: int) -> datetime:
    """Convert microseconds since the epoch back to an aware UTC datetime."""
    return _EPOCH + timedelta(microseconds=value)


def sliding_to_seconds(value: timedelta | None) -> int | None:
    """Convert a sliding window to whole seconds, rounding partial seconds up."""
    if value is None:
        return None
    return math.ceil(value.total_seconds())


def validate_key(key: Any) -> str:
    """Check a cache key fits the Id column.

    Raises:
        CacheValidationError: If the key is missing, not a string, not
            encodable as UTF-8, or too long.
    """
    if key is None:
        raise CacheValidationError("Cache key cannot be None.", context={"field": "key"})
    if not isinstance(key, str):
        raise CacheValidationError(
            "Cache key must be a string.",
            context={"field": "key", "type": type(key).__name__},
        )
    try:
        key.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise CacheValidationError(
            "Cache key must be valid UTF-8 text.",
            context={"field": "key", "position": exc.start},
        ) from exc
    if len(key) > CACHE_ITEM_ID_MAX_LENGTH:
        raise CacheValidationError(
            f"Cache key cannot be longer than {CACHE_ITEM_ID_MAX_LENGTH} characters.",
            context={"field": "key", "length": len(key)},
        )
    return key


def encode_value(value: Any) -> bytes:
    """Normalize a bytes-like cache value for binding.

    Raises:
        CacheValidationError: If the value is missing or not bytes-like.
    """
    if value is None:
        raise CacheValidationError("Cache value cannot be None.", context={"field": "value"})
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    raise CacheValidationError(
        "Cache value must be bytes-like.",
        context={"field": "value", "type": type(value).__name__},
    )


def bind_get(key: str, utc_now: datetime) -> dict[str, Any]:
    """Parameters for the touch and select statements."""
    return {"id": key, "utc_now": to_db_time(utc_now)}


def bind_set(
    key: str,
    value: bytes,
    utc_now: datetime,
    sliding_expiration: timedelta | None,
    absolute_expiration: datetime | None,
) -> dict[str, Any]:
    """Parameters for the upsert statement."""
    return {
        "id": key,
        "value": value,
        "utc_now": to_db_time(utc_now),
        "sliding_expiration_in_seconds": sliding_to_seconds(sliding_expiration),
        "absolute_expiration": (
            to_db_time(absolute_expiration) if absolute_expiration is not None else None
        ),
    }


def bind_key(key: str) -> dict[str, Any]:
    """Parameters for statements that only filter on the key."""
    return {"id": key}


def bind_delete_expired(utc_now: datetime) -> dict[str, Any]:
    """Parameters for the bulk expired-row delete."""
    return {"utc_now": to_db_time(utc_now)}


def row_value(row: Sequence[Any]) -> bytes:
    """Extract the value column from a select result."""
    return bytes(row[Indexes.CACHE_ITEM_VALUE])


def row_to_entry_info(row: Sequence[Any]) -> CacheEntryInfo:
    """Convert a select result to a CacheEntryInfo."""
    sliding = row[Indexes.SLIDING_EXPIRATION_IN_SECONDS]
    absolute = row[Indexes.ABSOLUTE_EXPIRATION]
    return CacheEntryInfo(
        key=row[Indexes.CACHE_ITEM_ID],
        value=row_value(row),
        expires_at=from_db_time(row[Indexes.EXPIRES_AT_TIME]),
        sliding_expiration=timedelta(seconds=sliding) if sliding is not None else None,
        absolute_expiration=from_db_time(absolute) if absolute is not None else None,
    )
