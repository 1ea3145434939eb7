"""
Custom exception hierarchy for the SQL-backed cache.

All exceptions inherit from SqlCacheError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class SqlCacheError(Exception):
    """Base exception for all cache errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class CacheValidationError(SqlCacheError, ValueError):
    """Raised when a cache call is rejected before touching the store.

    Examples:
        - Missing key, value or entry options
        - Neither sliding nor absolute expiration provided
        - Absolute expiration not strictly in the future
        - Key longer than the Id column allows

    Context should include:
        - field: The argument that failed validation
        - value: The invalid value (omitted for cache values)
    """

    pass


class CacheConfigurationError(SqlCacheError):
    """Raised when cache configuration is invalid or missing.

    Examples:
        - Empty table name or connection
        - Expired item deletion interval below the minimum
        - Non-positive default sliding expiration
    """

    pass


class CacheStoreError(SqlCacheError):
    """Raised when the backing store fails a statement.

    The driver exception is chained as ``__cause__``.

    Context should include:
        - operation: The storage operation (get, set, delete, ...)
        - table: The qualified table name
        - key: The cache key, when the operation has one
    """

    pass
