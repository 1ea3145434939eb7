"""Persistent shared cache over a SQL table with sliding and absolute expiration."""

from sqlcache.cache import AsyncSqlCache, SqlCache
from sqlcache.clock import Clock, SystemClock
from sqlcache.config import CacheSettings, get_settings
from sqlcache.exceptions import (
    CacheConfigurationError,
    CacheStoreError,
    CacheValidationError,
    SqlCacheError,
)
from sqlcache.types import CacheEntryInfo, CacheEntryOptions

__version__ = "0.1.0"

__all__ = [
    "AsyncSqlCache",
    "CacheConfigurationError",
    "CacheEntryInfo",
    "CacheEntryOptions",
    "CacheSettings",
    "CacheStoreError",
    "CacheValidationError",
    "Clock",
    "SqlCache",
    "SqlCacheError",
    "SystemClock",
    "get_settings",
    "__version__",
]
