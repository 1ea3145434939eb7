"""
Storage package for the cache table.

This package provides:
- Statements (queries.py): the fixed SQL set for one table
- Column binding (columns.py): wire representation of keys, values and instants
- Connections (connection.py): per-operation connection factories
- Operations (operations.py): get/refresh/set/delete/delete-expired
- Schema (schema.py): table and index provisioning
"""

from sqlcache.storage.connection import ConnectionFactory, SqliteConnectionFactory
from sqlcache.storage.operations import DatabaseOperations, SqliteDatabaseOperations
from sqlcache.storage.queries import CacheQueries

__all__ = [
    "CacheQueries",
    "ConnectionFactory",
    "DatabaseOperations",
    "SqliteConnectionFactory",
    "SqliteDatabaseOperations",
]
