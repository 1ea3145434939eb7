"""Provisioning of the cache table and its expiration index."""

from __future__ import annotations

import aiosqlite

from sqlcache.exceptions import CacheStoreError
from sqlcache.logging import get_logger
from sqlcache.storage.connection import ConnectionFactory
from sqlcache.storage.queries import CacheQueries

logger = get_logger(__name__)


async def table_exists(connections: ConnectionFactory, queries: CacheQueries) -> bool:
    """Check whether the cache table is already present."""
    try:
        async with connections.connect() as db:
            async with db.execute(
                queries.table_info, {"table_name": queries.table_name}
            ) as cursor:
                row = await cursor.fetchone()
    except aiosqlite.Error as exc:
        raise CacheStoreError(
            f"Could not read table information: {exc}",
            context={"table": queries.qualified_table_name},
        ) from exc
    return row is not None


async def create_table(connections: ConnectionFactory, queries: CacheQueries) -> bool:
    """Create the cache table and index in one transaction.

    Switches the database to WAL journaling so readers and the writer do not
    block each other.

    Returns:
        False if the table already existed (nothing is changed), True otherwise.
    """
    if await table_exists(connections, queries):
        logger.warning("Cache table already exists", table=queries.qualified_table_name)
        return False

    try:
        async with connections.connect() as db:
            await db.execute("PRAGMA journal_mode=WAL")
            await db.execute("BEGIN")
            try:
                await db.execute(queries.create_table)
                await db.execute(queries.create_index)
            except aiosqlite.Error:
                await db.rollback()
                raise
            await db.commit()
    except aiosqlite.Error as exc:
        raise CacheStoreError(
            f"An error occurred while trying to create the table and index: {exc}",
            context={"table": queries.qualified_table_name},
        ) from exc

    logger.info("Cache table created", table=queries.qualified_table_name)
    return True
