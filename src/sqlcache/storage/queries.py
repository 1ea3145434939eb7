"""
SQL statements for a cache table.

Every statement uses named parameters (``:id``, ``:utc_now``, ...) bound by
``sqlcache.storage.columns``. Instants are integer microseconds since the
epoch, so expiration arithmetic happens directly in SQL.

Reads run two statements on one connection: a conditional touch that slides
``ExpiresAtTime`` forward, then a select filtered on ``:utc_now <= ExpiresAtTime``.
The touch only depends on stored fields and ``:utc_now``, so concurrent readers
converge on the same row state whatever order their touches land in.
"""

from __future__ import annotations

from sqlcache.exceptions import CacheConfigurationError
from sqlcache.storage.columns import MICROSECONDS_PER_SECOND, Names

_SLIDING_MICROS = f"({Names.SLIDING_EXPIRATION_IN_SECONDS} * {MICROSECONDS_PER_SECOND})"

_UPDATE_CACHE_ITEM = (
    "UPDATE {table} "
    f"SET {Names.EXPIRES_AT_TIME} = "
    "(CASE "
    f"WHEN {Names.ABSOLUTE_EXPIRATION} IS NOT NULL "
    f"AND ({Names.ABSOLUTE_EXPIRATION} - :utc_now) <= {_SLIDING_MICROS} "
    f"THEN {Names.ABSOLUTE_EXPIRATION} "
    f"ELSE :utc_now + {_SLIDING_MICROS} "
    "END) "
    f"WHERE {Names.CACHE_ITEM_ID} = :id "
    f"AND :utc_now <= {Names.EXPIRES_AT_TIME} "
    f"AND {Names.SLIDING_EXPIRATION_IN_SECONDS} IS NOT NULL "
    f"AND ({Names.ABSOLUTE_EXPIRATION} IS NULL "
    f"OR {Names.ABSOLUTE_EXPIRATION} <> {Names.EXPIRES_AT_TIME})"
)

_GET_CACHE_ITEM = (
    f"SELECT {Names.CACHE_ITEM_ID}, {Names.EXPIRES_AT_TIME}, "
    f"{Names.SLIDING_EXPIRATION_IN_SECONDS}, {Names.ABSOLUTE_EXPIRATION}, "
    f"{Names.CACHE_ITEM_VALUE} "
    "FROM {table} "
    f"WHERE {Names.CACHE_ITEM_ID} = :id AND :utc_now <= {Names.EXPIRES_AT_TIME}"
)

# Same column order as _GET_CACHE_ITEM, without the touch or the expiry filter
_GET_CACHE_ITEM_INFO = (
    f"SELECT {Names.CACHE_ITEM_ID}, {Names.EXPIRES_AT_TIME}, "
    f"{Names.SLIDING_EXPIRATION_IN_SECONDS}, {Names.ABSOLUTE_EXPIRATION}, "
    f"{Names.CACHE_ITEM_VALUE} "
    "FROM {table} "
    f"WHERE {Names.CACHE_ITEM_ID} = :id"
)

# ExpiresAtTime never starts past the absolute ceiling
_SET_CACHE_ITEM = (
    "INSERT INTO {table} ("
    f"{Names.CACHE_ITEM_ID}, {Names.CACHE_ITEM_VALUE}, {Names.EXPIRES_AT_TIME}, "
    f"{Names.SLIDING_EXPIRATION_IN_SECONDS}, {Names.ABSOLUTE_EXPIRATION}"
    ") VALUES ("
    ":id, :value, "
    "(CASE "
    "WHEN :sliding_expiration_in_seconds IS NULL THEN :absolute_expiration "
    "WHEN :absolute_expiration IS NOT NULL "
    "AND (:absolute_expiration - :utc_now) "
    f"<= (:sliding_expiration_in_seconds * {MICROSECONDS_PER_SECOND}) "
    "THEN :absolute_expiration "
    f"ELSE :utc_now + (:sliding_expiration_in_seconds * {MICROSECONDS_PER_SECOND}) "
    "END), "
    ":sliding_expiration_in_seconds, :absolute_expiration"
    ") "
    f"ON CONFLICT ({Names.CACHE_ITEM_ID}) DO UPDATE SET "
    f"{Names.CACHE_ITEM_VALUE} = excluded.{Names.CACHE_ITEM_VALUE}, "
    f"{Names.EXPIRES_AT_TIME} = excluded.{Names.EXPIRES_AT_TIME}, "
    f"{Names.SLIDING_EXPIRATION_IN_SECONDS} = excluded.{Names.SLIDING_EXPIRATION_IN_SECONDS}, "
    f"{Names.ABSOLUTE_EXPIRATION} = excluded.{Names.ABSOLUTE_EXPIRATION}"
)

_DELETE_CACHE_ITEM = "DELETE FROM {table} " f"WHERE {Names.CACHE_ITEM_ID} = :id"

_DELETE_EXPIRED_CACHE_ITEMS = (
    "DELETE FROM {table} " f"WHERE :utc_now > {Names.EXPIRES_AT_TIME}"
)

_CREATE_TABLE = (
    "CREATE TABLE {table} ("
    f"{Names.CACHE_ITEM_ID} TEXT NOT NULL COLLATE BINARY, "
    f"{Names.CACHE_ITEM_VALUE} BLOB NOT NULL, "
    f"{Names.EXPIRES_AT_TIME} INTEGER NOT NULL, "
    f"{Names.SLIDING_EXPIRATION_IN_SECONDS} INTEGER NULL, "
    f"{Names.ABSOLUTE_EXPIRATION} INTEGER NULL, "
    f"PRIMARY KEY ({Names.CACHE_ITEM_ID})"
    ")"
)

_CREATE_INDEX = (
    f"CREATE INDEX {{index}} ON {{table_only}} ({Names.EXPIRES_AT_TIME})"
)

_TABLE_INFO = (
    "SELECT name, type FROM {master} WHERE type = 'table' AND name = :table_name"
)


def quote_identifier(identifier: str) -> str:
    """Quote an SQL identifier, doubling any embedded quote."""
    return '"' + identifier.replace('"', '""') + '"'


class CacheQueries:
    """The fixed statement set for one cache table.

    Built once per cache instance; every operation picks its statement from
    here.
    """

    def __init__(self, table_name: str, schema_name: str | None = None) -> None:
        if not table_name:
            raise CacheConfigurationError("Table name cannot be empty or None.")
        if schema_name is not None and not schema_name:
            raise CacheConfigurationError(
                "Schema name cannot be empty.", context={"table_name": table_name}
            )

        self.table_name = table_name
        self.schema_name = schema_name

        schema_prefix = f"{quote_identifier(schema_name)}." if schema_name else ""
        table = f"{schema_prefix}{quote_identifier(table_name)}"
        self.qualified_table_name = table

        # when retrieving an item, we run touch_cache_item first and then get_cache_item;
        # a refresh only runs the touch
        self.touch_cache_item = _UPDATE_CACHE_ITEM.format(table=table)
        self.get_cache_item = _GET_CACHE_ITEM.format(table=table)
        self.get_cache_item_info = _GET_CACHE_ITEM_INFO.format(table=table)
        self.set_cache_item = _SET_CACHE_ITEM.format(table=table)
        self.delete_cache_item = _DELETE_CACHE_ITEM.format(table=table)
        self.delete_expired_cache_items = _DELETE_EXPIRED_CACHE_ITEMS.format(table=table)

        self.index_name = f"Index_{table_name}_{Names.EXPIRES_AT_TIME}"
        self.create_table = _CREATE_TABLE.format(table=table)
        self.create_index = _CREATE_INDEX.format(
            index=f"{schema_prefix}{quote_identifier(self.index_name)}",
            table_only=quote_identifier(table_name),
        )
        self.table_info = _TABLE_INFO.format(master=f"{schema_prefix}sqlite_master")

    def script(self) -> str:
        """DDL that provisions the table and its expiration index."""
        return f"{self.create_table};\n{self.create_index};\n"

    def __repr__(self) -> str:
        return f"CacheQueries(table={self.qualified_table_name})"
