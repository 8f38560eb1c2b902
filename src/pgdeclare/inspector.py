"""
Database inspector for reading the current schema.

Reads base tables, columns and primary keys of one PostgreSQL schema from
``pg_catalog`` and builds a ``SchemaSnapshot`` that can be compared
against the desired snapshot produced by the parser.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from .exceptions import IntrospectionError
from .schema import ColumnDefinition, SchemaSnapshot, TableDefinition
from .types import ColumnType, TypeCategory

logger = logging.getLogger(__name__)

# Matches the default PostgreSQL attaches to serial columns.
_SERIAL_DEFAULT_RE = re.compile(r"^nextval\('[^']+'(?:::regclass)?\)$", re.IGNORECASE)

_TABLES_QUERY = """
SELECT c.relname AS table_name
FROM pg_catalog.pg_class c
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
WHERE n.nspname = $1
  AND c.relkind IN ('r', 'p')
  AND NOT c.relispartition
ORDER BY c.relname
"""

_COLUMNS_QUERY = """
SELECT
    c.relname AS table_name,
    a.attname AS column_name,
    pg_catalog.format_type(a.atttypid, a.atttypmod) AS data_type,
    a.attnotnull AS not_null,
    pg_catalog.pg_get_expr(d.adbin, d.adrelid) AS column_default
FROM pg_catalog.pg_attribute a
JOIN pg_catalog.pg_class c ON c.oid = a.attrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
LEFT JOIN pg_catalog.pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
WHERE n.nspname = $1
  AND c.relkind IN ('r', 'p')
  AND NOT c.relispartition
  AND a.attnum > 0
  AND NOT a.attisdropped
ORDER BY c.relname, a.attnum
"""

_PRIMARY_KEYS_QUERY = """
SELECT c.relname AS table_name, a.attname AS column_name
FROM pg_catalog.pg_index i
JOIN pg_catalog.pg_class c ON c.oid = i.indrelid
JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
CROSS JOIN LATERAL unnest(i.indkey) WITH ORDINALITY AS k(attnum, ord)
JOIN pg_catalog.pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
WHERE n.nspname = $1
  AND i.indisprimary
ORDER BY c.relname, k.ord
"""


class QueryConnection(Protocol):
    """Connection capability the inspector requires."""

    async def fetch(self, query: str, *args: Any) -> Sequence[Mapping[str, Any]]: ...


def column_from_catalog(
    name: str,
    data_type: str,
    not_null: bool,
    column_default: str | None,
) -> ColumnDefinition:
    """
    Build a ColumnDefinition from one catalog row.

    Integer columns whose default draws from a sequence come back as the
    matching serial pseudo-type without a default, which is how a schema
    file declares them.

    Args:
        name: Column name as stored
        data_type: ``format_type`` output, e.g. ``character varying(255)``
        not_null: ``attnotnull``
        column_default: ``pg_get_expr`` of the default, or None
    """
    column_type = ColumnType.parse(data_type)
    default = column_default

    if (
        default is not None
        and column_type.category is TypeCategory.INTEGER
        and _SERIAL_DEFAULT_RE.match(default.strip())
    ):
        column_type = column_type.as_serial()
        default = None

    return ColumnDefinition(name=name, type=column_type, nullable=not not_null, default=default)


class DatabaseInspector:
    """
    Reads the live schema of a PostgreSQL database into a ``SchemaSnapshot``.

    Only ordinary and partitioned base tables are read; views, partitions,
    sequences and other relations are ignored. Tables come back in name
    order, columns in their physical order.

    Usage::

        async with PostgresConnection.open(config) as conn:
            current = await DatabaseInspector(conn).inspect()
    """

    def __init__(self, connection: QueryConnection, schema: str = "public") -> None:
        """
        Initialize the database inspector.

        Args:
            connection: Connection providing ``fetch``
            schema: Schema whose tables are read
        """
        self._connection = connection
        self.schema = schema

    async def inspect(self) -> SchemaSnapshot:
        """
        Read the current schema.

        Returns:
            SchemaSnapshot of every base table in the schema

        Raises:
            IntrospectionError: If the catalog cannot be read
        """
        try:
            table_rows = await self._connection.fetch(_TABLES_QUERY, self.schema)
            column_rows = await self._connection.fetch(_COLUMNS_QUERY, self.schema)
            key_rows = await self._connection.fetch(_PRIMARY_KEYS_QUERY, self.schema)
        except Exception as e:
            raise IntrospectionError(f"Failed to read schema {self.schema!r}: {e}") from e

        columns: dict[str, list[ColumnDefinition]] = {row["table_name"]: [] for row in table_rows}
        primary_keys: dict[str, list[str]] = {}

        for row in column_rows:
            table = row["table_name"]
            if table not in columns:
                continue
            try:
                column = column_from_catalog(
                    row["column_name"],
                    row["data_type"],
                    row["not_null"],
                    row["column_default"],
                )
            except ValueError as e:
                raise IntrospectionError(
                    f"Unreadable column {table}.{row['column_name']}: {e}"
                ) from e
            columns[table].append(column)

        for row in key_rows:
            primary_keys.setdefault(row["table_name"], []).append(row["column_name"])

        tables = [
            TableDefinition(
                name=name,
                columns=tuple(table_columns),
                primary_key=tuple(primary_keys.get(name, ())),
            )
            for name, table_columns in columns.items()
        ]
        logger.info("Inspected %d table(s) in schema %s", len(tables), self.schema)
        return SchemaSnapshot.from_tables(tables)


__all__ = ["DatabaseInspector", "QueryConnection", "column_from_catalog"]
