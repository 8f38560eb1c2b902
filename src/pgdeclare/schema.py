"""
Schema model shared by the parser, inspector, differ and executor.

These are immutable value types describing either the desired schema
(parsed from declarative DDL text) or the current schema (read from the
live catalog). They carry no behavior beyond lookups and comparison.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field

from .exceptions import TypeConversionError
from .types import ColumnType, TypeCategory, parse_boolean_token
from .utils import default_compare_key, normalize_default, quote_identifier


def _default_key(default: str | None, column_type: ColumnType) -> str | None:
    category = column_type.category
    if category is TypeCategory.BOOLEAN and default and len(default) > 1 and default[0] == default[-1] == "'":
        # The catalog reports DEFAULT 'yes' on a boolean column as true.
        try:
            return "true" if parse_boolean_token(default[1:-1]) else "false"
        except TypeConversionError:
            return default
    return default_compare_key(default, numeric=category in (TypeCategory.INTEGER, TypeCategory.NUMERIC))


@dataclass(frozen=True)
class ColumnDefinition:
    """
    Represents a single column of a table.

    Attributes:
        name: Column name, unique within its table
        type: Canonical column type
        nullable: Whether the column accepts NULL
        default: SQL default expression, normalized but still renderable
        default_key: Form of the default used for equality
    """

    name: str
    type: ColumnType
    nullable: bool = True
    default: str | None = field(default=None, compare=False)
    default_key: str | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.type, str):
            object.__setattr__(self, "type", ColumnType.parse(self.type))
        object.__setattr__(self, "default", normalize_default(self.default))
        object.__setattr__(self, "default_key", _default_key(self.default, self.type))

    def to_sql(self) -> str:
        """Render the column as it appears inside CREATE TABLE or ADD COLUMN."""
        parts = [quote_identifier(self.name), self.type.to_sql()]
        if not self.nullable:
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        return " ".join(parts)


@dataclass(frozen=True)
class TableDefinition:
    """
    Represents the complete definition of a table.

    Column order matters for generated CREATE TABLE statements and for the
    order of ADD COLUMN steps, not for comparison semantics in the differ.

    Attributes:
        name: Table name, unique within its snapshot
        columns: Ordered columns
        primary_key: Primary key column names, rendered in CREATE TABLE
        unlogged: Create the table UNLOGGED; not compared
    """

    name: str
    columns: tuple[ColumnDefinition, ...] = ()
    primary_key: tuple[str, ...] = ()
    unlogged: bool = field(default=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "primary_key", tuple(self.primary_key))

    @property
    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def get_column(self, name: str) -> ColumnDefinition | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.get_column(name) is not None


@dataclass(frozen=True)
class SchemaSnapshot(Mapping[str, TableDefinition]):
    """
    Mapping from table name to table definition.

    Represents either the desired state or the currently-live state.
    Iteration follows insertion order, which is declaration order for parsed
    snapshots and name order for introspected ones.

    Example:
        snapshot = SchemaSnapshot.from_tables([
            TableDefinition(
                name="users",
                columns=(ColumnDefinition("id", ColumnType.parse("SERIAL"), nullable=False),),
                primary_key=("id",),
            ),
        ])
    """

    tables: dict[str, TableDefinition] = field(default_factory=dict)

    @classmethod
    def from_tables(cls, tables: Iterable[TableDefinition]) -> SchemaSnapshot:
        mapping: dict[str, TableDefinition] = {}
        for table in tables:
            if table.name in mapping:
                raise ValueError(f"Duplicate table in snapshot: {table.name}")
            mapping[table.name] = table
        return cls(tables=mapping)

    def __getitem__(self, name: str) -> TableDefinition:
        return self.tables[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    def __hash__(self) -> int:
        return hash(tuple(self.tables.items()))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchemaSnapshot):
            return NotImplemented
        return self.tables == other.tables

    def structurally_equal(self, other: SchemaSnapshot) -> bool:
        """
        Compare two snapshots ignoring table and column order.

        Column position is not something the differ reconciles, so a live
        table whose columns were added in a different order still matches.
        """
        if set(self.tables) != set(other.tables):
            return False
        for name, table in self.tables.items():
            theirs = other.tables[name]
            if table.primary_key != theirs.primary_key:
                return False
            mine_columns = {column.name: column for column in table.columns}
            their_columns = {column.name: column for column in theirs.columns}
            if mine_columns != their_columns:
                return False
        return True


__all__ = ["ColumnDefinition", "TableDefinition", "SchemaSnapshot"]
