"""
Migration steps for PostgreSQL schema changes.

Each step is a self-contained DDL intent that renders to exactly one
statement. Steps are produced by the differ and executed, in order, by the
migration executor.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar

from .schema import ColumnDefinition, TableDefinition
from .types import FALSE_TOKENS, TRUE_TOKENS, ColumnType, TypeCategory
from .utils import quote_identifier, quote_literal


class StepKind(StrEnum):
    """Tag identifying a migration step variant."""

    CREATE_TABLE = "create_table"
    DROP_TABLE = "drop_table"
    ADD_COLUMN = "add_column"
    DROP_COLUMN = "drop_column"
    ALTER_COLUMN_TYPE = "alter_column_type"
    ALTER_COLUMN_NULLABILITY = "alter_column_nullability"
    ALTER_COLUMN_DEFAULT = "alter_column_default"


def _alter_table(table: str) -> str:
    return f"ALTER TABLE {quote_identifier(table)}"


@dataclass(frozen=True)
class MigrationStep(ABC):
    """
    Base class for all migration steps.

    Steps must implement to_sql(), returning the single DDL statement the
    step stands for, and expose the table they act on.
    """

    kind: ClassVar[StepKind]

    # Steps that discard data the database currently holds.
    destructive: ClassVar[bool] = False

    @property
    @abstractmethod
    def table_name(self) -> str:
        """Name of the table this step acts on."""
        ...

    @abstractmethod
    def to_sql(self) -> str:
        """Generate the DDL statement for this step."""
        ...

    def describe(self) -> str:
        """Human-readable description of the step."""
        return f"{self.__class__.__name__}"

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation used for plan previews."""
        return {"kind": str(self.kind), "table": self.table_name, "sql": self.to_sql()}


@dataclass(frozen=True)
class CreateTable(MigrationStep):
    """
    Create a new table with all its columns.

    Example:
        CreateTable(table=TableDefinition(name="users", columns=(...), primary_key=("id",)))

    Generates:
        CREATE TABLE users (
          id SERIAL NOT NULL,
          email VARCHAR(255),
          PRIMARY KEY (id)
        );
    """

    table: TableDefinition

    kind = StepKind.CREATE_TABLE

    @property
    def table_name(self) -> str:
        return self.table.name

    def to_sql(self) -> str:
        definitions = [column.to_sql() for column in self.table.columns]
        if self.table.primary_key:
            key_columns = ", ".join(quote_identifier(name) for name in self.table.primary_key)
            definitions.append(f"PRIMARY KEY ({key_columns})")

        name = quote_identifier(self.table.name)
        create = "CREATE UNLOGGED TABLE" if self.table.unlogged else "CREATE TABLE"
        if not definitions:
            return f"{create} {name} ();"
        body = ",\n  ".join(definitions)
        return f"{create} {name} (\n  {body}\n);"

    def describe(self) -> str:
        return f"Create table {self.table.name}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["columns"] = self.table.column_names
        return data


@dataclass(frozen=True)
class DropTable(MigrationStep):
    """
    Drop an existing table. Constraints in other tables that depend on it
    are dropped along with it.

    Generates:
        DROP TABLE users CASCADE;
    """

    name: str

    kind = StepKind.DROP_TABLE
    destructive = True

    @property
    def table_name(self) -> str:
        return self.name

    def to_sql(self) -> str:
        return f"DROP TABLE {quote_identifier(self.name)} CASCADE;"

    def describe(self) -> str:
        return f"Drop table {self.name}"


@dataclass(frozen=True)
class AddColumn(MigrationStep):
    """
    Add a column to a table.

    When the column is NOT NULL with a DEFAULT, PostgreSQL fills existing
    rows with the default; NOT NULL without a default fails on a non-empty
    table.

    Generates:
        ALTER TABLE users ADD COLUMN email VARCHAR(255) NOT NULL DEFAULT '';
    """

    table: str
    column: ColumnDefinition

    kind = StepKind.ADD_COLUMN

    @property
    def table_name(self) -> str:
        return self.table

    def to_sql(self) -> str:
        return f"{_alter_table(self.table)} ADD COLUMN {self.column.to_sql()};"

    def describe(self) -> str:
        return f"Add column {self.column.name} to {self.table}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["column"] = self.column.name
        return data


@dataclass(frozen=True)
class DropColumn(MigrationStep):
    """
    Remove a column from a table.

    Generates:
        ALTER TABLE products DROP COLUMN old_field;
    """

    table: str
    name: str

    kind = StepKind.DROP_COLUMN
    destructive = True

    @property
    def table_name(self) -> str:
        return self.table

    def to_sql(self) -> str:
        return f"{_alter_table(self.table)} DROP COLUMN {quote_identifier(self.name)};"

    def describe(self) -> str:
        return f"Drop column {self.name} from {self.table}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["column"] = self.name
        return data


def _boolean_using(column_ref: str) -> str:
    """
    Build a CASE expression converting text to BOOLEAN by the boolean token law.

    Anything outside the token sets is forced through a failing cast so that
    PostgreSQL reports invalid_text_representation, instead of accepting the
    abbreviations its own boolean input allows ("tr", "fa", "ye").
    """
    token = f"lower(trim({column_ref}))"
    true_list = ", ".join(quote_literal(t) for t in TRUE_TOKENS)
    false_list = ", ".join(quote_literal(t) for t in FALSE_TOKENS)
    return (
        f"CASE WHEN {token} IN ({true_list}) THEN TRUE "
        f"WHEN {token} IN ({false_list}) THEN FALSE "
        f"ELSE ({column_ref} || ' (not a boolean token)')::BOOLEAN END"
    )


@dataclass(frozen=True)
class AlterColumnType(MigrationStep):
    """
    Change a column's type, delegating value conversion to PostgreSQL casts.

    Text columns converted to a non-text type get an explicit USING clause:
    integers go through NUMERIC so decimal strings truncate, booleans follow
    the boolean token law, everything else is a direct cast. Other
    conversions rely on PostgreSQL's assignment casts and fail when none
    exists (e.g. BOOLEAN to INTEGER).

    Turning a plain column into a serial one also creates the owned
    sequence, starts it past the current maximum and attaches it as the
    default, all in one DO block.

    Generates:
        ALTER TABLE t ALTER COLUMN c TYPE INTEGER USING TRUNC(c::NUMERIC)::INTEGER;
    """

    table: str
    name: str
    from_type: ColumnType
    to_type: ColumnType

    kind = StepKind.ALTER_COLUMN_TYPE

    @property
    def table_name(self) -> str:
        return self.table

    def using_expression(self) -> str | None:
        """USING clause expression for this conversion, or None when a plain cast suffices."""
        target_type = self.to_type.storage_type()
        if self.from_type.category is not TypeCategory.STRING or target_type.array:
            return None

        column_ref = quote_identifier(self.name)
        target = target_type.category
        if target is TypeCategory.STRING:
            return None
        if target is TypeCategory.INTEGER:
            return f"TRUNC({column_ref}::NUMERIC)::{target_type.to_sql()}"
        if target is TypeCategory.BOOLEAN:
            return _boolean_using(column_ref)
        return f"{column_ref}::{target_type.to_sql()}"

    @property
    def adds_sequence(self) -> bool:
        return self.to_type.is_serial and not self.from_type.is_serial

    def _alter_type_sql(self) -> str:
        target_type = self.to_type.storage_type()
        sql = f"{_alter_table(self.table)} ALTER COLUMN {quote_identifier(self.name)} TYPE {target_type.to_sql()}"
        using = self.using_expression()
        if using:
            sql += f" USING {using}"
        return sql + ";"

    def _serial_sql(self) -> str:
        table = quote_identifier(self.table)
        column = quote_identifier(self.name)
        sequence = quote_identifier(f"{self.table}_{self.name}_seq")
        regclass = quote_literal(sequence)
        storage = self.to_type.storage_type()
        body = []
        if storage != self.from_type:
            body.append(self._alter_type_sql())
        body += [
            f"CREATE SEQUENCE {sequence} AS {storage.to_sql()} OWNED BY {table}.{column};",
            f"PERFORM setval({regclass}, COALESCE((SELECT max({column}) FROM {table}), 0) + 1, false);",
            f"{_alter_table(self.table)} ALTER COLUMN {column} SET DEFAULT nextval({regclass}::regclass);",
        ]
        return "DO $serial$ BEGIN " + " ".join(body) + " END $serial$;"

    def to_sql(self) -> str:
        if self.adds_sequence:
            return self._serial_sql()
        return self._alter_type_sql()

    def describe(self) -> str:
        return f"Alter column {self.name} on {self.table} type {self.from_type} -> {self.to_type}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(column=self.name, from_type=str(self.from_type), to_type=str(self.to_type))
        return data


@dataclass(frozen=True)
class AlterColumnNullability(MigrationStep):
    """
    Add or remove a NOT NULL constraint.

    SET NOT NULL fails while the column holds NULLs; no backfill happens.

    Generates:
        ALTER TABLE users ALTER COLUMN email SET NOT NULL;
    """

    table: str
    name: str
    nullable: bool

    kind = StepKind.ALTER_COLUMN_NULLABILITY

    @property
    def table_name(self) -> str:
        return self.table

    def to_sql(self) -> str:
        action = "DROP NOT NULL" if self.nullable else "SET NOT NULL"
        return f"{_alter_table(self.table)} ALTER COLUMN {quote_identifier(self.name)} {action};"

    def describe(self) -> str:
        state = "nullable" if self.nullable else "NOT NULL"
        return f"Make column {self.name} on {self.table} {state}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(column=self.name, nullable=self.nullable)
        return data


@dataclass(frozen=True)
class AlterColumnDefault(MigrationStep):
    """
    Set or drop a column default. A default of None drops it.

    Only affects rows inserted afterwards; existing rows keep their values.

    Generates:
        ALTER TABLE users ALTER COLUMN status SET DEFAULT 'active';
        ALTER TABLE users ALTER COLUMN status DROP DEFAULT;
    """

    table: str
    name: str
    default: str | None = None

    kind = StepKind.ALTER_COLUMN_DEFAULT

    @property
    def table_name(self) -> str:
        return self.table

    def to_sql(self) -> str:
        prefix = f"{_alter_table(self.table)} ALTER COLUMN {quote_identifier(self.name)}"
        if self.default is None:
            return f"{prefix} DROP DEFAULT;"
        return f"{prefix} SET DEFAULT {self.default};"

    def describe(self) -> str:
        if self.default is None:
            return f"Drop default of column {self.name} on {self.table}"
        return f"Set default of column {self.name} on {self.table} to {self.default}"

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(column=self.name, default=self.default)
        return data


__all__ = [
    "StepKind",
    "MigrationStep",
    "CreateTable",
    "DropTable",
    "AddColumn",
    "DropColumn",
    "AlterColumnType",
    "AlterColumnNullability",
    "AlterColumnDefault",
]
