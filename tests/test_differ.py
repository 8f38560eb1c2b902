"""
Unit tests for the schema differ.

Covers plan ordering, per-column alteration ordering, idempotence and the
reference scenarios for table creation and column removal.
"""

from __future__ import annotations

from pgdeclare.differ import diff_column, generate_migration_plan
from pgdeclare.operations import (
    AddColumn,
    AlterColumnDefault,
    AlterColumnNullability,
    AlterColumnType,
    CreateTable,
    DropColumn,
    DropTable,
)
from pgdeclare.parser import parse_schema
from pgdeclare.schema import ColumnDefinition, SchemaSnapshot, TableDefinition
from pgdeclare.types import ColumnType


def col(name: str, type_: str, nullable: bool = True, default: str | None = None) -> ColumnDefinition:
    return ColumnDefinition(name=name, type=ColumnType.parse(type_), nullable=nullable, default=default)


def snapshot(*tables: TableDefinition) -> SchemaSnapshot:
    return SchemaSnapshot.from_tables(tables)


def table(name: str, *columns: ColumnDefinition, primary_key: tuple[str, ...] = ()) -> TableDefinition:
    return TableDefinition(name=name, columns=columns, primary_key=primary_key)


PRODUCTS_CURRENT = table(
    "products",
    col("id", "serial", nullable=False),
    col("name", "varchar(255)", nullable=False),
    col("description", "text"),
    col("old_field", "varchar(100)"),
    col("deprecated_column", "integer"),
    primary_key=("id",),
)


class TestGenerateMigrationPlan:
    """Tests for generate_migration_plan()."""

    def test_empty_snapshots(self) -> None:
        plan = generate_migration_plan(SchemaSnapshot(), SchemaSnapshot())
        assert plan.is_empty
        assert plan.statements() == []

    def test_create_table_from_parsed_schema(self) -> None:
        desired = parse_schema(
            "CREATE TABLE users(id SERIAL PRIMARY KEY, name VARCHAR(255) NOT NULL, email VARCHAR(255));"
        )
        plan = generate_migration_plan(desired, SchemaSnapshot())

        assert plan.steps == [CreateTable(table=desired["users"])]
        users = desired["users"]
        assert users.column_names == ["id", "name", "email"]
        assert [c.nullable for c in users.columns] == [False, False, True]

    def test_drop_columns_in_current_order(self) -> None:
        desired = snapshot(
            table(
                "products",
                col("id", "serial", nullable=False),
                col("name", "varchar(255)", nullable=False),
                col("description", "text"),
                primary_key=("id",),
            )
        )
        plan = generate_migration_plan(desired, snapshot(PRODUCTS_CURRENT))

        assert plan.steps == [
            DropColumn(table="products", name="old_field"),
            DropColumn(table="products", name="deprecated_column"),
        ]
        assert plan.is_destructive

    def test_three_new_tables(self) -> None:
        desired = parse_schema(
            """
            CREATE TABLE authors (id SERIAL PRIMARY KEY, name TEXT NOT NULL);
            CREATE TABLE books (id SERIAL PRIMARY KEY, author_id INTEGER REFERENCES authors(id));
            CREATE TABLE reviews (id SERIAL PRIMARY KEY, body TEXT);
            """
        )
        plan = generate_migration_plan(desired, SchemaSnapshot())

        assert len(plan) == 3
        assert all(isinstance(step, CreateTable) for step in plan)
        assert sorted(step.table_name for step in plan) == ["authors", "books", "reviews"]

    def test_drop_table_comes_after_creates(self) -> None:
        desired = snapshot(table("new_table", col("id", "integer")))
        current = snapshot(table("old_table", col("id", "integer")))

        plan = generate_migration_plan(desired, current)

        assert plan.steps == [
            CreateTable(table=desired["new_table"]),
            DropTable(name="old_table"),
        ]

    def test_add_columns_in_declared_order(self) -> None:
        desired = snapshot(table("users", col("id", "integer"), col("b", "text"), col("a", "text")))
        current = snapshot(table("users", col("id", "integer")))

        plan = generate_migration_plan(desired, current)

        assert plan.steps == [
            AddColumn(table="users", column=col("b", "text")),
            AddColumn(table="users", column=col("a", "text")),
        ]

    def test_column_reorder_is_not_a_change(self) -> None:
        desired = snapshot(table("users", col("a", "text"), col("b", "integer")))
        current = snapshot(table("users", col("b", "integer"), col("a", "text")))

        assert generate_migration_plan(desired, current).is_empty

    def test_equivalent_type_spellings_are_not_a_change(self) -> None:
        desired = snapshot(table("t", col("c", "VARCHAR(20)", default="'x'")))
        current = snapshot(table("t", col("c", "character varying(20)", default="'x'::character varying")))

        assert generate_migration_plan(desired, current).is_empty

    def test_idempotent_on_identical_snapshots(self) -> None:
        schema = snapshot(
            PRODUCTS_CURRENT,
            table("users", col("id", "bigserial", nullable=False), col("flags", "boolean[]")),
        )
        assert generate_migration_plan(schema, schema).is_empty

    def test_deterministic(self) -> None:
        desired = snapshot(table("a", col("x", "integer")), table("products", col("id", "bigint")))
        current = snapshot(PRODUCTS_CURRENT, table("z", col("y", "text")))

        first = generate_migration_plan(desired, current)
        second = generate_migration_plan(desired, current)

        assert first.steps == second.steps
        assert first.statements() == second.statements()

    def test_tables_untouched_are_skipped(self) -> None:
        desired = snapshot(PRODUCTS_CURRENT, table("users", col("id", "integer"), col("email", "text")))
        current = snapshot(PRODUCTS_CURRENT, table("users", col("id", "integer")))

        plan = generate_migration_plan(desired, current)

        assert plan.tables == ["users"]


class TestDiffColumn:
    """Tests for per-column alteration ordering."""

    def test_type_only(self) -> None:
        steps = diff_column("t", col("c", "integer"), col("c", "varchar(50)"))
        assert steps == [
            AlterColumnType(
                table="t",
                name="c",
                from_type=ColumnType.parse("varchar(50)"),
                to_type=ColumnType.parse("integer"),
            )
        ]

    def test_nullability_only(self) -> None:
        steps = diff_column("t", col("c", "text", nullable=False), col("c", "text"))
        assert steps == [AlterColumnNullability(table="t", name="c", nullable=False)]

    def test_default_only(self) -> None:
        steps = diff_column("t", col("c", "text", default="'b'"), col("c", "text", default="'a'"))
        assert steps == [AlterColumnDefault(table="t", name="c", default="'b'")]

    def test_type_and_default_drops_old_default_first(self) -> None:
        steps = diff_column(
            "t",
            col("c", "integer", nullable=False, default="0"),
            col("c", "varchar(10)", default="'none'"),
        )
        assert [type(step) for step in steps] == [
            AlterColumnDefault,
            AlterColumnType,
            AlterColumnDefault,
            AlterColumnNullability,
        ]
        assert steps[0] == AlterColumnDefault(table="t", name="c", default=None)
        assert steps[2] == AlterColumnDefault(table="t", name="c", default="0")

    def test_type_change_removing_default(self) -> None:
        steps = diff_column("t", col("c", "integer"), col("c", "varchar(10)", default="'1'"))
        assert [type(step) for step in steps] == [AlterColumnDefault, AlterColumnType]
        assert steps[0].to_sql() == "ALTER TABLE t ALTER COLUMN c DROP DEFAULT;"

    def test_type_change_adding_default(self) -> None:
        steps = diff_column("t", col("c", "integer", default="5"), col("c", "varchar(10)"))
        assert [type(step) for step in steps] == [AlterColumnType, AlterColumnDefault]

    def test_serial_to_integer_drops_sequence_default(self) -> None:
        steps = diff_column(
            "t",
            col("id", "integer", nullable=False),
            col("id", "serial", nullable=False),
        )
        assert [step.to_sql() for step in steps] == ["ALTER TABLE t ALTER COLUMN id DROP DEFAULT;"]

    def test_serial_to_bigint_drops_sequence_default_before_type(self) -> None:
        steps = diff_column("t", col("id", "bigint"), col("id", "serial"))
        assert [step.to_sql() for step in steps] == [
            "ALTER TABLE t ALTER COLUMN id DROP DEFAULT;",
            "ALTER TABLE t ALTER COLUMN id TYPE BIGINT;",
        ]

    def test_integer_to_serial_is_one_step(self) -> None:
        steps = diff_column("t", col("id", "serial", nullable=False), col("id", "integer", nullable=False))
        assert len(steps) == 1
        assert isinstance(steps[0], AlterColumnType)
        assert steps[0].adds_sequence

    def test_to_serial_drops_existing_default(self) -> None:
        steps = diff_column("t", col("id", "serial"), col("id", "integer", default="0"))
        assert [type(step) for step in steps] == [AlterColumnDefault, AlterColumnType]
        assert steps[0].default is None

    def test_unchanged_default_reset_around_type_change(self) -> None:
        steps = diff_column("t", col("c", "integer", default="0"), col("c", "varchar(10)", default="'0'"))
        assert [step.to_sql() for step in steps] == [
            "ALTER TABLE t ALTER COLUMN c DROP DEFAULT;",
            "ALTER TABLE t ALTER COLUMN c TYPE INTEGER USING TRUNC(c::NUMERIC)::INTEGER;",
            "ALTER TABLE t ALTER COLUMN c SET DEFAULT 0;",
        ]

    def test_same_default_kept_across_type_change(self) -> None:
        steps = diff_column("t", col("c", "bigint", default="0"), col("c", "integer", default="0"))
        assert [step.to_sql() for step in steps] == [
            "ALTER TABLE t ALTER COLUMN c DROP DEFAULT;",
            "ALTER TABLE t ALTER COLUMN c TYPE BIGINT;",
            "ALTER TABLE t ALTER COLUMN c SET DEFAULT 0;",
        ]

    def test_quoted_text_default_is_not_a_number(self) -> None:
        desired = col("code", "varchar(10)", default="'007'")
        assert diff_column("t", desired, col("code", "varchar(10)", default="'007'::character varying")) == []
        assert diff_column("t", desired, col("code", "varchar(10)", default="7")) == [
            AlterColumnDefault(table="t", name="code", default="'007'")
        ]

    def test_quoted_number_matches_bare_on_integer_column(self) -> None:
        assert diff_column("t", col("c", "integer", default="-1"), col("c", "integer", default="'-1'::integer")) == []

    def test_boolean_token_default_matches_catalog(self) -> None:
        assert diff_column("t", col("flag", "boolean", default="'yes'"), col("flag", "boolean", default="true")) == []
        assert diff_column("t", col("flag", "boolean", default="'off'"), col("flag", "boolean", default="false")) == []

    def test_identical_columns(self) -> None:
        column = col("c", "numeric(10,2)", nullable=False, default="0")
        assert diff_column("t", column, column) == []
