"""
Unit tests for MigrationPlan previews and single-use semantics.
"""

from __future__ import annotations

import json

import pytest

from pgdeclare.exceptions import PlanAlreadyConsumedError
from pgdeclare.operations import AddColumn, CreateTable, DropColumn, DropTable
from pgdeclare.plan import MigrationPlan
from pgdeclare.schema import ColumnDefinition, TableDefinition


@pytest.fixture
def plan() -> MigrationPlan:
    return MigrationPlan(
        steps=[
            CreateTable(table=TableDefinition(name="users", columns=(ColumnDefinition("id", "integer"),))),
            AddColumn(table="products", column=ColumnDefinition("sku", "text")),
            DropColumn(table="products", name="old_field"),
        ]
    )


class TestMigrationPlan:
    """Tests for MigrationPlan."""

    def test_statements_in_order(self, plan: MigrationPlan) -> None:
        assert plan.statements() == [
            "CREATE TABLE users (\n  id INTEGER\n);",
            "ALTER TABLE products ADD COLUMN sku TEXT;",
            "ALTER TABLE products DROP COLUMN old_field;",
        ]

    def test_preview_has_no_side_effects(self, plan: MigrationPlan) -> None:
        plan.statements()
        plan.describe()
        assert not plan.consumed

    def test_destructive_steps(self, plan: MigrationPlan) -> None:
        assert plan.is_destructive
        assert plan.destructive_steps == [DropColumn(table="products", name="old_field")]

    def test_tables_in_first_appearance_order(self, plan: MigrationPlan) -> None:
        assert plan.tables == ["users", "products"]
        assert len(plan.steps_for("products")) == 2

    def test_describe(self, plan: MigrationPlan) -> None:
        description = plan.describe()
        assert description.splitlines() == [
            "Steps (3):",
            "  1. Create table users",
            "  2. Add column sku to products",
            "  3. Drop column old_field from products [destructive]",
        ]

    def test_describe_empty(self) -> None:
        assert MigrationPlan().describe() == "No changes."

    def test_to_dict_is_json_serializable(self, plan: MigrationPlan) -> None:
        data = json.loads(json.dumps(plan.to_dict()))
        assert data["has_changes"] is True
        assert [step["kind"] for step in data["steps"]] == ["create_table", "add_column", "drop_column"]

    def test_len_and_iter(self, plan: MigrationPlan) -> None:
        assert len(plan) == 3
        assert list(plan) == plan.steps

    def test_consumed_once(self) -> None:
        plan = MigrationPlan(steps=[DropTable(name="t")])
        plan.mark_consumed()
        assert plan.consumed
        with pytest.raises(PlanAlreadyConsumedError):
            plan.mark_consumed()
