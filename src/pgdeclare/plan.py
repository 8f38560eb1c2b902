"""
Migration plan: the ordered list of steps that turns the current schema
into the desired one.

A plan is produced by the differ and consumed exactly once by the
migration executor. Rendering it to SQL for a dry-run preview has no side
effects and does not consume it.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .exceptions import PlanAlreadyConsumedError
from .operations import MigrationStep


@dataclass
class MigrationPlan:
    """
    Represents an ordered sequence of migration steps.

    Steps against one table keep their relative order; steps against
    unrelated tables are independent of one another.

    Attributes:
        steps: Steps to apply, in order
        created_at: Timestamp when the plan was computed

    Example:
        plan = MigrationPlan(
            steps=[
                CreateTable(table=users),
                DropColumn(table="products", name="old_field"),
            ],
        )
        for statement in plan.statements():
            print(statement)
    """

    steps: list[MigrationStep] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    _consumed: bool = field(default=False, init=False, repr=False, compare=False)

    def statements(self) -> list[str]:
        """
        Render the plan as the literal DDL statements it represents.

        Returns:
            One statement per step, in plan order
        """
        return [step.to_sql() for step in self.steps]

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def has_changes(self) -> bool:
        return bool(self.steps)

    @property
    def is_destructive(self) -> bool:
        """
        Check if any step discards existing data.

        Returns:
            True if the plan drops a table or a column
        """
        return any(step.destructive for step in self.steps)

    @property
    def destructive_steps(self) -> list[MigrationStep]:
        return [step for step in self.steps if step.destructive]

    @property
    def tables(self) -> list[str]:
        """Names of the tables the plan touches, in order of first appearance."""
        seen: dict[str, None] = {}
        for step in self.steps:
            seen.setdefault(step.table_name, None)
        return list(seen)

    def steps_for(self, table: str) -> list[MigrationStep]:
        """Steps acting on one table, in plan order."""
        return [step for step in self.steps if step.table_name == table]

    @property
    def consumed(self) -> bool:
        return self._consumed

    def mark_consumed(self) -> None:
        """
        Record that the executor has taken this plan.

        Raises:
            PlanAlreadyConsumedError: If the plan was already executed
        """
        if self._consumed:
            raise PlanAlreadyConsumedError(
                "Migration plan was already executed; compute a fresh plan from a new snapshot"
            )
        self._consumed = True

    def describe(self) -> str:
        """
        Get a human-readable description of this plan.

        Returns:
            Multi-line string describing all steps
        """
        if not self.steps:
            return "No changes."
        lines = [f"Steps ({len(self.steps)}):"]
        for i, step in enumerate(self.steps, 1):
            marker = " [destructive]" if step.destructive else ""
            lines.append(f"  {i}. {step.describe()}{marker}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "has_changes": self.has_changes,
            "steps": [step.to_dict() for step in self.steps],
        }

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[MigrationStep]:
        return iter(self.steps)

    def __repr__(self) -> str:
        return f"MigrationPlan(steps={len(self.steps)})"


__all__ = ["MigrationPlan"]
