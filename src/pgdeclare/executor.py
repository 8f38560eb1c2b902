"""
Migration executor for applying a plan to the database.

This module handles:
- Running every step of a plan inside one transaction
- Bounding lock waits with a transaction-local lock timeout
- Rolling back on any failure or cancellation
- Classifying database failures into the execution error taxonomy
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum

from .config import ExecutorSettings
from .connection import Connection
from .exceptions import ExecutionError, classify_error
from .operations import MigrationStep
from .plan import MigrationPlan

logger = logging.getLogger(__name__)


class ExecutionState(StrEnum):
    """Lifecycle of a single plan execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass
class ExecutionReport:
    """
    Outcome of an ``execute_plan`` call.

    Attributes:
        state: Final execution state
        statements: Statements that were executed, in order
        duration: Wall-clock seconds spent, including commit or rollback
    """

    state: ExecutionState = ExecutionState.PENDING
    statements: list[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def committed(self) -> bool:
        return self.state is ExecutionState.COMMITTED


class MigrationExecutor:
    """
    Applies migration plans against a database connection.

    A plan runs all-or-nothing: either every step commits together or the
    transaction is rolled back and exactly one error propagates. The
    executor takes no locks of its own and never retries.

    Example:
        executor = MigrationExecutor(ExecutorSettings(lock_timeout_ms="2s"))
        report = await executor.execute_plan(connection, plan)
    """

    def __init__(self, settings: ExecutorSettings | None = None):
        """
        Initialize the executor.

        Args:
            settings: Lock and statement timeouts; defaults when omitted
        """
        self.settings = settings or ExecutorSettings()
        self.last_report: ExecutionReport | None = None

    async def execute_plan(self, connection: Connection, plan: MigrationPlan) -> ExecutionReport:
        """
        Apply a migration plan in a single transaction.

        Args:
            connection: Connection exclusively owned by this call
            plan: Plan to apply; consumed by this call

        Returns:
            ExecutionReport with state COMMITTED

        Raises:
            ExecutionError: A subclass matching the database failure, after
                the transaction has been rolled back
            PlanAlreadyConsumedError: If the plan was executed before
            asyncio.CancelledError: Re-raised after rolling back
        """
        plan.mark_consumed()
        report = ExecutionReport()
        self.last_report = report

        if plan.is_empty:
            logger.info("Plan has no steps, nothing to apply")
            report.state = ExecutionState.COMMITTED
            return report

        started = time.monotonic()
        report.state = ExecutionState.RUNNING
        logger.info("Applying %d migration step(s)", len(plan))

        step: MigrationStep | None = None
        statement: str | None = None
        try:
            await connection.begin()
            await connection.set_lock_timeout(self.settings.lock_timeout_ms)
            if self.settings.statement_timeout_ms is not None:
                await connection.set_statement_timeout(self.settings.statement_timeout_ms)

            for step in plan.steps:
                statement = step.to_sql()
                logger.debug("Executing: %s", statement)
                await connection.execute(statement)
                report.statements.append(statement)

            statement = None
            step = None
            await connection.commit()
        except asyncio.CancelledError:
            logger.warning("Migration cancelled, rolling back")
            await self._rollback(connection, report, started)
            raise
        except Exception as e:
            await self._rollback(connection, report, started)
            if not _is_database_error(e):
                raise
            error = classify_error(e, statement=statement, step=step)
            logger.error("Migration failed (%s): %s", error.kind, error)
            if error is e:
                raise
            raise error from e

        report.state = ExecutionState.COMMITTED
        report.duration = time.monotonic() - started
        logger.info(
            "Applied %d statement(s) in %.3fs",
            len(report.statements),
            report.duration,
        )
        return report

    async def _rollback(self, connection: Connection, report: ExecutionReport, started: float) -> None:
        # Shielded so a cancelled caller still leaves no open transaction behind.
        try:
            await asyncio.shield(connection.rollback())
        except Exception:
            # The server discards an unfinished transaction when the session
            # drops, so the original failure is still the one to report.
            logger.exception("Rollback failed")
        finally:
            report.state = ExecutionState.ROLLED_BACK
            report.duration = time.monotonic() - started
        logger.warning("Rolled back after %d statement(s)", len(report.statements))


def _is_database_error(error: BaseException) -> bool:
    """Whether an exception was reported by the database rather than raised locally."""
    if isinstance(error, ExecutionError) or getattr(error, "sqlstate", None):
        return True
    module = type(error).__module__ or ""
    return module.startswith(("asyncpg", "psycopg"))


__all__ = ["ExecutionState", "ExecutionReport", "MigrationExecutor"]
