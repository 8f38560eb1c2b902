"""
High-level plan and apply operations.

``SchemaService`` ties the parser, inspector, differ and executor together
around one database connection per call, the way the command line uses
them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Any

from .config import ConnectionConfig, ExecutorSettings
from .connection import PostgresConnection
from .differ import generate_migration_plan
from .executor import ExecutionReport, MigrationExecutor
from .inspector import DatabaseInspector
from .parser import parse_schema_file
from .plan import MigrationPlan

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[ConnectionConfig], AbstractAsyncContextManager[Any]]


class SchemaService:
    """
    Computes and applies the plan that brings a database to a schema file.

    Usage::

        service = SchemaService(ConnectionConfig.from_env())
        plan = await service.plan("schema.sql")
        report = await service.apply("schema.sql")
    """

    def __init__(
        self,
        config: ConnectionConfig,
        settings: ExecutorSettings | None = None,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            config: Where to connect
            settings: Executor timeouts; defaults when omitted
            connection_factory: Async context manager factory yielding a
                connection for a config; ``PostgresConnection.open`` by default
        """
        self.config = config
        self.settings = settings or ExecutorSettings()
        self._connection_factory = connection_factory or PostgresConnection.open

    async def _compute_plan(self, connection: Any, schema_file: Path | str) -> MigrationPlan:
        desired = parse_schema_file(schema_file)
        current = await DatabaseInspector(connection, schema=self.config.schema).inspect()
        return generate_migration_plan(desired, current)

    async def plan(self, schema_file: Path | str) -> MigrationPlan:
        """
        Compute the plan for a schema file without changing the database.

        Raises:
            ParseError: If the schema file is malformed
            IntrospectionError: If the current schema cannot be read
        """
        logger.info("Analyzing schema changes for %s", schema_file)
        async with self._connection_factory(self.config) as connection:
            plan = await self._compute_plan(connection, schema_file)

        if plan.is_empty:
            logger.info("No changes needed, database is up to date")
        else:
            logger.info("Found %d change(s) to apply", len(plan))
        return plan

    async def apply(
        self,
        schema_file: Path | str,
        confirm: Callable[[MigrationPlan], bool] | None = None,
    ) -> ExecutionReport | None:
        """
        Compute and apply the plan for a schema file.

        Inspection and execution share one connection. The plan is
        computed immediately before execution; when the schema changes in
        between, execution fails with ``ConcurrentConflictError`` or
        ``LockTimeoutError`` and nothing is applied.

        Args:
            schema_file: Desired schema file
            confirm: Called in a worker thread with the plan before applying
                it; returning False aborts without touching the database

        Returns:
            ExecutionReport, or None when ``confirm`` declined

        Raises:
            ParseError, IntrospectionError, or an ExecutionError subclass
        """
        logger.info("Applying schema changes from %s", schema_file)
        async with self._connection_factory(self.config) as connection:
            plan = await self._compute_plan(connection, schema_file)

            # A prompt blocks on stdin, so it runs off the event loop.
            if plan.has_changes and confirm is not None and not await asyncio.to_thread(confirm, plan):
                logger.info("Apply cancelled by user")
                return None

            executor = MigrationExecutor(self.settings)
            return await executor.execute_plan(connection, plan)


__all__ = ["SchemaService"]
