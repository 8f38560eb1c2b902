"""
Connection capability used by the migration executor and the inspector.

The executor only needs to run statements, control one transaction and
bound lock waits. ``Connection`` spells that out as a protocol so tests
and other drivers can stand in; ``PostgresConnection`` implements it on
top of asyncpg.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable

import asyncpg
from asyncpg.transaction import Transaction

from .config import ConnectionConfig
from .utils import quote_identifier

logger = logging.getLogger(__name__)


@runtime_checkable
class Connection(Protocol):
    """Minimal capability set the migration executor requires."""

    async def execute(self, statement: str) -> None:
        """Execute a single statement."""
        ...

    async def begin(self) -> None:
        """Open a transaction."""
        ...

    async def commit(self) -> None:
        """Commit the open transaction."""
        ...

    async def rollback(self) -> None:
        """Roll back the open transaction."""
        ...

    async def set_lock_timeout(self, timeout_ms: int) -> None:
        """Bound lock waits for the rest of the open transaction."""
        ...

    async def set_statement_timeout(self, timeout_ms: int) -> None:
        """Bound statement run time for the rest of the open transaction."""
        ...


class PostgresConnection:
    """
    asyncpg-backed implementation of the ``Connection`` protocol.

    Timeouts are applied with ``SET LOCAL`` so they end with the
    transaction and leave the session as it was found.

    Usage::

        async with PostgresConnection.open(config) as conn:
            snapshot = await DatabaseInspector(conn).inspect()

    Or wrapping a connection obtained elsewhere::

        conn = PostgresConnection(await asyncpg.connect(dsn))
    """

    def __init__(self, connection: asyncpg.Connection):
        self._connection = connection
        self._transaction: Transaction | None = None

    @classmethod
    async def connect(cls, config: ConnectionConfig) -> PostgresConnection:
        """Open a new connection from configuration."""
        # Generated DDL is unqualified, so it lands in the configured schema.
        raw = await asyncpg.connect(
            dsn=config.dsn,
            timeout=config.connect_timeout,
            server_settings={"search_path": quote_identifier(config.schema)},
        )
        logger.info("Connected to PostgreSQL at %s", config.safe_dsn)
        return cls(raw)

    @classmethod
    @asynccontextmanager
    async def open(cls, config: ConnectionConfig) -> AsyncIterator[PostgresConnection]:
        """Open a connection for the duration of a block, closing it afterwards."""
        conn = await cls.connect(config)
        try:
            yield conn
        finally:
            await conn.close()

    @property
    def raw(self) -> asyncpg.Connection:
        """The underlying asyncpg connection."""
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    async def execute(self, statement: str) -> None:
        await self._connection.execute(statement)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        return await self._connection.fetch(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._connection.fetchval(query, *args)

    async def begin(self) -> None:
        if self._transaction is not None:
            raise RuntimeError("A transaction is already open on this connection")
        transaction = self._connection.transaction()
        await transaction.start()
        self._transaction = transaction

    async def commit(self) -> None:
        if self._transaction is None:
            raise RuntimeError("No transaction to commit")
        transaction, self._transaction = self._transaction, None
        await transaction.commit()

    async def rollback(self) -> None:
        if self._transaction is None:
            return
        transaction, self._transaction = self._transaction, None
        await transaction.rollback()

    async def set_lock_timeout(self, timeout_ms: int) -> None:
        await self._connection.execute(f"SET LOCAL lock_timeout = '{int(timeout_ms)}ms'")

    async def set_statement_timeout(self, timeout_ms: int) -> None:
        await self._connection.execute(f"SET LOCAL statement_timeout = '{int(timeout_ms)}ms'")

    async def close(self) -> None:
        if not self._connection.is_closed():
            await self._connection.close()


__all__ = ["Connection", "PostgresConnection"]
