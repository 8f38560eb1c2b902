"""
Pytest configuration for pgdeclare tests.

This module manages the PostgreSQL test container lifecycle:
- Checks if PostgreSQL is already reachable
- Starts the compose service if needed before integration tests
- Stops it after tests only if we started it

Shared connection constants are defined here so every test file can import them
instead of hardcoding hosts, credentials, and ports. Each integration test gets
its own throwaway schema.
"""

import os
import socket
import subprocess
import time
import uuid
from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass, replace
from typing import Any

import pytest

from pgdeclare.config import ConnectionConfig
from pgdeclare.connection import PostgresConnection
from pgdeclare.inspector import DatabaseInspector
from pgdeclare.schema import SchemaSnapshot

# ---------------------------------------------------------------------------
# Shared connection constants (import these in test files)
# ---------------------------------------------------------------------------
PG_HOST = os.getenv("PGDECLARE_TEST_HOST", "localhost")
PG_PORT = int(os.getenv("PGDECLARE_TEST_PORT", "5432"))
PG_USER = os.getenv("PGDECLARE_TEST_USER", "postgres")
PG_PASSWORD = os.getenv("PGDECLARE_TEST_PASSWORD", "postgres")
PG_DATABASE = os.getenv("PGDECLARE_TEST_DATABASE", "pgdeclare_test")

TEST_CONFIG = ConnectionConfig(
    host=PG_HOST,
    port=PG_PORT,
    user=PG_USER,
    password=PG_PASSWORD,
    database=PG_DATABASE,
)

# Container configuration
COMPOSE_FILE = "devops/docker-compose.yml"
COMPOSE_SERVICE = "postgres"
HEALTH_CHECK_TIMEOUT = 30  # seconds
SKIP_CONTAINER = os.getenv("PGDECLARE_SKIP_CONTAINER", "").lower() in ("1", "true", "yes")


def is_port_responding(host: str = PG_HOST, port: int = PG_PORT) -> bool:
    """Check if the PostgreSQL port is responding (basic TCP check)."""
    try:
        with socket.create_connection((host, port), timeout=2):
            return True
    except OSError:
        return False


def start_container() -> bool:
    """Start the PostgreSQL test container."""
    try:
        result = subprocess.run(
            ["docker", "compose", "-f", COMPOSE_FILE, "up", "-d", "--wait", COMPOSE_SERVICE],
            capture_output=True,
            text=True,
            timeout=90,
        )
        if result.returncode != 0:
            print(f"Failed to start container: {result.stderr}")
            return False

        start_time = time.time()
        while time.time() - start_time < HEALTH_CHECK_TIMEOUT:
            if is_port_responding():
                return True
            time.sleep(0.5)

        print(f"Container did not become reachable within {HEALTH_CHECK_TIMEOUT}s")
        return False
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        print(f"Failed to start container: {e}")
        return False


def stop_container() -> None:
    """Stop the PostgreSQL test container."""
    try:
        subprocess.run(
            ["docker", "compose", "-f", COMPOSE_FILE, "stop", COMPOSE_SERVICE],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError):
        pass


# Track if we started the container (so we know whether to stop it)
_container_started_by_tests = False


def pytest_configure(config: pytest.Config) -> None:
    """
    Start the PostgreSQL container if integration tests are selected and
    nothing is listening on the test port yet.
    """
    global _container_started_by_tests

    markers = config.getoption("-m", default="")
    if not markers or "not integration" in markers:
        # Integration tests are opt-in; they skip when no server is reachable.
        return

    if SKIP_CONTAINER:
        print(f"\n[conftest] PGDECLARE_SKIP_CONTAINER set, skipping container management (port {PG_PORT})")
        return

    if is_port_responding():
        print(f"\n[conftest] PostgreSQL already reachable on port {PG_PORT}")
        return

    print(f"\n[conftest] Starting PostgreSQL container on port {PG_PORT}...")
    if start_container():
        print("[conftest] PostgreSQL container started successfully")
        _container_started_by_tests = True
    else:
        print("[conftest] WARNING: Could not start PostgreSQL container. Integration tests will be skipped.")


def pytest_unconfigure(config: pytest.Config) -> None:
    """Stop the PostgreSQL container only if we started it."""
    global _container_started_by_tests

    if _container_started_by_tests:
        print("\n[conftest] Stopping PostgreSQL container (started by tests)...")
        stop_container()
        _container_started_by_tests = False


@pytest.fixture(scope="session")
def postgres_available() -> Generator[bool, None, None]:
    """
    Session-scoped fixture that indicates if PostgreSQL is reachable.

        def test_something(postgres_available):
            if not postgres_available:
                pytest.skip("PostgreSQL not available")
    """
    yield is_port_responding()


@dataclass
class PgTestContext:
    """A live connection whose search_path points at a throwaway schema."""

    connection: PostgresConnection
    schema: str

    async def inspect(self) -> SchemaSnapshot:
        return await DatabaseInspector(self.connection, schema=self.schema).inspect()

    async def fetch(self, query: str, *args: Any) -> list[Any]:
        return await self.connection.fetch(query, *args)

    async def open_peer(self) -> PostgresConnection:
        """Open a second connection on the same schema."""
        return await PostgresConnection.connect(replace(TEST_CONFIG, schema=self.schema))


@pytest.fixture
async def pg(postgres_available: bool) -> AsyncGenerator[PgTestContext, None]:
    """Connection on a fresh schema, dropped after the test."""
    if not postgres_available:
        pytest.skip("PostgreSQL not available")

    try:
        connection = await PostgresConnection.connect(TEST_CONFIG)
    except Exception as e:
        pytest.skip(f"Cannot connect to PostgreSQL: {e}")

    schema = f"pgdeclare_test_{uuid.uuid4().hex[:12]}"
    await connection.execute(f"CREATE SCHEMA {schema}")
    await connection.execute(f"SET search_path TO {schema}")
    try:
        yield PgTestContext(connection=connection, schema=schema)
    finally:
        await connection.rollback()
        await connection.execute(f"DROP SCHEMA {schema} CASCADE")
        await connection.close()
