"""
CLI commands for pgdeclare.

Uses click for command-line argument parsing.
"""

import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import Any

import click
from pydantic import ValidationError

from ..config import DEFAULT_LOCK_TIMEOUT_MS, ConnectionConfig, ExecutorSettings
from ..exceptions import PgDeclareError
from ..plan import MigrationPlan
from ..service import SchemaService


def run_async(coro: Any) -> Any:
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def _build_service(ctx: click.Context, settings: ExecutorSettings | None = None) -> SchemaService:
    database_url = ctx.obj["database_url"]
    schema = ctx.obj["schema"]
    if database_url:
        config = ConnectionConfig.from_dsn(database_url, schema=schema)
    else:
        config = replace(ConnectionConfig.from_env(), schema=schema)
    return SchemaService(config, settings, connection_factory=ctx.obj.get("connection_factory"))


def _echo_plan(plan: MigrationPlan) -> None:
    click.echo(f"Found {len(plan)} change(s) to apply:")
    for i, statement in enumerate(plan.statements(), 1):
        click.echo(f"  {i}. {statement}")
    if plan.is_destructive:
        click.secho(
            f"Warning: {len(plan.destructive_steps)} step(s) will drop existing data.",
            fg="yellow",
        )


def _fail(prefix: str, error: Exception) -> None:
    if isinstance(error, PgDeclareError):
        click.echo(f"{prefix}: {error.kind}: {error}", err=True)
    else:
        click.echo(f"{prefix}: {error}", err=True)
    sys.exit(1)


@click.group()
@click.option(
    "--database-url",
    "-d",
    envvar="DATABASE_URL",
    help="PostgreSQL URL; falls back to the PG* environment variables",
)
@click.option(
    "--schema",
    "-s",
    envvar="PGDECLARE_SCHEMA",
    default="public",
    show_default=True,
    help="Schema to reconcile",
)
@click.option("--verbose", "-v", is_flag=True, help="Log each executed statement")
@click.pass_context
def cli(ctx: click.Context, database_url: str | None, schema: str, verbose: bool) -> None:
    """Declarative schema management for PostgreSQL."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["database_url"] = database_url
    ctx.obj["schema"] = schema


@cli.command()
@click.option(
    "--file",
    "-f",
    "schema_file",
    default="schema.sql",
    show_default=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Desired schema file",
)
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON")
@click.pass_context
def plan(ctx: click.Context, schema_file: str, as_json: bool) -> None:
    """Show the changes needed to match the schema file."""
    try:
        service = _build_service(ctx)
        migration_plan = run_async(service.plan(schema_file))
    except Exception as e:
        _fail("Plan failed", e)
        return

    if as_json:
        click.echo(json.dumps(migration_plan.to_dict(), indent=2))
    elif migration_plan.is_empty:
        click.echo("No changes needed - database is up to date.")
    else:
        _echo_plan(migration_plan)


@cli.command()
@click.option(
    "--file",
    "-f",
    "schema_file",
    default="schema.sql",
    show_default=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Desired schema file",
)
@click.option(
    "--lock-timeout",
    envvar="PGDECLARE_LOCK_TIMEOUT",
    default=f"{DEFAULT_LOCK_TIMEOUT_MS}ms",
    show_default=True,
    help="Longest wait for a table lock, e.g. 5s or 500ms",
)
@click.option(
    "--statement-timeout",
    envvar="PGDECLARE_STATEMENT_TIMEOUT",
    default=None,
    help="Longest run time per statement, e.g. 30s",
)
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation")
@click.pass_context
def apply(
    ctx: click.Context,
    schema_file: str,
    lock_timeout: str,
    statement_timeout: str | None,
    yes: bool,
) -> None:
    """Apply the changes needed to match the schema file."""
    try:
        settings = ExecutorSettings(
            lock_timeout_ms=lock_timeout,
            statement_timeout_ms=statement_timeout,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e.errors()[0]["msg"]), param_hint="timeout") from e

    def confirm(migration_plan: MigrationPlan) -> bool:
        _echo_plan(migration_plan)
        return yes or click.confirm("Apply these changes?", default=False)

    try:
        service = _build_service(ctx, settings)
        report = run_async(service.apply(schema_file, confirm=confirm))
    except Exception as e:
        _fail("Apply failed", e)
        return

    if report is None:
        click.echo("Aborted.")
    elif not report.statements:
        click.echo("No changes needed - database is up to date.")
    else:
        click.echo(f"Applied {len(report.statements)} change(s) in {report.duration:.2f}s.")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
