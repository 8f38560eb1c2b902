"""
Schema differ.

Compares a desired schema snapshot against the current one and computes
the ordered steps that transform current into desired. Pure: no I/O, no
state kept between calls, and no judgement on whether a conversion will
succeed; the database decides that at execution time.
"""

import logging

from .operations import (
    AddColumn,
    AlterColumnDefault,
    AlterColumnNullability,
    AlterColumnType,
    CreateTable,
    DropColumn,
    DropTable,
    MigrationStep,
)
from .plan import MigrationPlan
from .schema import ColumnDefinition, SchemaSnapshot, TableDefinition

logger = logging.getLogger(__name__)


def generate_migration_plan(desired: SchemaSnapshot, current: SchemaSnapshot) -> MigrationPlan:
    """
    Compute the steps needed to transform ``current`` into ``desired``.

    Tables are visited in desired order: new tables are created, shared
    tables are diffed column by column. Tables only present in ``current``
    are dropped last, in current order.

    Args:
        desired: The schema the caller wants
        current: The schema the database has

    Returns:
        MigrationPlan, empty when the snapshots are equivalent
    """
    steps: list[MigrationStep] = []

    for table_name, desired_table in desired.items():
        current_table = current.get(table_name)
        if current_table is None:
            steps.append(CreateTable(table=desired_table))
        else:
            steps.extend(diff_table(desired_table, current_table))

    for table_name in current:
        if table_name not in desired:
            steps.append(DropTable(name=table_name))

    logger.debug("Computed %d migration step(s)", len(steps))
    return MigrationPlan(steps=steps)


def diff_table(desired: TableDefinition, current: TableDefinition) -> list[MigrationStep]:
    """
    Compute the column steps for a table present in both snapshots.

    New columns are added in the order they are declared; columns only in
    the current table are dropped afterwards, in their current order.
    Column position alone is never a change.
    """
    steps: list[MigrationStep] = []
    table = desired.name

    for column in desired.columns:
        current_column = current.get_column(column.name)
        if current_column is None:
            steps.append(AddColumn(table=table, column=column))
        elif current_column != column:
            steps.extend(diff_column(table, column, current_column))

    desired_names = set(desired.column_names)
    for column in current.columns:
        if column.name not in desired_names:
            steps.append(DropColumn(table=table, name=column.name))

    return steps


def _default_changed(desired: ColumnDefinition, current: ColumnDefinition) -> bool:
    if desired.default_key != current.default_key:
        return True
    # A serial column carries an implicit sequence default that goes away
    # when it stops being serial.
    return current.type.is_serial and not desired.type.is_serial


def diff_column(table: str, desired: ColumnDefinition, current: ColumnDefinition) -> list[MigrationStep]:
    """
    Compute the alteration steps for a column present in both tables.

    Only attributes that differ produce a step. An existing default is
    dropped before any type change, since it may not cast to the new type,
    and the desired one is set after it. Nullability comes last.
    """
    steps: list[MigrationStep] = []

    to_serial = desired.type.is_serial and not current.type.is_serial
    type_changed = to_serial or desired.type.storage_type() != current.type.storage_type()
    default_changed = _default_changed(desired, current)
    current_has_default = current.default is not None or (current.type.is_serial and not desired.type.is_serial)
    drop_default_first = type_changed and current_has_default

    if drop_default_first:
        steps.append(AlterColumnDefault(table=table, name=desired.name, default=None))

    if type_changed:
        steps.append(
            AlterColumnType(
                table=table,
                name=desired.name,
                from_type=current.type,
                to_type=desired.type,
            )
        )

    # Converting to serial attaches the sequence default itself.
    if not to_serial:
        if desired.default is not None and (default_changed or drop_default_first):
            steps.append(AlterColumnDefault(table=table, name=desired.name, default=desired.default))
        elif default_changed and not drop_default_first:
            steps.append(AlterColumnDefault(table=table, name=desired.name, default=None))

    if desired.nullable != current.nullable:
        steps.append(AlterColumnNullability(table=table, name=desired.name, nullable=desired.nullable))

    return steps


__all__ = ["generate_migration_plan", "diff_table", "diff_column"]
