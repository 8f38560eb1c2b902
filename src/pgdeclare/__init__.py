from .config import ConnectionConfig, ExecutorSettings
from .connection import Connection, PostgresConnection
from .differ import generate_migration_plan
from .exceptions import (
    ConcurrentConflictError,
    ConstraintViolationError,
    ErrorKind,
    ExecutionError,
    IntrospectionError,
    LockTimeoutError,
    ParseError,
    PgDeclareError,
    TypeConversionError,
    UnclassifiedExecutionError,
    ValueOverflowError,
)
from .executor import ExecutionReport, ExecutionState, MigrationExecutor
from .inspector import DatabaseInspector
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
from .parser import parse_schema, parse_schema_file
from .plan import MigrationPlan
from .schema import ColumnDefinition, SchemaSnapshot, TableDefinition
from .service import SchemaService
from .types import ColumnType

__version__ = "0.1.0"

__all__ = [
    "ColumnType",
    "ColumnDefinition",
    "TableDefinition",
    "SchemaSnapshot",
    "MigrationStep",
    "CreateTable",
    "DropTable",
    "AddColumn",
    "DropColumn",
    "AlterColumnType",
    "AlterColumnNullability",
    "AlterColumnDefault",
    "MigrationPlan",
    "generate_migration_plan",
    "parse_schema",
    "parse_schema_file",
    "DatabaseInspector",
    "Connection",
    "PostgresConnection",
    "ConnectionConfig",
    "ExecutorSettings",
    "MigrationExecutor",
    "ExecutionReport",
    "ExecutionState",
    "SchemaService",
    "ErrorKind",
    "PgDeclareError",
    "ParseError",
    "IntrospectionError",
    "ExecutionError",
    "TypeConversionError",
    "ValueOverflowError",
    "ConstraintViolationError",
    "LockTimeoutError",
    "ConcurrentConflictError",
    "UnclassifiedExecutionError",
]
