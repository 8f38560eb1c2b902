"""
pgdeclare exceptions.

Custom exception hierarchy for the schema differ, parser, inspector and
migration executor. Execution failures are classified from the SQLSTATE
PostgreSQL reports, so callers branch on the error class (or ``kind``)
instead of matching database message text.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .operations import MigrationStep


class ErrorKind(StrEnum):
    """Kinds of failure surfaced to callers."""

    PARSE = "ParseError"
    INTROSPECTION = "IntrospectionError"
    TYPE_CONVERSION = "TypeConversionError"
    OVERFLOW = "OverflowError"
    CONSTRAINT_VIOLATION = "ConstraintViolationError"
    LOCK_TIMEOUT = "LockTimeoutError"
    CONCURRENT_CONFLICT = "ConcurrentConflictError"
    UNCLASSIFIED = "UnclassifiedExecutionError"


class PgDeclareError(Exception):
    """Base exception for all pgdeclare errors."""

    kind: ErrorKind = ErrorKind.UNCLASSIFIED

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ParseError(PgDeclareError):
    """Raised when desired-schema DDL text is malformed."""

    kind = ErrorKind.PARSE

    def __init__(self, message: str, line: int | None = None):
        self.line = line
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)


class IntrospectionError(PgDeclareError):
    """Raised when the live catalog cannot be read."""

    kind = ErrorKind.INTROSPECTION


class PlanAlreadyConsumedError(PgDeclareError):
    """Raised when a migration plan is handed to the executor a second time."""


class ExecutionError(PgDeclareError):
    """
    Base class for failures while applying a migration plan.

    Raised exactly once per ``execute_plan`` call, after the transaction has
    been rolled back.

    Attributes:
        message: Database-reported message, verbatim.
        sqlstate: Five-character SQLSTATE code if the driver reported one.
        statement: The DDL statement that failed.
        step: The plan step the statement was rendered from.
        detail: Optional DETAIL line reported by the server.
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        sqlstate: str | None = None,
        statement: str | None = None,
        step: MigrationStep | None = None,
        detail: str | None = None,
    ):
        self.sqlstate = sqlstate
        self.statement = statement
        self.step = step
        self.detail = detail
        super().__init__(message)

    def __str__(self) -> str:
        text = self.message
        if self.sqlstate:
            text = f"[{self.sqlstate}] {text}"
        if self.statement:
            text = f"{text} (while executing: {self.statement})"
        return text


class TypeConversionError(ExecutionError):
    """Raised when the database rejects a cast, e.g. non-numeric text into INTEGER."""

    kind = ErrorKind.TYPE_CONVERSION


class ValueOverflowError(ExecutionError):
    """Raised when a value does not fit the narrower target type."""

    kind = ErrorKind.OVERFLOW


class ConstraintViolationError(ExecutionError):
    """Raised when existing data violates a constraint, e.g. NULLs under SET NOT NULL."""

    kind = ErrorKind.CONSTRAINT_VIOLATION


class LockTimeoutError(ExecutionError):
    """Raised when a DDL lock is not acquired within the configured lock timeout.

    Safe to retry once the contending transactions release their locks.
    """

    kind = ErrorKind.LOCK_TIMEOUT
    retryable = True


class ConcurrentConflictError(ExecutionError):
    """Raised when competing concurrent DDL makes this plan fail.

    Covers serialization failures, deadlocks and objects that appeared or
    vanished after the plan was computed. Retry with a freshly computed plan.
    """

    kind = ErrorKind.CONCURRENT_CONFLICT
    retryable = True

    _CONFLICT_PATTERNS = [
        "tuple concurrently updated",
        "could not serialize access",
        "deadlock detected",
        "pg_type_typname_nsp_index",
        "pg_class_relname_nsp_index",
    ]

    @staticmethod
    def is_conflict_error(error: BaseException) -> bool:
        """Check if an exception message denotes a concurrent DDL conflict."""
        msg = str(error).lower()
        return any(p in msg for p in ConcurrentConflictError._CONFLICT_PATTERNS)


class UnclassifiedExecutionError(ExecutionError):
    """Raised for any other database-reported failure, message preserved verbatim."""

    kind = ErrorKind.UNCLASSIFIED


_SQLSTATE_CLASSES: dict[str, type[ExecutionError]] = {
    # data exceptions raised by casts
    "22P02": TypeConversionError,  # invalid_text_representation
    "22018": TypeConversionError,  # invalid_character_value_for_cast
    "42846": TypeConversionError,  # cannot_coerce
    # values that do not fit the target type
    "22003": ValueOverflowError,  # numeric_value_out_of_range
    "22001": ValueOverflowError,  # string_data_right_truncation
    "22008": ValueOverflowError,  # datetime_field_overflow
    # integrity constraints
    "23502": ConstraintViolationError,  # not_null_violation
    "23505": ConstraintViolationError,  # unique_violation
    "23514": ConstraintViolationError,  # check_violation
    "23503": ConstraintViolationError,  # foreign_key_violation
    "23P01": ConstraintViolationError,  # exclusion_violation
    # locking
    "55P03": LockTimeoutError,  # lock_not_available
    # concurrency
    "40001": ConcurrentConflictError,  # serialization_failure
    "40P01": ConcurrentConflictError,  # deadlock_detected
    "42P07": ConcurrentConflictError,  # duplicate_table
    "42701": ConcurrentConflictError,  # duplicate_column
    "42P01": ConcurrentConflictError,  # undefined_table
    "42703": ConcurrentConflictError,  # undefined_column
}

# Fallback for drivers that report no SQLSTATE, checked in order.
_MESSAGE_PATTERNS: dict[type[ExecutionError], tuple[str, ...]] = {
    TypeConversionError: (
        "invalid input syntax for",
        "invalid input value for",
    ),
    ValueOverflowError: (
        "out of range",
        "value too long for type",
        "numeric field overflow",
    ),
    ConstraintViolationError: (
        "contains null values",
        "violates not-null constraint",
        "violates unique constraint",
        "violates check constraint",
        "violates foreign key constraint",
        "violates exclusion constraint",
        "could not create unique index",
    ),
    LockTimeoutError: (
        "due to lock timeout",
        "could not obtain lock",
    ),
}


def _class_from_message(message: str) -> type[ExecutionError]:
    lowered = message.lower()
    for error_class, patterns in _MESSAGE_PATTERNS.items():
        if any(p in lowered for p in patterns):
            return error_class
    return UnclassifiedExecutionError


def _error_sqlstate(error: BaseException) -> str | None:
    sqlstate: Any = getattr(error, "sqlstate", None)
    if isinstance(sqlstate, str) and sqlstate:
        return sqlstate
    return None


def classify_error(
    error: BaseException,
    statement: str | None = None,
    step: MigrationStep | None = None,
) -> ExecutionError:
    """
    Map a driver exception onto the execution error taxonomy.

    Works with any driver exception exposing ``sqlstate`` (asyncpg and
    psycopg both do). Without one, the message is matched against known
    PostgreSQL wording. Catalog unique-index collisions are reported by
    PostgreSQL as unique violations but mean another transaction created the
    same object first, so they are classified as conflicts.

    Args:
        error: Exception raised by the connection.
        statement: DDL statement that was executing.
        step: Plan step the statement belongs to.

    Returns:
        An ``ExecutionError`` subclass instance (not raised).
    """
    if isinstance(error, ExecutionError):
        return error

    sqlstate = _error_sqlstate(error)
    message = getattr(error, "message", None) or str(error)
    detail = getattr(error, "detail", None)

    error_class: type[ExecutionError] = UnclassifiedExecutionError
    if ConcurrentConflictError.is_conflict_error(error):
        error_class = ConcurrentConflictError
    elif sqlstate is not None:
        error_class = _SQLSTATE_CLASSES.get(sqlstate, UnclassifiedExecutionError)
    else:
        error_class = _class_from_message(message)

    return error_class(
        message,
        sqlstate=sqlstate,
        statement=statement,
        step=step,
        detail=detail,
    )


__all__ = [
    "ErrorKind",
    "PgDeclareError",
    "ParseError",
    "IntrospectionError",
    "PlanAlreadyConsumedError",
    "ExecutionError",
    "TypeConversionError",
    "ValueOverflowError",
    "ConstraintViolationError",
    "LockTimeoutError",
    "ConcurrentConflictError",
    "UnclassifiedExecutionError",
    "classify_error",
]
