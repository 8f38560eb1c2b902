"""
Type definitions for pgdeclare.

This module contains the canonical representation of PostgreSQL column
types used throughout the differ and executor, the type categories that
drive ``USING`` clause generation, and the boolean token law applied when
text columns are converted to BOOLEAN.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from .exceptions import TypeConversionError


class TypeCategory(StrEnum):
    """
    Coarse classification of column types for conversion decisions.

    - STRING: character varying, character, text
    - INTEGER: smallint, integer, bigint and the serial pseudo-types
    - NUMERIC: numeric, real, double precision, money
    - BOOLEAN: boolean
    - TEMPORAL: date, time, timestamp, interval
    - OTHER: everything else, including arrays
    """

    STRING = "string"
    INTEGER = "integer"
    NUMERIC = "numeric"
    BOOLEAN = "boolean"
    TEMPORAL = "temporal"
    OTHER = "other"


# Declared spelling -> canonical (format_type) spelling.
_ALIASES: dict[str, str] = {
    "int": "integer",
    "int4": "integer",
    "integer": "integer",
    "smallint": "smallint",
    "int2": "smallint",
    "bigint": "bigint",
    "int8": "bigint",
    "serial": "serial",
    "serial4": "serial",
    "bigserial": "bigserial",
    "serial8": "bigserial",
    "smallserial": "smallserial",
    "serial2": "smallserial",
    "decimal": "numeric",
    "numeric": "numeric",
    "real": "real",
    "float4": "real",
    "double precision": "double precision",
    "float8": "double precision",
    "float": "double precision",
    "money": "money",
    "bool": "boolean",
    "boolean": "boolean",
    "varchar": "character varying",
    "character varying": "character varying",
    "char": "character",
    "character": "character",
    "bpchar": "character",
    "text": "text",
    "date": "date",
    "interval": "interval",
    "timestamptz": "timestamp with time zone",
    "timetz": "time with time zone",
    "uuid": "uuid",
    "json": "json",
    "jsonb": "jsonb",
    "bytea": "bytea",
    "inet": "inet",
    "cidr": "cidr",
    "macaddr": "macaddr",
    "xml": "xml",
}

_CATEGORIES: dict[str, TypeCategory] = {
    "character varying": TypeCategory.STRING,
    "character": TypeCategory.STRING,
    "text": TypeCategory.STRING,
    "smallint": TypeCategory.INTEGER,
    "integer": TypeCategory.INTEGER,
    "bigint": TypeCategory.INTEGER,
    "smallserial": TypeCategory.INTEGER,
    "serial": TypeCategory.INTEGER,
    "bigserial": TypeCategory.INTEGER,
    "numeric": TypeCategory.NUMERIC,
    "real": TypeCategory.NUMERIC,
    "double precision": TypeCategory.NUMERIC,
    "money": TypeCategory.NUMERIC,
    "boolean": TypeCategory.BOOLEAN,
    "date": TypeCategory.TEMPORAL,
    "interval": TypeCategory.TEMPORAL,
    "time without time zone": TypeCategory.TEMPORAL,
    "time with time zone": TypeCategory.TEMPORAL,
    "timestamp without time zone": TypeCategory.TEMPORAL,
    "timestamp with time zone": TypeCategory.TEMPORAL,
}

# Serial pseudo-type -> the integer type backing it.
SERIAL_STORAGE: dict[str, str] = {
    "smallserial": "smallint",
    "serial": "integer",
    "bigserial": "bigint",
}

_INTEGER_TO_SERIAL = {storage: serial for serial, storage in SERIAL_STORAGE.items()}

# Canonical spelling -> conventional DDL spelling.
_DDL_NAMES: dict[str, str] = {
    "character varying": "VARCHAR",
    "character": "CHAR",
    "timestamp without time zone": "TIMESTAMP",
    "timestamp with time zone": "TIMESTAMPTZ",
    "time without time zone": "TIME",
    "time with time zone": "TIMETZ",
}

_LENGTH_TYPES = {"character varying", "character", "bit", "bit varying"}

_TIME_RE = re.compile(r"(timestamp|time)\s*(?:\(\s*(\d+)\s*\))?\s*(with time zone|without time zone)?")
_TYPE_RE = re.compile(r"([a-z_][a-z0-9_ .\"]*?)\s*(?:\(\s*(\d+)\s*(?:,\s*(-?\d+)\s*)?\))?")


@dataclass(frozen=True)
class ColumnType:
    """
    Canonical PostgreSQL column type.

    Equivalent spellings compare equal: ``VARCHAR(255)`` declared in schema
    text and ``character varying(255)`` read from the catalog both parse to
    ``ColumnType("character varying", length=255)``.

    Attributes:
        name: Canonical type name as ``format_type`` spells it, or one of the
              serial pseudo-types (serial, bigserial, smallserial)
        length: Length for character and bit types
        precision: Precision for numeric, time and timestamp types
        scale: Scale for numeric types
        array: Whether the column holds an array of this type
    """

    name: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    array: bool = False

    @classmethod
    def parse(cls, text: str) -> ColumnType:
        """
        Parse a declared or catalog type spelling.

        Examples::

            ColumnType.parse("VARCHAR(255)")
            ColumnType.parse("numeric(10,2)")
            ColumnType.parse("timestamp(3) with time zone")
            ColumnType.parse("INTEGER[]")

        Unrecognized types (enums, domains, extension types) are kept by
        lower-cased name so that they still compare equal to themselves.
        """
        spelled = " ".join(text.strip().split()).lower()
        if not spelled:
            raise ValueError("Empty column type")

        array = False
        while spelled.endswith("[]"):
            spelled = spelled[:-2].rstrip()
            array = True
        if spelled.endswith(" array"):
            spelled = spelled[: -len(" array")].rstrip()
            array = True

        match = _TIME_RE.fullmatch(spelled)
        if match:
            base, precision, zone = match.groups()
            return cls(
                name=f"{base} {zone or 'without time zone'}",
                precision=int(precision) if precision is not None else None,
                array=array,
            )

        match = _TYPE_RE.fullmatch(spelled)
        if not match:
            return cls(name=spelled, array=array)

        base = match.group(1).strip()
        first = int(match.group(2)) if match.group(2) is not None else None
        second = int(match.group(3)) if match.group(3) is not None else None
        name = _ALIASES.get(base, base)

        if base == "float" and first is not None:
            name = "real" if first <= 24 else "double precision"
            return cls(name=name, array=array)

        if name in _LENGTH_TYPES:
            if first is None and name == "character":
                first = 1
            return cls(name=name, length=first, array=array)

        if name == "numeric":
            if first is not None and second is None:
                second = 0
            return cls(name=name, precision=first, scale=second, array=array)

        return cls(name=name, precision=first, scale=second, array=array)

    @property
    def category(self) -> TypeCategory:
        """Conversion category; arrays always fall in OTHER."""
        if self.array:
            return TypeCategory.OTHER
        return _CATEGORIES.get(self.name, TypeCategory.OTHER)

    @property
    def is_serial(self) -> bool:
        return self.name in SERIAL_STORAGE and not self.array

    def storage_type(self) -> ColumnType:
        """The type actually stored; serial pseudo-types map to their integer type."""
        if self.is_serial:
            return ColumnType(name=SERIAL_STORAGE[self.name])
        return self

    def as_serial(self) -> ColumnType:
        """The serial pseudo-type backed by this integer type, or self."""
        serial = _INTEGER_TO_SERIAL.get(self.name)
        if serial is None or self.array:
            return self
        return ColumnType(name=serial)

    def to_sql(self) -> str:
        """Render the conventional DDL spelling, e.g. ``VARCHAR(255)``."""
        base = _DDL_NAMES.get(self.name, self.name.upper())

        if self.length is not None:
            rendered = f"{base}({self.length})"
        elif self.precision is not None and self.scale is not None:
            rendered = f"{base}({self.precision},{self.scale})"
        elif self.precision is not None:
            rendered = f"{base}({self.precision})"
        else:
            rendered = base

        if self.array:
            rendered += "[]"
        return rendered

    def __str__(self) -> str:
        return self.to_sql()


# Boolean token law: text accepted when converting a string column to BOOLEAN.
# Matching is case-insensitive after trimming surrounding whitespace.
TRUE_TOKENS: tuple[str, ...] = ("t", "true", "1", "yes", "y", "on")
FALSE_TOKENS: tuple[str, ...] = ("f", "false", "0", "no", "n", "off")


def parse_boolean_token(text: str) -> bool:
    """
    Convert a text token to a boolean following the boolean token law.

    Args:
        text: Token such as ``"TRUE"``, ``"y"``, ``"Off"`` or ``"0"``

    Returns:
        The boolean the token denotes.

    Raises:
        TypeConversionError: If the token is not in either token set.
    """
    token = text.strip().lower()
    if token in TRUE_TOKENS:
        return True
    if token in FALSE_TOKENS:
        return False
    raise TypeConversionError(
        f'invalid input syntax for type boolean: "{text}"',
        sqlstate="22P02",
    )


__all__ = [
    "TypeCategory",
    "ColumnType",
    "SERIAL_STORAGE",
    "TRUE_TOKENS",
    "FALSE_TOKENS",
    "parse_boolean_token",
]
