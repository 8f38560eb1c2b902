"""
Parser for declarative PostgreSQL schema files.

Reads ``CREATE TABLE`` statements from DDL text and builds the desired
``SchemaSnapshot``. Only what the schema model represents is kept: column
names, types, nullability, defaults and primary keys. Other column and
table constraints are accepted and ignored; statements other than
``CREATE TABLE`` are skipped.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import replace
from pathlib import Path

from .exceptions import ParseError
from .schema import ColumnDefinition, SchemaSnapshot, TableDefinition
from .types import ColumnType
from .utils import strip_sql_comments

logger = logging.getLogger(__name__)

# Keywords that delimit clauses in a column definition.
_COLUMN_KEYWORDS = [
    "CONSTRAINT",
    "REFERENCES",
    "GENERATED",
    "PRIMARY",
    "DEFAULT",
    "COLLATE",
    "UNIQUE",
    "CHECK",
    "NULL",
    "NOT",
]

# Statements that are valid SQL but carry nothing for the schema model.
_SKIPPABLE_COMMANDS = {
    "alter",
    "analyze",
    "begin",
    "comment",
    "commit",
    "create",
    "delete",
    "do",
    "drop",
    "end",
    "grant",
    "insert",
    "lock",
    "refresh",
    "reset",
    "revoke",
    "rollback",
    "select",
    "set",
    "start",
    "truncate",
    "update",
    "vacuum",
    "with",
}

_CREATE_TABLE_RE = re.compile(r"create\s+(unlogged\s+)?table\s+(?:if\s+not\s+exists\s+)?", re.IGNORECASE)
_UNSUPPORTED_TABLE_RE = re.compile(
    r"create\s+(?:(?:global|local)\s+)?(temp|temporary|foreign)\s+table\b", re.IGNORECASE
)
_TABLE_CONSTRAINT_RE = re.compile(
    r'(?:constraint\s+(?:"(?:[^"]|"")*"|[^\s(]+)\s+)?'
    r"((?:primary\s+key|unique|check|foreign\s+key)\b|exclude(?=\s*(?:using\b|\()))",
    re.IGNORECASE,
)
_TABLE_OPTIONS_RE = re.compile(r"(?:with|without|tablespace|partition|inherits|using)\b", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_$]*")
_DOLLAR_TAG_RE = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")
_WORD_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_$")


def _line_of(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _scan(text: str) -> Iterator[tuple[int, str, int]]:
    """Walk the characters of ``text`` that are outside quoted text.

    Single-quoted literals, double-quoted identifiers and dollar-quoted
    bodies are skipped whole. Yields ``(index, char, depth)`` where depth is
    the parenthesis nesting level the character sits at; a parenthesis
    reports the level outside it.

    Raises:
        ParseError: On unterminated quoted text.
    """
    i = 0
    depth = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if ch in ("'", '"'):
            # A doubled quote is an escape; skipping to the next quote and
            # re-entering has the same effect.
            end = text.find(ch, i + 1)
            if end == -1:
                raise ParseError("Unterminated quoted text", line=_line_of(text, i))
            i = end + 1
            continue

        if ch == "$" and (i == 0 or text[i - 1] not in _WORD_CHARS):
            match = _DOLLAR_TAG_RE.match(text, i)
            if match:
                tag = match.group(0)
                end = text.find(tag, match.end())
                if end == -1:
                    raise ParseError("Unterminated dollar-quoted text", line=_line_of(text, i))
                i = end + len(tag)
                continue

        if ch == ")":
            depth -= 1
        yield i, ch, depth
        if ch == "(":
            depth += 1
        i += 1


def _split_statements(text: str) -> list[tuple[str, int]]:
    """Split text on top-level semicolons.

    Returns:
        List of ``(statement, offset)`` with surrounding whitespace removed;
        the offset points at the first character of the statement.
    """
    statements: list[tuple[str, int]] = []
    start = 0

    def _append(end: int) -> None:
        segment = text[start:end]
        stripped = segment.strip()
        if stripped:
            statements.append((stripped, start + len(segment) - len(segment.lstrip())))

    for i, ch, _depth in _scan(text):
        if ch == ";":
            _append(i)
            start = i + 1
    _append(len(text))
    return statements


def _split_top_level(text: str, base: int) -> list[tuple[str, int]]:
    """Split on commas outside parentheses and quotes, keeping absolute offsets."""
    parts: list[tuple[str, int]] = []
    start = 0

    def _append(end: int) -> None:
        segment = text[start:end]
        parts.append((segment.strip(), base + start + len(segment) - len(segment.lstrip())))

    for i, ch, depth in _scan(text):
        if ch == "," and depth == 0:
            _append(i)
            start = i + 1
    _append(len(text))
    return parts


def _matching_paren(text: str, open_index: int) -> int:
    """Index of the parenthesis closing the one at ``open_index``, or -1."""
    target = None
    for i, ch, depth in _scan(text):
        if i == open_index:
            target = depth
        elif target is not None and ch == ")" and depth == target:
            return i
    return -1


def _read_identifier(text: str, pos: int, line: int | None) -> tuple[str, int]:
    """Read one identifier starting at ``pos`` (leading whitespace allowed).

    Quoted identifiers keep their case; unquoted ones fold to lower case.

    Returns:
        ``(name, end)`` where ``end`` is the index just past the identifier.
    """
    while pos < len(text) and text[pos].isspace():
        pos += 1

    if pos < len(text) and text[pos] == '"':
        chars: list[str] = []
        i = pos + 1
        while i < len(text):
            if text[i] == '"':
                if text.startswith('""', i):
                    chars.append('"')
                    i += 2
                    continue
                if not chars:
                    raise ParseError("Zero-length quoted identifier", line=line)
                return "".join(chars), i + 1
            chars.append(text[i])
            i += 1
        raise ParseError("Unterminated quoted identifier", line=line)

    match = _IDENTIFIER_RE.match(text, pos)
    if not match:
        found = text[pos : pos + 20].strip() or "end of statement"
        raise ParseError(f"Expected an identifier, found {found!r}", line=line)
    return match.group(0).lower(), match.end()


def _read_qualified_name(text: str, pos: int, line: int | None) -> tuple[str, int]:
    """Read ``name`` or ``schema.name``; only the last part is kept."""
    name, pos = _read_identifier(text, pos, line)
    while True:
        rest = pos
        while rest < len(text) and text[rest].isspace():
            rest += 1
        if rest >= len(text) or text[rest] != ".":
            return name, pos
        qualifier = name
        name, pos = _read_identifier(text, rest + 1, line)
        logger.debug("Dropping qualifier %s from table %s", qualifier, name)


def _split_clauses(text: str) -> list[tuple[str | None, str]]:
    """Split a column definition tail into keyword-led clauses.

    The first entry has no keyword and holds the column type. Keywords are
    recognized only outside parentheses and quotes, on word boundaries, so
    expressions such as ``DEFAULT coalesce(NULL, 1)`` stay intact.
    """
    clauses: list[tuple[str | None, str]] = []
    upper = text.upper()
    keyword: str | None = None
    start = 0

    for i, ch, depth in _scan(text):
        if depth != 0 or not ch.isalpha():
            continue
        if i > 0 and text[i - 1] in _WORD_CHARS:
            continue
        for kw in _COLUMN_KEYWORDS:
            end = i + len(kw)
            if upper.startswith(kw, i) and (end == len(text) or text[end] not in _WORD_CHARS):
                clauses.append((keyword, text[start:i].strip()))
                keyword = kw
                start = end
                break

    clauses.append((keyword, text[start:].strip()))
    return clauses


def _ends_with_set(text: str) -> bool:
    words = text.split()
    return bool(words) and words[-1].upper() == "SET"


def parse_column(definition: str, line: int | None = None) -> tuple[ColumnDefinition, bool]:
    """Parse one column definition from inside ``CREATE TABLE (...)``.

    Examples::

        parse_column("id SERIAL PRIMARY KEY")
        parse_column("status VARCHAR(20) NOT NULL DEFAULT 'active'")

    Args:
        definition: Column definition text, without the separating comma.
        line: Line number used in error messages.

    Returns:
        ``(column, is_primary_key)``. Primary key and serial columns are
        always NOT NULL, as PostgreSQL makes them.
    """
    name, pos = _read_identifier(definition, 0, line)
    clauses = _split_clauses(definition[pos:])

    type_text = clauses[0][1]
    if not type_text:
        raise ParseError(f"Column {name} has no type", line=line)
    column_type = ColumnType.parse(type_text)

    nullable = True
    default: str | None = None
    primary = False

    rest = clauses[1:]
    i = 0
    while i < len(rest):
        kw, value = rest[i]
        nxt = rest[i + 1] if i + 1 < len(rest) else None

        if kw == "NOT":
            if not value and nxt is not None and nxt == ("NULL", ""):
                nullable = False
                i += 2
                continue
            if value.upper() != "DEFERRABLE":
                raise ParseError(f"Unexpected 'NOT {value}' in column {name}", line=line)
        elif kw == "NULL":
            if value:
                raise ParseError(f"Unexpected {value!r} after NULL in column {name}", line=line)
            nullable = True
        elif kw == "DEFAULT":
            if not value:
                if nxt is not None and nxt[0] == "NULL" and not nxt[1]:
                    default = None
                    i += 2
                    continue
                raise ParseError(f"DEFAULT without an expression in column {name}", line=line)
            default = value
        elif kw == "PRIMARY":
            if value.upper() != "KEY":
                raise ParseError(f"Expected PRIMARY KEY in column {name}", line=line)
            primary = True
        elif kw == "REFERENCES":
            # ON DELETE SET NULL / SET DEFAULT belong to the reference clause
            tail = value
            while nxt is not None and nxt[0] in ("NULL", "DEFAULT") and _ends_with_set(tail):
                i += 1
                tail = rest[i][1]
                nxt = rest[i + 1] if i + 1 < len(rest) else None
            logger.debug("Ignoring REFERENCES constraint on column %s", name)
        elif kw == "GENERATED":
            logger.warning("Ignoring GENERATED clause on column %s", name)
        else:
            logger.debug("Ignoring %s clause on column %s", kw, name)
        i += 1

    if primary or column_type.is_serial:
        nullable = False

    return ColumnDefinition(name=name, type=column_type, nullable=nullable, default=default), primary


def _parse_key_columns(text: str, offset: int, source: str) -> tuple[str, ...]:
    line = _line_of(source, offset)
    open_index = text.find("(")
    if open_index == -1:
        raise ParseError("Expected a column list after PRIMARY KEY", line=line)
    close_index = _matching_paren(text, open_index)
    if close_index == -1:
        raise ParseError("Unbalanced parentheses in PRIMARY KEY", line=line)

    names: list[str] = []
    for part, part_offset in _split_top_level(text[open_index + 1 : close_index], offset + open_index + 1):
        name, end = _read_identifier(part, 0, _line_of(source, part_offset))
        if part[end:].strip():
            raise ParseError(f"Unexpected {part[end:].strip()!r} in PRIMARY KEY", line=line)
        names.append(name)
    return tuple(names)


def parse_create_table(statement: str, offset: int = 0, source: str | None = None) -> TableDefinition:
    """Parse a single CREATE TABLE statement into a TableDefinition.

    Args:
        statement: Statement text, without the trailing semicolon.
        offset: Position of the statement within ``source``.
        source: Full text the statement came from, for line numbers.

    Raises:
        ParseError: On malformed text, duplicate columns or an invalid
            primary key.
    """
    source = statement if source is None else source
    line = _line_of(source, offset)

    match = _CREATE_TABLE_RE.match(statement)
    if not match:
        raise ParseError("Expected CREATE TABLE", line=line)

    table_name, pos = _read_qualified_name(statement, match.end(), line)
    while pos < len(statement) and statement[pos].isspace():
        pos += 1
    if pos >= len(statement) or statement[pos] != "(":
        raise ParseError(f"Expected '(' after table name {table_name}", line=line)

    close_index = _matching_paren(statement, pos)
    if close_index == -1:
        raise ParseError(f"Unbalanced parentheses in table {table_name}", line=line)

    trailing = statement[close_index + 1 :].strip()
    if trailing:
        if not _TABLE_OPTIONS_RE.match(trailing):
            raise ParseError(
                f"Unexpected {trailing[:30]!r} after table {table_name}",
                line=_line_of(source, offset + close_index + 1),
            )
        logger.debug("Ignoring storage options of table %s", table_name)

    columns: list[ColumnDefinition] = []
    primary_key: tuple[str, ...] = ()
    seen: set[str] = set()
    body = statement[pos + 1 : close_index]
    elements = _split_top_level(body, offset + pos + 1)

    if len(elements) == 1 and not elements[0][0]:
        elements = []

    for element, element_offset in elements:
        element_line = _line_of(source, element_offset)
        if not element:
            raise ParseError(f"Empty element in table {table_name}", line=element_line)

        if element[:4].lower() == "like" and element[4:5].isspace():
            raise ParseError("LIKE clauses are not supported", line=element_line)

        constraint = _TABLE_CONSTRAINT_RE.match(element)
        if constraint:
            if constraint.group(1).lower().startswith("primary"):
                if primary_key:
                    raise ParseError(f"Multiple primary keys for table {table_name}", line=element_line)
                primary_key = _parse_key_columns(element[constraint.end() :], element_offset + constraint.end(), source)
            else:
                logger.debug("Ignoring %s constraint on table %s", constraint.group(1).upper(), table_name)
            continue

        column, is_primary = parse_column(element, line=element_line)
        if column.name in seen:
            raise ParseError(f"Duplicate column {column.name} in table {table_name}", line=element_line)
        seen.add(column.name)
        columns.append(column)
        if is_primary:
            if primary_key:
                raise ParseError(f"Multiple primary keys for table {table_name}", line=element_line)
            primary_key = (column.name,)

    for key_column in primary_key:
        if key_column not in seen:
            raise ParseError(
                f"Primary key column {key_column} does not exist in table {table_name}",
                line=line,
            )
    columns = [replace(c, nullable=False) if c.name in primary_key else c for c in columns]

    return TableDefinition(
        name=table_name,
        columns=tuple(columns),
        primary_key=primary_key,
        unlogged=match.group(1) is not None,
    )


def parse_schema(sql_text: str) -> SchemaSnapshot:
    """Parse declarative DDL text into the desired schema snapshot.

    Tables keep the order in which they are declared.

    Example::

        snapshot = parse_schema('''
            CREATE TABLE users (
                id SERIAL PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                email VARCHAR(255)
            );
        ''')

    Raises:
        ParseError: On malformed text or duplicate tables; the message
            carries the line number.
    """
    text = strip_sql_comments(sql_text)
    tables: list[TableDefinition] = []
    seen: set[str] = set()

    for statement, offset in _split_statements(text):
        if _CREATE_TABLE_RE.match(statement):
            table = parse_create_table(statement, offset, text)
            if table.name in seen:
                raise ParseError(f"Duplicate table {table.name}", line=_line_of(text, offset))
            seen.add(table.name)
            tables.append(table)
            continue

        unsupported = _UNSUPPORTED_TABLE_RE.match(statement)
        if unsupported:
            raise ParseError(
                f"{unsupported.group(1).upper()} tables cannot be declared", line=_line_of(text, offset)
            )

        first_word = statement.split(None, 1)[0].lower()
        if first_word not in _SKIPPABLE_COMMANDS:
            raise ParseError(f"Unrecognized statement starting with {first_word!r}", line=_line_of(text, offset))
        logger.warning(
            "Skipping unsupported statement at line %d: %s",
            _line_of(text, offset),
            " ".join(statement.split()[:3]),
        )

    logger.debug("Parsed %d table(s)", len(tables))
    return SchemaSnapshot.from_tables(tables)


def parse_schema_file(path: Path | str) -> SchemaSnapshot:
    """Read and parse a schema file (UTF-8)."""
    return parse_schema(Path(path).read_text(encoding="utf-8"))


__all__ = ["parse_schema", "parse_schema_file", "parse_create_table", "parse_column"]
