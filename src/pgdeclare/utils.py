"""
SQL text helpers shared by the parser, inspector and DDL renderers.
"""

import re

# PostgreSQL reserved key words; identifiers spelled like these must be quoted.
RESERVED_WORDS = frozenset(
    """
    all analyse analyze and any array as asc asymmetric both case cast check
    collate column constraint create current_catalog current_date current_role
    current_time current_timestamp current_user default deferrable desc distinct
    do else end except false fetch for foreign from grant group having in
    initially intersect into lateral leading limit localtime localtimestamp not
    null offset on only or order placing primary references returning select
    session_user some symmetric table then to trailing true union unique user
    using variadic when where window with
    """.split()
)

_SIMPLE_IDENTIFIER = re.compile(r"[a-z_][a-z0-9_$]*")

_LITERAL_CAST = re.compile(
    r"^(?P<value>.+?)::\s*[a-z_][a-z0-9_ ]*(?:\(\s*\d+\s*(?:,\s*\d+\s*)?\))?(?:\[\])*$",
    re.IGNORECASE | re.DOTALL,
)
_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def quote_identifier(name: str) -> str:
    """Quote an identifier only when PostgreSQL would otherwise fold or reject it."""
    if _SIMPLE_IDENTIFIER.fullmatch(name) and name not in RESERVED_WORDS:
        return name
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Render a string as a single-quoted SQL literal."""
    return "'" + value.replace("'", "''") + "'"


def _is_quoted_literal(text: str) -> bool:
    if len(text) < 2 or not text.startswith("'") or not text.endswith("'"):
        return False
    # The closing quote must be the first unescaped quote after the opening one.
    i = 1
    while i < len(text):
        if text[i] == "'":
            if i + 1 < len(text) and text[i + 1] == "'":
                i += 2
                continue
            return i == len(text) - 1
        i += 1
    return False


def _wrapped_in_parens(text: str) -> bool:
    """True when the outermost parentheses enclose the whole expression."""
    if not (text.startswith("(") and text.endswith(")")):
        return False
    depth = 0
    in_quote = False
    for i, ch in enumerate(text):
        if ch == "'":
            in_quote = not in_quote
        elif in_quote:
            continue
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0 and i != len(text) - 1:
                return False
    return depth == 0


def _fold_outside_quotes(text: str) -> str:
    """Lower-case and collapse whitespace outside single- and double-quoted segments."""
    out: list[str] = []
    quote: str | None = None
    pending_space = False
    for ch in text:
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            if pending_space and out:
                out.append(" ")
            pending_space = False
            quote = ch
            out.append(ch)
        elif ch.isspace():
            pending_space = True
        else:
            if pending_space and out:
                out.append(" ")
            pending_space = False
            out.append(ch.lower())
    return "".join(out)


def normalize_default(expression: str | None) -> str | None:
    """
    Normalize a column default expression.

    Catalog defaults come back decorated (``'active'::character varying``,
    ``NULL::text``) while declared defaults are written bare. Both sides go
    through this function; the result is still a valid default for the
    column and is what DDL renders:

    - casts on literals are stripped (the literal coerces to the column type)
    - redundant outer parentheses are removed
    - keywords and function names are lower-cased outside quoted text
    - ``NULL`` means no default

    Args:
        expression: Raw default expression, or None.

    Returns:
        Normalized expression, or None when there is no default.
    """
    if expression is None:
        return None

    text = _fold_outside_quotes(expression.strip())

    while True:
        if _wrapped_in_parens(text):
            text = text[1:-1].strip()
            continue
        match = _LITERAL_CAST.match(text)
        if match:
            value = match.group("value").strip()
            if _is_quoted_literal(value) or _NUMBER.fullmatch(value) or value == "null" or _wrapped_in_parens(value):
                text = value
                continue
        break

    if not text or text == "null":
        return None

    return text


def default_compare_key(expression: str | None, numeric: bool = False) -> str | None:
    """
    Comparison form of a default expression.

    On numeric columns a quoted number and the bare number are the same
    default: the catalog reports ``DEFAULT -1`` as ``'-1'::integer``. On
    other columns the quotes matter (``'007'`` is not ``7``).
    """
    text = normalize_default(expression)
    if numeric and text is not None and _is_quoted_literal(text):
        inner = text[1:-1].strip()
        if _NUMBER.fullmatch(inner):
            return inner
    return text


def strip_sql_comments(text: str) -> str:
    """
    Replace ``--`` and ``/* */`` comments with whitespace, keeping newlines
    so that line numbers stay meaningful.
    """
    out: list[str] = []
    i = 0
    quote: str | None = None
    while i < len(text):
        ch = text[i]
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
            i += 1
        elif text.startswith("--", i):
            end = text.find("\n", i)
            if end == -1:
                end = len(text)
            out.append(" " * (end - i))
            i = end
        elif text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = len(text) if end == -1 else end + 2
            out.append("".join(c if c == "\n" else " " for c in text[i:end]))
            i = end
        else:
            out.append(ch)
            i += 1
    return "".join(out)


__all__ = [
    "RESERVED_WORDS",
    "quote_identifier",
    "quote_literal",
    "normalize_default",
    "default_compare_key",
    "strip_sql_comments",
]
