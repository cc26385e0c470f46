"""Positional placeholder scanning.

Application SQL uses ``?`` placeholders for every backend. Question marks
inside string literals, quoted identifiers and comments are not
placeholders and are left alone.
"""

from __future__ import annotations

import re

# Literals and comments are matched first so that a ``?`` inside them is
# consumed as part of the larger token.
_TOKEN_RE = re.compile(
    r"""
      '(?:[^']|'')*'          # string literal
    | "(?:[^"]|"")*"          # quoted identifier
    | --[^\n]*                # line comment
    | /\*.*?\*/               # block comment
    | \?
    """,
    re.VERBOSE | re.DOTALL,
)

# SQLite also quotes identifiers with [brackets] and `backticks`. PostgreSQL
# uses brackets for array subscripts, so only the SQLite scan skips them.
_SQLITE_TOKEN_RE = re.compile(
    r"""
      '(?:[^']|'')*'          # string literal
    | "(?:[^"]|"")*"          # quoted identifier
    | `(?:[^`]|``)*`          # MySQL-style quoted identifier
    | \[[^\]]*\]              # bracketed identifier
    | --[^\n]*                # line comment
    | /\*.*?\*/               # block comment
    | \?
    """,
    re.VERBOSE | re.DOTALL,
)


def count_placeholders(sql: str, *, sqlite: bool = False) -> int:
    """Return the number of ``?`` placeholders in ``sql``.

    With ``sqlite=True``, bracketed and backtick-quoted identifiers are
    skipped as well.
    """
    pattern = _SQLITE_TOKEN_RE if sqlite else _TOKEN_RE
    return sum(1 for match in pattern.finditer(sql) if match.group() == "?")


def translate_placeholders(sql: str) -> tuple[str, int]:
    """Convert ``?`` placeholders to ``$1, $2, ...`` for PostgreSQL.

    Returns the rewritten SQL and the number of placeholders replaced.
    """
    counter = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal counter
        token = match.group()
        if token != "?":
            return token
        counter += 1
        return f"${counter}"

    return _TOKEN_RE.sub(_replace, sql), counter
