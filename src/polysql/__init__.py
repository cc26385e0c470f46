"""polysql: one Connection/Statement API over SQLite and PostgreSQL."""

from polysql.db import Connection, FieldView, Statement, scoped_reset
from polysql.errors import (
    ConnectionStateError,
    DatabaseError,
    ParameterIndexError,
    ParameterTypeError,
    PostgresError,
    ProgrammingError,
    SqlError,
    SQLiteError,
    StatementStateError,
    UnknownDriverError,
    UnsupportedTypeError,
)
from polysql.models import Column, ColumnType, OpenParams

__all__ = [
    "Column",
    "ColumnType",
    "Connection",
    "ConnectionStateError",
    "DatabaseError",
    "FieldView",
    "OpenParams",
    "ParameterIndexError",
    "ParameterTypeError",
    "PostgresError",
    "ProgrammingError",
    "SQLiteError",
    "SqlError",
    "Statement",
    "StatementStateError",
    "UnknownDriverError",
    "UnsupportedTypeError",
    "scoped_reset",
]
