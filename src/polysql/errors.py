"""Exception hierarchy.

Two families: ``DatabaseError`` for failures reported by a backend (they
carry the backend's own message and may be worth handling), and
``ProgrammingError`` for misuse of the API (unknown driver, statements used
out of order, mismatched parameter types). The latter indicate a bug in the
caller and are not meant to be recovered from.
"""

from __future__ import annotations


class SqlError(Exception):
    """Base class for every polysql error."""

    code: str = "SQL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class DatabaseError(SqlError):
    """A backend call failed."""

    code = "DATABASE_ERROR"


class SQLiteError(DatabaseError):
    """SQLite reported an error."""

    code = "SQLITE_ERROR"


class PostgresError(DatabaseError):
    """libpq or the PostgreSQL server reported an error."""

    code = "POSTGRES_ERROR"

    def __init__(
        self, message: str, *, code: str | None = None, sqlstate: str | None = None
    ) -> None:
        super().__init__(message, code=code)
        self.sqlstate = sqlstate


class ProgrammingError(SqlError):
    """The API was used in a way its contract forbids."""

    code = "PROGRAMMING_ERROR"


class UnknownDriverError(ProgrammingError):
    """``OpenParams.driver`` names no supported backend."""

    code = "UNKNOWN_DRIVER"


class ConnectionStateError(ProgrammingError):
    """Connection opened twice, or used while closed."""

    code = "CONNECTION_STATE"


class StatementStateError(ProgrammingError):
    """Statement used before preparation, after close, or off a row."""

    code = "STATEMENT_STATE"


class ParameterIndexError(ProgrammingError, IndexError):
    """Bind index outside the statement's parameter slots."""

    code = "PARAMETER_INDEX"


class ParameterTypeError(ProgrammingError, TypeError):
    """Bound value does not match the parameter slot's type."""

    code = "PARAMETER_TYPE"


class UnsupportedTypeError(ProgrammingError):
    """A PostgreSQL type OID outside the supported mapping."""

    code = "UNSUPPORTED_TYPE"
