"""SQLite implementation of the backend protocols.

Thin wrapper around the standard ``sqlite3`` module. The session is opened
with ``isolation_level=None`` so that the module never issues transaction
statements of its own: BEGIN/COMMIT/ROLLBACK are under the caller's control
through the connection's transaction methods.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from polysql.db.backend import scoped_reset
from polysql.db.placeholders import count_placeholders
from polysql.db.values import INT64_MAX, INT64_MIN, to_double, to_int32, to_int64, to_text
from polysql.errors import (
    ConnectionStateError,
    ParameterIndexError,
    ParameterTypeError,
    SQLiteError,
    StatementStateError,
)
from polysql.models import Column, ColumnType, OpenParams

logger = logging.getLogger(__name__)

_TABLE_EXISTS_SQL = "SELECT name FROM sqlite_master WHERE type='table' AND name=?"
_COLUMN_EXISTS_SQL = "SELECT name FROM pragma_table_info(?) WHERE name=?"
_INDEX_EXISTS_SQL = "SELECT name FROM pragma_index_list(?) WHERE name=?"
_TABLE_COLUMNS_SQL = "SELECT name, type FROM pragma_table_info(?) ORDER BY cid"


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Re-raise ``sqlite3`` errors as ``SQLiteError`` with the engine's message."""
    try:
        yield
    except sqlite3.Error as exc:
        raise SQLiteError(str(exc), code=getattr(exc, "sqlite_errorname", None)) from exc


def parse_sqlite_column_type(declared: str) -> ColumnType:
    """Map a declared column type to a coarse type using SQLite's affinity rules."""
    upper = declared.upper()
    if "INT" in upper:
        return ColumnType.INTEGER
    if "CHAR" in upper or "CLOB" in upper or "TEXT" in upper:
        return ColumnType.TEXT
    if "BLOB" in upper or not upper.strip():
        return ColumnType.BLOB
    # REAL/FLOA/DOUB are REAL affinity; anything left over is NUMERIC.
    return ColumnType.FLOAT


def _value_type(value: Any) -> ColumnType:
    if value is None:
        return ColumnType.NULL
    if isinstance(value, int):
        return ColumnType.INTEGER
    if isinstance(value, float):
        return ColumnType.FLOAT
    if isinstance(value, str):
        return ColumnType.TEXT
    return ColumnType.BLOB


class SQLiteConnection:
    """One SQLite session.

    Transaction and introspection helpers are prepared on first use and
    kept until ``close``.
    """

    def __init__(self) -> None:
        """Initialize a closed connection."""
        self._conn: sqlite3.Connection | None = None
        self._auxiliary: dict[str, SQLiteStatement] = {}

    @property
    def native(self) -> sqlite3.Connection:
        """The underlying ``sqlite3.Connection``."""
        if self._conn is None:
            raise ConnectionStateError("SQLite connection is not open")
        return self._conn

    def is_open(self) -> bool:
        return self._conn is not None

    def open(self, params: OpenParams) -> None:
        """Open (or create) the database at ``params.path``."""
        if self._conn is not None:
            raise ConnectionStateError("SQLite connection is already open")

        path = str(params.path)
        if path != ":memory:" and not path.startswith("file:"):
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        with _translate_errors():
            self._conn = sqlite3.connect(
                path,
                isolation_level=None,
                check_same_thread=not params.multithreaded,
                uri=path.startswith("file:"),
            )
        logger.debug("Opened SQLite database %s", path)

        if params.exclusive_locking:
            self.execute("PRAGMA locking_mode=EXCLUSIVE")
        if params.journal_size_limit != -1:
            self.execute(f"PRAGMA journal_size_limit={int(params.journal_size_limit)}")

    def close(self) -> None:
        """Close helper statements, then the session. Closing twice is a no-op."""
        for statement in self._auxiliary.values():
            statement.close()
        self._auxiliary.clear()

        if self._conn is not None:
            with _translate_errors():
                self._conn.close()
            self._conn = None
            logger.debug("Closed SQLite database")

    def execute(self, sql: str) -> None:
        """Execute one statement, discarding any rows."""
        with _translate_errors():
            self.native.execute(sql).close()

    def _auxiliary_statement(self, key: str, sql: str) -> SQLiteStatement:
        statement = self._auxiliary.get(key)
        if statement is None:
            statement = SQLiteStatement()
            statement.prepare(self, sql)
            self._auxiliary[key] = statement
        return statement

    def _run_auxiliary(self, key: str, sql: str) -> None:
        with scoped_reset(self._auxiliary_statement(key, sql)) as statement:
            statement.run()

    def begin_transaction(self) -> None:
        logger.debug("BEGIN")
        self._run_auxiliary("begin", "BEGIN TRANSACTION")

    def commit_transaction(self) -> None:
        logger.debug("COMMIT")
        self._run_auxiliary("commit", "COMMIT")

    def rollback_transaction(self) -> None:
        logger.debug("ROLLBACK")
        self._run_auxiliary("rollback", "ROLLBACK")

    def get_last_change_count(self) -> int:
        """Rows changed by the most recent INSERT/UPDATE/DELETE, per the engine."""
        with _translate_errors():
            cursor = self.native.execute("SELECT changes()")
            try:
                return int(cursor.fetchone()[0])
            finally:
                cursor.close()

    def does_table_exist(self, table_name: str) -> bool:
        with scoped_reset(self._auxiliary_statement("table_exists", _TABLE_EXISTS_SQL)) as stmt:
            stmt.bind(0, table_name)
            return stmt.step()

    def does_column_exist(self, table_name: str, column_name: str) -> bool:
        """Check a column via ``table_info``. Names compare case-sensitively."""
        with scoped_reset(self._auxiliary_statement("column_exists", _COLUMN_EXISTS_SQL)) as stmt:
            stmt.bind(0, table_name)
            stmt.bind(1, column_name)
            return stmt.step()

    def does_index_exist(self, table_name: str, index_name: str) -> bool:
        """Check an index via ``index_list``. Names compare case-sensitively."""
        with scoped_reset(self._auxiliary_statement("index_exists", _INDEX_EXISTS_SQL)) as stmt:
            stmt.bind(0, table_name)
            stmt.bind(1, index_name)
            return stmt.step()

    def get_table_columns(self, table_name: str) -> list[Column]:
        columns: list[Column] = []
        with scoped_reset(self._auxiliary_statement("table_columns", _TABLE_COLUMNS_SQL)) as stmt:
            stmt.bind(0, table_name)
            while stmt.step():
                columns.append(
                    Column(
                        name=stmt.get_column_string(0),
                        type=parse_sqlite_column_type(stmt.get_column_string(1)),
                    )
                )
        return columns


class SQLiteStatement:
    """A prepared SQLite statement.

    Parameters are held locally and handed to the engine when the statement
    executes, which happens once per prepare/reset cycle: on ``run`` or on
    the first ``step``.
    """

    def __init__(self) -> None:
        """Initialize an unprepared statement."""
        self._connection: SQLiteConnection | None = None
        self._sql = ""
        self._params: list[Any] = []
        self._cursor: sqlite3.Cursor | None = None
        self._row: tuple[Any, ...] | None = None
        self._executed = False

    @property
    def sql(self) -> str:
        return self._sql

    @property
    def param_count(self) -> int:
        return len(self._params)

    def is_prepared(self) -> bool:
        return self._connection is not None

    def prepare(self, connection: SQLiteConnection, sql: str) -> None:
        """Compile ``sql`` so that syntax and schema errors surface here."""
        if self._connection is not None:
            raise StatementStateError("Statement is already prepared")

        param_count = count_placeholders(sql, sqlite=True)
        with _translate_errors():
            # EXPLAIN compiles the statement without running it.
            connection.native.execute(f"EXPLAIN {sql}", [None] * param_count).close()

        self._connection = connection
        self._sql = sql
        self._params = [None] * param_count

    def _require_prepared(self) -> SQLiteConnection:
        if self._connection is None:
            raise StatementStateError("Statement is not prepared")
        return self._connection

    def _check_bindable(self, column: int) -> None:
        self._require_prepared()
        if self._executed:
            raise StatementStateError("Statement must be reset before binding")
        if not 0 <= column < len(self._params):
            raise ParameterIndexError(
                f"Parameter index {column} out of range (statement has {len(self._params)})"
            )

    def bind_null(self, column: int) -> None:
        self._check_bindable(column)
        self._params[column] = None

    def bind(self, column: int, value: Any) -> None:
        """Set parameter ``column``. Accepts None, bool, int, float, str and bytes."""
        self._check_bindable(column)
        if value is None or isinstance(value, (float, str)):
            self._params[column] = value
        elif isinstance(value, int):
            if not INT64_MIN <= value <= INT64_MAX:
                raise ParameterTypeError(f"Integer {value} does not fit in 64 bits")
            self._params[column] = int(value)
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self._params[column] = bytes(value)
        else:
            raise ParameterTypeError(f"Cannot bind value of type {type(value).__name__}")

    def run(self) -> None:
        """Execute the statement, discarding any rows."""
        connection = self._require_prepared()
        if self._executed:
            return
        with _translate_errors():
            connection.native.execute(self._sql, self._params).close()
        self._executed = True

    def step(self) -> bool:
        connection = self._require_prepared()
        with _translate_errors():
            if not self._executed:
                self._cursor = connection.native.execute(self._sql, self._params)
                self._executed = True
            if self._cursor is None:
                return False
            row = self._cursor.fetchone()

        if row is None:
            self._row = None
            self._cursor.close()
            self._cursor = None
            return False

        self._row = row
        return True

    def reset(self) -> None:
        """Discard the current result and clear bound values."""
        self._require_prepared()
        self._release_cursor()
        self._params = [None] * len(self._params)
        self._executed = False

    def close(self) -> None:
        self._release_cursor()
        self._connection = None

    def _release_cursor(self) -> None:
        self._row = None
        if self._cursor is not None:
            self._cursor.close()
            self._cursor = None

    def _value(self, column: int) -> Any:
        if self._row is None:
            raise StatementStateError("Statement is not positioned on a row")
        if not 0 <= column < len(self._row):
            raise IndexError(f"Column index {column} out of range ({len(self._row)} columns)")
        return self._row[column]

    def get_column_count(self) -> int:
        self._require_prepared()
        if self._cursor is None or self._cursor.description is None:
            return 0
        return len(self._cursor.description)

    def get_column_type(self, column: int) -> ColumnType:
        return _value_type(self._value(column))

    def get_column_bool(self, column: int) -> bool:
        return to_int64(self._value(column)) != 0

    def get_column_int(self, column: int) -> int:
        return to_int32(self._value(column))

    def get_column_int64(self, column: int) -> int:
        return to_int64(self._value(column))

    def get_column_double(self, column: int) -> float:
        return to_double(self._value(column))

    def get_column_string(self, column: int) -> str:
        return to_text(self._value(column))
