"""PostgreSQL implementation of the backend protocols.

Talks to libpq through ``psycopg.pq``. Statements are server-side prepared
statements with generated names; parameters and results use the binary
format (see ``polysql.db.postgres_wire``). All application SQL uses ``?``
placeholders, translated to ``$N`` at prepare time.

Stepping through rows uses single-row mode, so each row is one
``get_result`` call instead of a fully buffered result set. Until the
stream has been read to the end, libpq refuses any other command on the
connection; ``reset`` and ``close`` therefore always drain pending results
before doing anything else.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import psycopg
from psycopg import pq

from polysql.db.backend import scoped_reset
from polysql.db.placeholders import translate_placeholders
from polysql.db.postgres_result import PostgresResult, check_result
from polysql.db.postgres_wire import (
    INVALID_OID,
    column_type,
    decode_double,
    decode_int,
    decode_int32,
    decode_text,
    encode_param,
    oid_for_value,
    parse_postgres_column_type,
)
from polysql.errors import (
    ConnectionStateError,
    ParameterIndexError,
    PostgresError,
    StatementStateError,
)
from polysql.models import Column, ColumnType, OpenParams

if TYPE_CHECKING:
    from psycopg.pq.abc import PGconn

logger = logging.getLogger(__name__)

_TABLE_EXISTS_SQL = (
    "SELECT FROM information_schema.tables WHERE table_schema='public' AND table_name=?"
)
_COLUMN_EXISTS_SQL = (
    "SELECT FROM information_schema.columns WHERE table_schema='public'"
    " AND table_name=? AND column_name=?"
)
_INDEX_EXISTS_SQL = (
    "SELECT FROM pg_indexes WHERE schemaname='public' AND tablename=? AND indexname=?"
)
_TABLE_COLUMNS_SQL = (
    "SELECT column_name, data_type FROM information_schema.columns"
    " WHERE table_schema='public' AND table_name=? ORDER BY ordinal_position"
)


def _connect(conninfo: str) -> PGconn:
    """Open a libpq connection. Replaced in tests."""
    return pq.PGconn.connect(conninfo.encode("utf-8"))


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Re-raise psycopg/libpq errors as ``PostgresError``."""
    try:
        yield
    except psycopg.Error as exc:
        raise PostgresError(str(exc), sqlstate=getattr(exc, "sqlstate", None)) from exc


def _connection_error(pgconn: PGconn) -> str:
    raw = pgconn.error_message
    return raw.decode("utf-8", errors="replace").strip() if raw else "Unknown libpq error"


class PostgresConnection:
    """One libpq session.

    Owns the statement-name counter and the last change count, both updated
    by the statements prepared on it. Identifiers passed to the
    introspection methods are lowercased, matching how PostgreSQL folds
    unquoted names.
    """

    def __init__(self) -> None:
        """Initialize a closed connection."""
        self._pgconn: PGconn | None = None
        self._auxiliary: dict[str, PostgresStatement] = {}
        self._next_statement_id = 0
        self.last_change_count = 0

    @property
    def native(self) -> PGconn:
        """The underlying libpq connection."""
        if self._pgconn is None:
            raise ConnectionStateError("PostgreSQL connection is not open")
        return self._pgconn

    def is_open(self) -> bool:
        return self._pgconn is not None

    def open(self, params: OpenParams) -> None:
        """Connect using ``params.connection_string`` verbatim."""
        if self._pgconn is not None:
            raise ConnectionStateError("PostgreSQL connection is already open")

        with _translate_errors():
            pgconn = _connect(params.connection_string)
        if pgconn.status != pq.ConnStatus.OK:
            message = _connection_error(pgconn)
            pgconn.finish()
            raise PostgresError(message)

        self._pgconn = pgconn
        logger.debug("Connected to PostgreSQL")

    def close(self) -> None:
        """Close helper statements, then the session. Closing twice is a no-op.

        The session is finished even if a helper fails to deallocate; the
        server drops a session's prepared statements when it ends.
        """
        auxiliary = list(self._auxiliary.values())
        self._auxiliary.clear()
        try:
            for statement in auxiliary:
                name = statement.name
                try:
                    statement.close()
                except PostgresError as exc:
                    logger.warning("Failed to deallocate %s: %s", name, exc.message)
        finally:
            if self._pgconn is not None:
                self._pgconn.finish()
                self._pgconn = None
                logger.debug("Disconnected from PostgreSQL")

    def execute(self, sql: str) -> None:
        """Execute SQL (possibly several statements) synchronously."""
        with _translate_errors():
            result = check_result(self.native.exec_(sql.encode("utf-8")))
        self.last_change_count = result.affected_row_count
        result.clear()

    def generate_statement_name(self) -> str:
        """Return a statement name never used before on this connection."""
        name = f"stmt_{self._next_statement_id}"
        self._next_statement_id += 1
        return name

    def _auxiliary_statement(self, key: str, sql: str) -> PostgresStatement:
        statement = self._auxiliary.get(key)
        if statement is None:
            statement = PostgresStatement()
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
        """Affected rows reported by the server for the last executed command."""
        return self.last_change_count

    def does_table_exist(self, table_name: str) -> bool:
        statement = self._auxiliary_statement("table_exists", _TABLE_EXISTS_SQL)
        with scoped_reset(statement):
            statement.bind(0, table_name.lower())
            return statement.step()

    def does_column_exist(self, table_name: str, column_name: str) -> bool:
        statement = self._auxiliary_statement("column_exists", _COLUMN_EXISTS_SQL)
        with scoped_reset(statement):
            statement.bind(0, table_name.lower())
            statement.bind(1, column_name.lower())
            return statement.step()

    def does_index_exist(self, table_name: str, index_name: str) -> bool:
        statement = self._auxiliary_statement("index_exists", _INDEX_EXISTS_SQL)
        with scoped_reset(statement):
            statement.bind(0, table_name.lower())
            statement.bind(1, index_name.lower())
            return statement.step()

    def get_table_columns(self, table_name: str) -> list[Column]:
        statement = self._auxiliary_statement("table_columns", _TABLE_COLUMNS_SQL)
        columns: list[Column] = []
        with scoped_reset(statement):
            statement.bind(0, table_name.lower())
            while statement.step():
                name = statement.get_column_string(0)
                data_type = statement.get_column_string(1)
                parsed = parse_postgres_column_type(data_type)
                if parsed == ColumnType.NULL:
                    logger.warning("Unmapped column type %r for %s.%s", data_type, table_name, name)
                columns.append(Column(name=name, type=parsed))
        return columns


@dataclass
class _Param:
    # Assigned by describe_prepared, or by the first bind if the server left it open.
    type: int = INVALID_OID
    # None is SQL NULL.
    buffer: bytes | None = None


class PostgresStatement:
    """A named server-side prepared statement.

    ``run`` executes synchronously and records the affected row count on
    the connection. ``step`` executes on its first call after
    prepare/reset and then streams one row per call.
    """

    def __init__(self) -> None:
        """Initialize an unprepared statement."""
        self._connection: PostgresConnection | None = None
        self._name = ""
        self._sql = ""
        self._params: list[_Param] = []
        self._result: PostgresResult | None = None
        self._executed = False
        self._streaming = False

    @property
    def name(self) -> str:
        """Server-side statement name, empty until prepared."""
        return self._name

    @property
    def sql(self) -> str:
        """The SQL as sent to the server, with ``$N`` placeholders."""
        return self._sql

    @property
    def param_types(self) -> list[int]:
        return [param.type for param in self._params]

    def is_prepared(self) -> bool:
        return bool(self._name)

    def prepare(self, connection: PostgresConnection, sql: str) -> None:
        """Prepare ``sql`` on the server and learn its parameter types."""
        if self._name:
            raise StatementStateError("Statement is already prepared")

        pgconn = connection.native
        name = connection.generate_statement_name()
        translated, placeholder_count = translate_placeholders(sql)

        with _translate_errors():
            check_result(pgconn.prepare(name.encode(), translated.encode("utf-8"))).clear()
            described = check_result(pgconn.describe_prepared(name.encode()))
        try:
            self._params = [
                _Param(type=described.param_type(i)) for i in range(described.param_count)
            ]
        finally:
            described.clear()

        if len(self._params) != placeholder_count:
            logger.debug(
                "%s: server reports %d parameters for %d placeholders",
                name,
                len(self._params),
                placeholder_count,
            )

        self._connection = connection
        self._name = name
        self._sql = translated
        logger.debug("Prepared %s: %s", name, translated)

    def _require_prepared(self) -> PostgresConnection:
        if not self._name or self._connection is None:
            raise StatementStateError("Statement is not prepared")
        return self._connection

    def _slot(self, column: int) -> _Param:
        self._require_prepared()
        if self._executed:
            raise StatementStateError("Statement must be reset before binding")
        if not 0 <= column < len(self._params):
            raise ParameterIndexError(
                f"Parameter index {column} out of range (statement has {len(self._params)})"
            )
        return self._params[column]

    def bind_null(self, column: int) -> None:
        self._slot(column).buffer = None

    def bind(self, column: int, value: Any) -> None:
        """Encode ``value`` into parameter ``column`` according to the slot's OID."""
        param = self._slot(column)
        if value is None:
            param.buffer = None
            return
        if param.type == INVALID_OID:
            param.type = oid_for_value(value)
        param.buffer = encode_param(value, param.type)

    def _param_arrays(self) -> tuple[list[bytes | None], list[int]]:
        values = [param.buffer for param in self._params]
        formats = [pq.Format.BINARY] * len(self._params)
        return values, formats

    def run(self) -> None:
        """Execute and wait for completion, recording the affected row count."""
        connection = self._require_prepared()
        if self._executed:
            return
        values, formats = self._param_arrays()
        with _translate_errors():
            result = check_result(
                connection.native.exec_prepared(
                    self._name.encode(), values, formats, result_format=pq.Format.BINARY
                )
            )
        connection.last_change_count = result.affected_row_count
        result.clear()
        self._executed = True

    def step(self) -> bool:
        """Fetch the next row in single-row mode. False once the stream ends."""
        connection = self._require_prepared()
        pgconn = connection.native
        self._clear_result()

        if not self._executed:
            values, formats = self._param_arrays()
            with _translate_errors():
                pgconn.send_query_prepared(
                    self._name.encode(), values, formats, result_format=pq.Format.BINARY
                )
                self._executed = True
                self._streaming = True
                pgconn.set_single_row_mode()

        if not self._streaming:
            return False

        with _translate_errors():
            pgresult = pgconn.get_result()
        if pgresult is None:
            self._streaming = False
            return False

        result = PostgresResult(pgresult)
        if result.status == pq.ExecStatus.SINGLE_TUPLE:
            self._result = result
            return True

        # End of stream: a final zero-row TUPLES_OK/COMMAND_OK, or an error.
        # The change count is left alone; only run and execute record it.
        try:
            result.check()
        finally:
            result.clear()
            self._drain()
        return False

    def reset(self) -> None:
        """Drain pending results and clear bound values, keeping slot types."""
        self._require_prepared()
        self._clear_result()
        for param in self._params:
            param.buffer = None
        self._drain()
        self._executed = False

    def close(self) -> None:
        """Drain, then DEALLOCATE the server-side statement."""
        self._clear_result()
        if not self._name:
            return
        name, self._name = self._name, ""
        connection, self._connection = self._connection, None
        self._executed = False
        if connection is None or not connection.is_open():
            # The session is gone and took its prepared statements with it.
            return

        self._drain(connection.native)
        with _translate_errors():
            check_result(connection.native.exec_(f"DEALLOCATE {name}".encode())).clear()
        logger.debug("Deallocated %s", name)

    def _drain(self, pgconn: PGconn | None = None) -> None:
        if pgconn is None:
            pgconn = self._require_prepared().native
        with _translate_errors():
            while True:
                pgresult = pgconn.get_result()
                if pgresult is None:
                    break
                pgresult.clear()
        self._streaming = False

    def _clear_result(self) -> None:
        if self._result is not None:
            self._result.clear()
            self._result = None

    def _current(self, column: int) -> PostgresResult:
        if self._result is None:
            raise StatementStateError("Statement is not positioned on a row")
        if not 0 <= column < self._result.field_count:
            raise IndexError(
                f"Column index {column} out of range ({self._result.field_count} columns)"
            )
        return self._result

    def get_column_count(self) -> int:
        self._require_prepared()
        return self._result.field_count if self._result is not None else 0

    def get_column_type(self, column: int) -> ColumnType:
        result = self._current(column)
        if result.is_null(column):
            return ColumnType.NULL
        return column_type(result.field_type(column))

    def get_column_bool(self, column: int) -> bool:
        return self.get_column_int64(column) != 0

    def get_column_int(self, column: int) -> int:
        result = self._current(column)
        if result.is_null(column):
            return 0
        return decode_int32(result.field_type(column), result.value(column))

    def get_column_int64(self, column: int) -> int:
        result = self._current(column)
        if result.is_null(column):
            return 0
        return decode_int(result.field_type(column), result.value(column))

    def get_column_double(self, column: int) -> float:
        result = self._current(column)
        if result.is_null(column):
            return 0.0
        return decode_double(result.field_type(column), result.value(column))

    def get_column_string(self, column: int) -> str:
        result = self._current(column)
        if result.is_null(column):
            return ""
        return decode_text(result.field_type(column), result.value(column))
