"""Driver-independent connection.

``Connection.open`` picks a backend from ``OpenParams.driver`` and wraps it
in a ``ConnectionModelImpl``; everything after that forwards to the model.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from polysql.db.backend import ConnectionModel, ConnectionModelImpl, StatementModel
from polysql.db.postgres_backend import PostgresConnection, PostgresStatement
from polysql.db.sqlite_backend import SQLiteConnection, SQLiteStatement
from polysql.errors import ConnectionStateError, UnknownDriverError
from polysql.models import Column, OpenParams

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

# driver name -> (canonical name, connection class, statement class)
_DRIVERS: dict[str, tuple[str, type[Any], type[Any]]] = {
    "": ("sqlite", SQLiteConnection, SQLiteStatement),
    "sqlite": ("sqlite", SQLiteConnection, SQLiteStatement),
    "sqlite3": ("sqlite", SQLiteConnection, SQLiteStatement),
    "postgres": ("postgresql", PostgresConnection, PostgresStatement),
    "postgresql": ("postgresql", PostgresConnection, PostgresStatement),
}


def resolve_driver(driver: str) -> tuple[str, type[Any], type[Any]]:
    """Look up a driver name. Raises ``UnknownDriverError`` for anything unsupported."""
    try:
        return _DRIVERS[driver.strip().lower()]
    except KeyError:
        raise UnknownDriverError(f"Unknown SQL driver: {driver!r}") from None


class Connection:
    """A database session on whichever backend ``open`` selected.

    Not thread-safe: a connection and its statements must be used by one
    owner at a time. Statements keep a plain reference to the session, so
    close them before closing the connection.
    """

    def __init__(self, params: OpenParams | None = None) -> None:
        """Create a closed connection, or open it right away if ``params`` is given."""
        self._model: ConnectionModel | None = None
        self._driver: str | None = None
        if params is not None:
            self.open(params)

    @property
    def driver(self) -> str | None:
        """Canonical backend name (``"sqlite"`` or ``"postgresql"``), None while closed."""
        return self._driver

    def is_open(self) -> bool:
        """Return True while the session is open."""
        return self._model is not None and self._model.is_open()

    def open(self, params: OpenParams | None = None) -> None:
        """Open a session; ``params`` default to ``OpenParams.from_env()``."""
        if self._model is not None:
            raise ConnectionStateError("Connection is already open")
        if params is None:
            params = OpenParams.from_env()

        driver, connection_cls, statement_cls = resolve_driver(params.driver)
        model = ConnectionModelImpl(connection_cls, statement_cls)
        model.open(params)

        self._model = model
        self._driver = driver
        logger.debug("Opened %s connection", driver)

    def close(self) -> None:
        """Close the session. Closing a closed connection is a no-op."""
        if self._model is None:
            return
        model, self._model = self._model, None
        self._driver = None
        model.close()

    def _require_model(self) -> ConnectionModel:
        if self._model is None:
            raise ConnectionStateError("Connection is not open")
        return self._model

    def execute(self, sql: str) -> None:
        """Execute SQL that returns no rows (DDL, one-off DML)."""
        self._require_model().execute(sql)

    def begin_transaction(self) -> None:
        """Start a transaction."""
        self._require_model().begin_transaction()

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        self._require_model().commit_transaction()

    def rollback_transaction(self) -> None:
        """Roll back the current transaction."""
        self._require_model().rollback_transaction()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Begin; commit if the block succeeds, roll back if it raises."""
        self.begin_transaction()
        try:
            yield self
        except BaseException:
            self.rollback_transaction()
            raise
        self.commit_transaction()

    def get_last_change_count(self) -> int:
        """Rows affected by the last INSERT/UPDATE/DELETE, as reported by the backend."""
        return self._require_model().get_last_change_count()

    def does_table_exist(self, table_name: str) -> bool:
        """Return True if ``table_name`` exists."""
        return self._require_model().does_table_exist(table_name)

    def does_column_exist(self, table_name: str, column_name: str) -> bool:
        """Return True if ``table_name`` has a column ``column_name``."""
        return self._require_model().does_column_exist(table_name, column_name)

    def does_index_exist(self, table_name: str, index_name: str) -> bool:
        """Return True if ``table_name`` has an index ``index_name``."""
        return self._require_model().does_index_exist(table_name, index_name)

    def get_table_columns(self, table_name: str) -> list[Column]:
        """Columns of ``table_name`` in declaration order."""
        return self._require_model().get_table_columns(table_name)

    def create_statement_model(self, sql: str) -> StatementModel:
        """Prepare ``sql`` on the backend. Used by ``Statement``."""
        return self._require_model().create_statement_model(sql)

    def __enter__(self) -> Connection:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
