"""Backend protocols: a thin abstraction over blocking DB sessions.

Application code programs against ``polysql.Connection`` and
``polysql.Statement``. Those hold a model satisfying the protocols below,
and each backend (SQLite, PostgreSQL) provides a concrete connection and
statement class. ``ConnectionModelImpl`` binds one such pair together so
the facade never needs to know which backend it is talking to.

Adding a backend means writing its connection and statement classes and
adding one entry to the driver table in ``polysql.db.connection``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from polysql.models import Column, ColumnType, OpenParams


class _Resettable(Protocol):
    def reset(self) -> None:
        """Discard pending results and bound values."""
        ...


ResettableT = TypeVar("ResettableT", bound=_Resettable)


@contextmanager
def scoped_reset(statement: ResettableT) -> Iterator[ResettableT]:
    """Reset ``statement`` when the block exits, however it exits."""
    try:
        yield statement
    finally:
        statement.reset()


@runtime_checkable
class StatementModel(Protocol):
    """A prepared statement bound to one backend session."""

    def is_prepared(self) -> bool:
        """Return True once the backend has prepared the statement."""
        ...

    def bind_null(self, column: int) -> None:
        """Set parameter ``column`` (0-based) to SQL NULL."""
        ...

    def bind(self, column: int, value: Any) -> None:
        """Set parameter ``column`` (0-based) to ``value``."""
        ...

    def get_column_count(self) -> int:
        """Number of result columns of the current row."""
        ...

    def get_column_type(self, column: int) -> ColumnType:
        """Coarse type of ``column`` in the current row."""
        ...

    def get_column_bool(self, column: int) -> bool:
        """Column as a bool: true for any non-zero value."""
        ...

    def get_column_int(self, column: int) -> int:
        """Column as a 32-bit integer; 0 if the value doesn't fit."""
        ...

    def get_column_int64(self, column: int) -> int:
        """Column as a 64-bit integer."""
        ...

    def get_column_double(self, column: int) -> float:
        """Column as a float."""
        ...

    def get_column_string(self, column: int) -> str:
        """Column as text; NULL reads as the empty string."""
        ...

    def run(self) -> None:
        """Execute a statement that produces no rows."""
        ...

    def step(self) -> bool:
        """Advance to the next row, executing on first call. False when exhausted."""
        ...

    def reset(self) -> None:
        """Discard pending results and bound values so the statement can run again."""
        ...

    def close(self) -> None:
        """Release backend resources held by the statement."""
        ...


@runtime_checkable
class ConnectionModel(Protocol):
    """A backend session plus the statements it can create."""

    def is_open(self) -> bool:
        """Return True while the session is open."""
        ...

    def open(self, params: OpenParams) -> None:
        """Open the native session."""
        ...

    def close(self) -> None:
        """Close auxiliary statements and the native session."""
        ...

    def execute(self, sql: str) -> None:
        """Execute SQL that produces no rows."""
        ...

    def begin_transaction(self) -> None:
        """Start a transaction."""
        ...

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback_transaction(self) -> None:
        """Roll back the current transaction."""
        ...

    def get_last_change_count(self) -> int:
        """Rows affected by the most recent data-modifying statement."""
        ...

    def does_table_exist(self, table_name: str) -> bool:
        """Return True if ``table_name`` exists."""
        ...

    def does_column_exist(self, table_name: str, column_name: str) -> bool:
        """Return True if ``table_name`` has a column ``column_name``."""
        ...

    def does_index_exist(self, table_name: str, index_name: str) -> bool:
        """Return True if ``table_name`` has an index ``index_name``."""
        ...

    def get_table_columns(self, table_name: str) -> list[Column]:
        """Columns of ``table_name`` in declaration order."""
        ...

    def create_statement_model(self, sql: str) -> StatementModel:
        """Prepare ``sql`` on this session."""
        ...


class BackendStatement(StatementModel, Protocol):
    """A backend statement class, default-constructible and prepared later."""

    def prepare(self, connection: Any, sql: str) -> None:
        """Prepare ``sql`` on a backend connection."""
        ...


ConnectionT = TypeVar("ConnectionT")
StatementT = TypeVar("StatementT", bound=BackendStatement)


class ConnectionModelImpl(Generic[ConnectionT, StatementT]):
    """Adapts one backend's connection/statement pair to ``ConnectionModel``.

    The backend connection is created here and owned exclusively; every
    statement created through ``create_statement_model`` keeps a plain
    reference to it, so the connection must outlive its statements.
    """

    def __init__(
        self, connection_cls: type[ConnectionT], statement_cls: type[StatementT]
    ) -> None:
        """Initialize with the backend's connection and statement classes."""
        self._connection: Any = connection_cls()
        self._statement_cls = statement_cls

    @property
    def backend(self) -> ConnectionT:
        """The wrapped backend connection."""
        return self._connection

    def is_open(self) -> bool:
        """Return True while the session is open."""
        return self._connection.is_open()

    def open(self, params: OpenParams) -> None:
        """Open the native session."""
        self._connection.open(params)

    def close(self) -> None:
        """Close auxiliary statements and the native session."""
        self._connection.close()

    def execute(self, sql: str) -> None:
        """Execute SQL that produces no rows."""
        self._connection.execute(sql)

    def begin_transaction(self) -> None:
        """Start a transaction."""
        self._connection.begin_transaction()

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        self._connection.commit_transaction()

    def rollback_transaction(self) -> None:
        """Roll back the current transaction."""
        self._connection.rollback_transaction()

    def get_last_change_count(self) -> int:
        """Rows affected by the most recent data-modifying statement."""
        return self._connection.get_last_change_count()

    def does_table_exist(self, table_name: str) -> bool:
        """Return True if ``table_name`` exists."""
        return self._connection.does_table_exist(table_name)

    def does_column_exist(self, table_name: str, column_name: str) -> bool:
        """Return True if ``table_name`` has a column ``column_name``."""
        return self._connection.does_column_exist(table_name, column_name)

    def does_index_exist(self, table_name: str, index_name: str) -> bool:
        """Return True if ``table_name`` has an index ``index_name``."""
        return self._connection.does_index_exist(table_name, index_name)

    def get_table_columns(self, table_name: str) -> list[Column]:
        """Columns of ``table_name`` in declaration order."""
        return self._connection.get_table_columns(table_name)

    def create_statement_model(self, sql: str) -> StatementModel:
        """Prepare ``sql`` on the owned backend connection."""
        statement = self._statement_cls()
        statement.prepare(self._connection, sql)
        return statement
