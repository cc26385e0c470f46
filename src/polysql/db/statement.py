"""Driver-independent prepared statement."""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from polysql.db.field_view import FieldView
from polysql.db.values import INT32_MAX, INT32_MIN, INT64_MAX, INT64_MIN
from polysql.errors import ParameterTypeError, StatementStateError
from polysql.models import ColumnType

if TYPE_CHECKING:
    from types import TracebackType

    from polysql.db.backend import StatementModel
    from polysql.db.connection import Connection


class Statement:
    """A prepared statement on a ``Connection``.

    Typical use::

        stmt = Statement(conn, "SELECT a, c FROM t WHERE b = ?")
        stmt.bind(0, 100)
        while stmt.step():
            print(stmt.get_column_int(0), stmt.get_column_string(1))
        stmt.reset()

    The statement executes once per prepare/reset cycle, on ``run`` or on
    the first ``step``. ``reset`` clears bound values so the statement can
    be rebound and executed again without being re-prepared.

    The connection must stay open for as long as the statement is used.
    """

    def __init__(self, connection: Connection | None = None, sql: str | None = None) -> None:
        """Create an unprepared statement, or prepare ``sql`` on ``connection``."""
        self._model: StatementModel | None = None
        if connection is not None:
            if sql is None:
                raise TypeError("sql is required when a connection is given")
            self.prepare(connection, sql)

    @property
    def model(self) -> StatementModel | None:
        """The backend statement, None until prepared."""
        return self._model

    def is_prepared(self) -> bool:
        """Return True once the statement has been prepared."""
        return self._model is not None and self._model.is_prepared()

    def prepare(self, connection: Connection, sql: str) -> None:
        """Prepare ``sql`` on ``connection``. A statement is prepared only once."""
        if self._model is not None:
            raise StatementStateError("Statement is already prepared")
        self._model = connection.create_statement_model(sql)

    def _require_model(self) -> StatementModel:
        if self._model is None:
            raise StatementStateError("Statement is not prepared")
        return self._model

    # -- Binding --

    def bind_null(self, column: int) -> None:
        """Set parameter ``column`` (0-based) to SQL NULL."""
        self._require_model().bind_null(column)

    def bind(self, column: int, value: Any) -> None:
        """Bind ``value`` (None, bool, int, float, str or bytes) to parameter ``column``."""
        self._require_model().bind(column, value)

    def bind_bool(self, column: int, value: bool) -> None:
        """Bind ``value`` as a bool."""
        self.bind(column, bool(value))

    def bind_int(self, column: int, value: int) -> None:
        """Bind a 32-bit integer; larger values raise ``ParameterTypeError``."""
        _check_int(value, INT32_MIN, INT32_MAX, 32)
        self.bind(column, value)

    def bind_int64(self, column: int, value: int) -> None:
        """Bind a 64-bit integer."""
        _check_int(value, INT64_MIN, INT64_MAX, 64)
        self.bind(column, value)

    def bind_double(self, column: int, value: float) -> None:
        """Bind ``value`` as a float."""
        self.bind(column, float(value))

    def bind_string(self, column: int, value: str) -> None:
        """Bind text; non-str values raise ``ParameterTypeError``."""
        if not isinstance(value, str):
            raise ParameterTypeError(f"Expected str, got {type(value).__name__}")
        self.bind(column, value)

    def bind_string16(self, column: int, value: str) -> None:
        """Same as ``bind_string``; text is always sent as UTF-8."""
        self.bind_string(column, value)

    # -- Columns of the current row --

    def get_column_count(self) -> int:
        """Number of columns in the current row."""
        return self._require_model().get_column_count()

    def get_column_type(self, column: int) -> ColumnType:
        """Coarse type of ``column`` in the current row."""
        return self._require_model().get_column_type(column)

    def get_column_bool(self, column: int) -> bool:
        """Column as a bool: true for any non-zero value."""
        return self._require_model().get_column_bool(column)

    def get_column_int(self, column: int) -> int:
        """Column as a 32-bit integer; 0 if the value doesn't fit."""
        return self._require_model().get_column_int(column)

    def get_column_int64(self, column: int) -> int:
        """Column as a 64-bit integer."""
        return self._require_model().get_column_int64(column)

    def get_column_double(self, column: int) -> float:
        """Column as a float."""
        return self._require_model().get_column_double(column)

    def get_column_string(self, column: int) -> str:
        """Column as text; NULL reads as the empty string."""
        return self._require_model().get_column_string(column)

    def get_column_string16(self, column: int) -> str:
        """Same as ``get_column_string``."""
        return self._require_model().get_column_string(column)

    def at(self, column: int) -> FieldView:
        """View of ``column`` in the current row."""
        return FieldView(self._require_model(), column)

    # -- Execution --

    def run(self) -> None:
        """Execute a statement that returns no rows."""
        self._require_model().run()

    def step(self) -> bool:
        """Advance to the next row. Returns False when there are no more."""
        return self._require_model().step()

    def reset(self) -> None:
        """Discard pending results and bound values."""
        self._require_model().reset()

    def close(self) -> None:
        """Release backend resources. Closing twice is a no-op."""
        if self._model is not None:
            model, self._model = self._model, None
            model.close()

    def __iter__(self) -> Iterator[Statement]:
        """Step through the remaining rows, yielding the statement on each one."""
        while self.step():
            yield self

    def __enter__(self) -> Statement:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def _check_int(value: int, low: int, high: int, bits: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParameterTypeError(f"Expected int, got {type(value).__name__}")
    if not low <= value <= high:
        raise ParameterTypeError(f"{value} does not fit in {bits} bits")
