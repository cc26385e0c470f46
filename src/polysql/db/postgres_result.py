"""Owning wrapper over a libpq result."""

from __future__ import annotations

from typing import TYPE_CHECKING

from psycopg import pq

from polysql.errors import PostgresError

if TYPE_CHECKING:
    from psycopg.pq.abc import PGresult

_OK_STATUSES = frozenset(
    {
        pq.ExecStatus.EMPTY_QUERY,
        pq.ExecStatus.COMMAND_OK,
        pq.ExecStatus.TUPLES_OK,
        pq.ExecStatus.SINGLE_TUPLE,
    }
)


def _decode(raw: bytes | None) -> str:
    return raw.decode("utf-8", errors="replace").strip() if raw else ""


class PostgresResult:
    """One ``PGresult``. Row accessors read row 0, the only row in single-row mode."""

    def __init__(self, pgresult: PGresult) -> None:
        """Initialize with a libpq result; ``clear`` releases it."""
        self._res: PGresult | None = pgresult

    @property
    def native(self) -> PGresult:
        if self._res is None:
            raise PostgresError("Result has been cleared")
        return self._res

    @property
    def status(self) -> int:
        return self.native.status

    @property
    def error_message(self) -> str:
        return _decode(self.native.error_message)

    @property
    def sqlstate(self) -> str | None:
        return _decode(self.native.error_field(pq.DiagnosticField.SQLSTATE)) or None

    def check(self) -> None:
        """Raise ``PostgresError`` with the server's message unless the result is a success."""
        if self.status not in _OK_STATUSES:
            message = self.error_message or "Unknown PostgreSQL error"
            raise PostgresError(message, sqlstate=self.sqlstate)

    @property
    def field_count(self) -> int:
        return self.native.nfields

    def field_name(self, index: int) -> str:
        return _decode(self.native.fname(index))

    def field_type(self, index: int) -> int:
        return self.native.ftype(index)

    def field_format(self, index: int) -> int:
        return self.native.fformat(index)

    def is_null(self, index: int) -> bool:
        return self.native.get_value(0, index) is None

    def value(self, index: int) -> bytes:
        """Raw value of column ``index``; empty for NULL."""
        raw = self.native.get_value(0, index)
        return bytes(raw) if raw is not None else b""

    @property
    def param_count(self) -> int:
        return self.native.nparams

    def param_type(self, index: int) -> int:
        return self.native.param_type(index)

    @property
    def affected_row_count(self) -> int:
        return self.native.command_tuples or 0

    def clear(self) -> None:
        if self._res is not None:
            self._res.clear()
            self._res = None


def check_result(pgresult: PGresult) -> PostgresResult:
    """Wrap ``pgresult`` and raise if it reports an error, clearing it first."""
    result = PostgresResult(pgresult)
    try:
        result.check()
    except PostgresError:
        result.clear()
        raise
    return result
