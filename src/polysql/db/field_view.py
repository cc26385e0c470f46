"""Read-only view of one column of a statement's current row."""

from __future__ import annotations

from typing import TYPE_CHECKING

from polysql.models import ColumnType

if TYPE_CHECKING:
    from polysql.db.backend import StatementModel


class FieldView:
    """One column of the row a statement is positioned on.

    Holds no data of its own: every accessor reads through to the
    statement, so a view is only meaningful until the statement steps,
    resets or closes.
    """

    __slots__ = ("_statement", "_index")

    def __init__(self, statement: StatementModel, index: int) -> None:
        """Initialize with the owning statement model and a column index."""
        self._statement = statement
        self._index = index

    @property
    def index(self) -> int:
        """Column index this view reads."""
        return self._index

    def type(self) -> ColumnType:
        """Coarse type of the column."""
        return self._statement.get_column_type(self._index)

    def is_null(self) -> bool:
        """Return True if the column is SQL NULL."""
        return self.type() == ColumnType.NULL

    def as_bool(self) -> bool:
        """Column as a bool."""
        return self._statement.get_column_bool(self._index)

    def as_int(self) -> int:
        """Column as a 32-bit integer."""
        return self._statement.get_column_int(self._index)

    def as_int64(self) -> int:
        """Column as a 64-bit integer."""
        return self._statement.get_column_int64(self._index)

    def as_double(self) -> float:
        """Column as a float."""
        return self._statement.get_column_double(self._index)

    def as_string(self) -> str:
        """Column as text."""
        return self._statement.get_column_string(self._index)

    def as_string16(self) -> str:
        """Same as ``as_string``: Python strings are already Unicode."""
        return self._statement.get_column_string(self._index)

    def __repr__(self) -> str:
        return f"<FieldView #{self._index}>"
