"""Column type and column description models."""

from enum import IntEnum

from pydantic import BaseModel


class ColumnType(IntEnum):
    """Coarse column type.

    Values match SQLite's fundamental datatype codes.
    """

    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


class Column(BaseModel):
    """A table column as reported by schema introspection."""

    name: str
    type: ColumnType
