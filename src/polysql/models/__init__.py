"""Value types shared by every backend."""

from polysql.models.column import Column, ColumnType
from polysql.models.params import OpenParams

__all__ = ["Column", "ColumnType", "OpenParams"]
