"""Connections and statements over SQLite and PostgreSQL."""

from polysql.db.backend import ConnectionModel, ConnectionModelImpl, StatementModel, scoped_reset
from polysql.db.connection import Connection, resolve_driver
from polysql.db.field_view import FieldView
from polysql.db.postgres_backend import PostgresConnection, PostgresStatement
from polysql.db.sqlite_backend import SQLiteConnection, SQLiteStatement
from polysql.db.statement import Statement

__all__ = [
    "Connection",
    "ConnectionModel",
    "ConnectionModelImpl",
    "FieldView",
    "PostgresConnection",
    "PostgresStatement",
    "SQLiteConnection",
    "SQLiteStatement",
    "Statement",
    "StatementModel",
    "resolve_driver",
    "scoped_reset",
]
