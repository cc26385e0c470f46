"""SQLite-specific behaviour of the backend."""

import pytest

from polysql import (
    ColumnType,
    Connection,
    OpenParams,
    ParameterIndexError,
    ParameterTypeError,
    SQLiteError,
    Statement,
    StatementStateError,
)
from polysql.db import (
    ConnectionModel,
    ConnectionModelImpl,
    PostgresConnection,
    PostgresStatement,
    SQLiteConnection,
    SQLiteStatement,
    StatementModel,
)
from polysql.db.sqlite_backend import parse_sqlite_column_type


def test_sqlite_classes_conform_to_protocols():
    assert isinstance(ConnectionModelImpl(SQLiteConnection, SQLiteStatement), ConnectionModel)
    assert isinstance(SQLiteStatement(), StatementModel)


def test_postgres_classes_conform_to_protocols():
    assert isinstance(ConnectionModelImpl(PostgresConnection, PostgresStatement), ConnectionModel)
    assert isinstance(PostgresStatement(), StatementModel)


@pytest.mark.parametrize(
    ("declared", "expected"),
    [
        ("INTEGER", ColumnType.INTEGER),
        ("bigint", ColumnType.INTEGER),
        ("UNSIGNED BIG INT", ColumnType.INTEGER),
        ("TEXT", ColumnType.TEXT),
        ("VARCHAR(255)", ColumnType.TEXT),
        ("CLOB", ColumnType.TEXT),
        ("BLOB", ColumnType.BLOB),
        ("", ColumnType.BLOB),
        ("REAL", ColumnType.FLOAT),
        ("DOUBLE PRECISION", ColumnType.FLOAT),
        ("NUMERIC", ColumnType.FLOAT),
    ],
)
def test_parse_sqlite_column_type(declared, expected):
    assert parse_sqlite_column_type(declared) == expected


class TestOpen:
    def test_in_memory_by_default(self):
        with Connection(OpenParams(driver="sqlite")) as conn:
            conn.execute("CREATE TABLE t(x INTEGER)")
            assert conn.does_table_exist("t")

    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "a" / "b" / "db.sqlite3"
        with Connection(OpenParams(driver="sqlite", path=path)):
            pass
        assert path.exists()

    def test_pragmas_applied(self, tmp_path):
        params = OpenParams(
            driver="sqlite",
            path=tmp_path / "db.sqlite3",
            exclusive_locking=True,
            journal_size_limit=4096,
        )
        with Connection(params) as conn:
            with Statement(conn, "PRAGMA journal_size_limit") as stmt:
                assert stmt.step()
                assert stmt.get_column_int64(0) == 4096
            with Statement(conn, "PRAGMA locking_mode") as stmt:
                assert stmt.step()
                assert stmt.get_column_string(0).lower() == "exclusive"


class TestIntrospection:
    def test_names_are_case_sensitive(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE Things(Name TEXT)")
        sqlite_conn.execute("CREATE INDEX Things_Name ON Things(Name)")
        assert sqlite_conn.does_table_exist("Things")
        assert not sqlite_conn.does_table_exist("things")
        assert sqlite_conn.does_column_exist("Things", "Name")
        assert not sqlite_conn.does_column_exist("Things", "name")
        assert sqlite_conn.does_index_exist("Things", "Things_Name")
        assert not sqlite_conn.does_index_exist("Things", "things_name")

    def test_column_and_index_lookups_are_independent(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE t(a INTEGER, b TEXT)")
        sqlite_conn.execute("CREATE INDEX b ON t(a)")
        # An index named like a column does not make the column lookup succeed, and vice versa.
        assert not sqlite_conn.does_column_exist("t", "a_index")
        assert not sqlite_conn.does_index_exist("t", "a")
        assert sqlite_conn.does_index_exist("t", "b")
        assert sqlite_conn.does_column_exist("t", "b")

    def test_table_columns_in_declaration_order(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE t(z BLOB, y REAL, x VARCHAR(10), w)")
        columns = sqlite_conn.get_table_columns("t")
        assert [(c.name, c.type) for c in columns] == [
            ("z", ColumnType.BLOB),
            ("y", ColumnType.FLOAT),
            ("x", ColumnType.TEXT),
            ("w", ColumnType.BLOB),
        ]

    def test_table_columns_of_missing_table(self, sqlite_conn):
        assert sqlite_conn.get_table_columns("missing") == []


class TestValues:
    @pytest.fixture
    def values_table(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE v(x)")
        return sqlite_conn

    def _insert_and_read(self, conn, value):
        with Statement(conn, "INSERT INTO v VALUES(?)") as insert:
            insert.bind(0, value)
            insert.run()
        stmt = Statement(conn, "SELECT x FROM v")
        assert stmt.step()
        return stmt

    def test_blob(self, values_table):
        stmt = self._insert_and_read(values_table, b"\x00\xff")
        assert stmt.get_column_type(0) == ColumnType.BLOB
        assert stmt.get_column_int64(0) == 0
        stmt.close()

    def test_bool_stored_as_integer(self, values_table):
        stmt = self._insert_and_read(values_table, True)
        assert stmt.get_column_type(0) == ColumnType.INTEGER
        assert stmt.get_column_int(0) == 1
        assert stmt.get_column_bool(0)
        stmt.close()

    def test_int_narrowing(self, values_table):
        stmt = self._insert_and_read(values_table, 2**40)
        assert stmt.get_column_int64(0) == 2**40
        assert stmt.get_column_int(0) == 0
        assert stmt.get_column_double(0) == float(2**40)
        assert stmt.get_column_string(0) == str(2**40)
        stmt.close()

    def test_text_as_number(self, values_table):
        stmt = self._insert_and_read(values_table, "12.5 apples")
        assert stmt.get_column_type(0) == ColumnType.TEXT
        assert stmt.get_column_int64(0) == 12
        assert stmt.get_column_double(0) == 12.5
        stmt.close()

    def test_float_as_text(self, values_table):
        stmt = self._insert_and_read(values_table, 0.5)
        assert stmt.get_column_type(0) == ColumnType.FLOAT
        assert stmt.get_column_string(0) == "0.5"
        assert stmt.get_column_int(0) == 0
        stmt.close()


class TestStatementState:
    def test_bind_after_run_requires_reset(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE t(x INTEGER)")
        stmt = Statement(sqlite_conn, "INSERT INTO t VALUES(?)")
        stmt.bind(0, 1)
        stmt.run()
        with pytest.raises(StatementStateError):
            stmt.bind(0, 2)
        stmt.reset()
        stmt.bind(0, 2)
        stmt.run()
        stmt.close()

    def test_run_executes_once_per_cycle(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE t(x INTEGER)")
        stmt = Statement(sqlite_conn, "INSERT INTO t VALUES(1)")
        stmt.run()
        stmt.run()
        stmt.close()
        count = Statement(sqlite_conn, "SELECT COUNT(*) FROM t")
        assert count.step()
        assert count.get_column_int(0) == 1
        count.close()

    def test_parameter_errors(self, sqlite_conn):
        stmt = Statement(sqlite_conn, "SELECT ?, ?")
        with pytest.raises(ParameterIndexError):
            stmt.bind(2, 1)
        with pytest.raises(ParameterTypeError):
            stmt.bind(0, object())
        with pytest.raises(ParameterTypeError):
            stmt.bind(0, 2**63)
        stmt.close()

    def test_row_access_requires_a_row(self, sqlite_conn):
        stmt = Statement(sqlite_conn, "SELECT 1, 2")
        with pytest.raises(StatementStateError):
            stmt.get_column_int(0)
        assert stmt.step()
        assert stmt.get_column_count() == 2
        with pytest.raises(IndexError):
            stmt.get_column_int(2)
        assert not stmt.step()
        with pytest.raises(StatementStateError):
            stmt.get_column_int(0)
        stmt.close()

    def test_placeholder_inside_quoted_identifiers(self, sqlite_conn):
        sqlite_conn.execute('CREATE TABLE t("a?b" INTEGER)')
        sqlite_conn.execute("INSERT INTO t VALUES(5)")
        stmt = Statement(sqlite_conn, "SELECT [a?b], `a?b` FROM t WHERE [a?b] = ?")
        stmt.bind(0, 5)
        assert stmt.step()
        assert stmt.get_column_int(0) == 5
        assert stmt.get_column_int(1) == 5
        stmt.close()

    def test_placeholder_inside_literal_is_not_a_parameter(self, sqlite_conn):
        stmt = Statement(sqlite_conn, "SELECT '?', ?")
        stmt.bind(0, "x")
        assert stmt.step()
        assert stmt.get_column_string(0) == "?"
        assert stmt.get_column_string(1) == "x"
        stmt.close()


class TestErrors:
    def test_prepare_error_has_engine_code(self, sqlite_conn):
        with pytest.raises(SQLiteError) as excinfo:
            Statement(sqlite_conn, "SELECT * FROM no_such_table")
        assert "no_such_table" in excinfo.value.message
        assert excinfo.value.code == "SQLITE_ERROR"

    def test_execute_runs_a_single_statement(self, sqlite_conn):
        with pytest.raises(SQLiteError):
            sqlite_conn.execute("CREATE TABLE a(x); CREATE TABLE b(y)")

    def test_constraint_violation_at_run(self, sqlite_conn):
        sqlite_conn.execute("CREATE TABLE t(x INTEGER PRIMARY KEY)")
        sqlite_conn.execute("INSERT INTO t VALUES(1)")
        stmt = Statement(sqlite_conn, "INSERT INTO t VALUES(?)")
        stmt.bind(0, 1)
        with pytest.raises(SQLiteError) as excinfo:
            stmt.run()
        assert excinfo.value.code.startswith("SQLITE_CONSTRAINT")
        stmt.close()
