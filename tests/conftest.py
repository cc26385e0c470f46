"""Shared test fixtures."""

import random

import pytest
from psycopg import pq

from polysql import Connection, OpenParams
from polysql.config import get_test_postgres_url
from polysql.db import postgres_backend

ROWS = [(10, 100, "A"), (20, 200, "B"), (30, 300, "C")]


def _postgres_params() -> OpenParams:
    url = get_test_postgres_url()
    if url is None:
        pytest.skip("POLYSQL_TEST_POSTGRES_URL not set")
    return OpenParams(driver="postgres", connection_string=url)


@pytest.fixture
def sqlite_conn(tmp_path):
    """SQLite connection on a file in a temp directory."""
    conn = Connection(OpenParams(driver="sqlite", path=tmp_path / "database.sqlite3"))
    yield conn
    conn.close()


@pytest.fixture
def postgres_conn():
    """Live PostgreSQL connection; skipped unless POLYSQL_TEST_POSTGRES_URL is set."""
    conn = Connection(_postgres_params())
    yield conn
    conn.close()


@pytest.fixture(params=["sqlite", pytest.param("postgres", marks=pytest.mark.postgres)])
def conn(request, tmp_path):
    """Connection on every available backend."""
    if request.param == "sqlite":
        params = OpenParams(driver="sqlite", path=tmp_path / "database.sqlite3")
    else:
        params = _postgres_params()
    connection = Connection(params)
    yield connection
    connection.close()


def _temp_table_name(conn: Connection) -> str:
    for _ in range(15):
        name = f"test_{random.randint(0, 2**31 - 1)}"
        if not conn.does_table_exist(name):
            return name
    raise RuntimeError("Cannot create a temp table")


@pytest.fixture
def table(conn):
    """A fresh ``(A INTEGER, B BIGINT, C TEXT)`` table, dropped afterwards."""
    name = _temp_table_name(conn)
    conn.execute(f"CREATE TABLE {name}(A INTEGER, B BIGINT, C TEXT)")
    yield name
    if conn.does_table_exist(name):
        conn.execute(f"DROP TABLE {name}")


class FakePGresult:
    """Stand-in for ``psycopg.pq.PGresult`` holding at most one row."""

    def __init__(
        self,
        status=pq.ExecStatus.COMMAND_OK,
        *,
        row=None,
        ftypes=(),
        fnames=None,
        param_types=(),
        command_tuples=None,
        error_message=b"",
        sqlstate=None,
    ):
        self.status = status
        self.row = row
        self.ftypes = list(ftypes)
        self.fnames = list(fnames) if fnames is not None else [f"col{i}" for i in self.ftypes]
        self.param_types = list(param_types)
        self.command_tuples = command_tuples
        self.error_message = error_message
        self.sqlstate = sqlstate
        self.cleared = False

    @property
    def nfields(self):
        return len(self.ftypes)

    def fname(self, index):
        return self.fnames[index].encode()

    def ftype(self, index):
        return self.ftypes[index]

    def fformat(self, index):
        return pq.Format.BINARY

    def get_value(self, row_number, index):
        assert row_number == 0
        return self.row[index]

    @property
    def nparams(self):
        return len(self.param_types)

    def param_type(self, index):
        return self.param_types[index]

    def error_field(self, fieldcode):
        if fieldcode == pq.DiagnosticField.SQLSTATE and self.sqlstate:
            return self.sqlstate.encode()
        return None

    def clear(self):
        self.cleared = True


class FakePGconn:
    """Scripted stand-in for ``psycopg.pq.PGconn``.

    Like libpq, it refuses new commands while results of a sent query are
    still pending, which lets tests observe whether results get drained.
    """

    def __init__(self):
        self.status = pq.ConnStatus.OK
        self.error_message = b""
        self.finished = False
        self.calls = []
        self.prepared = {}
        self.param_types = {}
        self.results = {}
        self.errors = {}
        self.pending = []
        self.single_row = False

    # -- scripting --

    def script(self, sql_fragment, *, ftypes=(), rows=(), command_tuples=None, param_types=None):
        """Rows returned by prepared statements whose SQL contains ``sql_fragment``."""
        self.results[sql_fragment] = (list(ftypes), [list(r) for r in rows], command_tuples)
        if param_types is not None:
            self.param_types[sql_fragment] = list(param_types)

    def _lookup(self, table, sql):
        for fragment, value in table.items():
            if fragment in sql:
                return value
        return None

    def _busy_error(self):
        return FakePGresult(
            pq.ExecStatus.FATAL_ERROR, error_message=b"another command is already in progress"
        )

    # -- libpq surface --

    def finish(self):
        self.finished = True

    def exec_(self, command):
        self.calls.append(("exec", command.decode()))
        if self.pending:
            return self._busy_error()
        sql = command.decode()
        if sql.startswith("DEALLOCATE "):
            self.prepared.pop(sql.split()[1], None)
        message = self._lookup(self.errors, sql)
        if message:
            return FakePGresult(pq.ExecStatus.FATAL_ERROR, error_message=message.encode())
        return FakePGresult(pq.ExecStatus.COMMAND_OK, command_tuples=0)

    def prepare(self, name, command, param_types=None):
        sql = command.decode()
        self.calls.append(("prepare", name.decode(), sql))
        if self.pending:
            return self._busy_error()
        message = self._lookup(self.errors, sql)
        if message:
            return FakePGresult(
                pq.ExecStatus.FATAL_ERROR, error_message=message.encode(), sqlstate="42601"
            )
        self.prepared[name.decode()] = sql
        return FakePGresult(pq.ExecStatus.COMMAND_OK)

    def describe_prepared(self, name):
        self.calls.append(("describe", name.decode()))
        sql = self.prepared[name.decode()]
        types = self._lookup(self.param_types, sql)
        if types is None:
            types = [0] * sql.count("$")
        return FakePGresult(pq.ExecStatus.COMMAND_OK, param_types=types)

    def exec_prepared(self, name, param_values, param_formats=None, result_format=0):
        self.calls.append(("exec_prepared", name.decode(), list(param_values)))
        if self.pending:
            return self._busy_error()
        sql = self.prepared[name.decode()]
        ftypes, rows, command_tuples = self._lookup(self.results, sql) or ([], [], None)
        if ftypes:
            return FakePGresult(pq.ExecStatus.TUPLES_OK, ftypes=ftypes, command_tuples=len(rows))
        return FakePGresult(pq.ExecStatus.COMMAND_OK, command_tuples=command_tuples)

    def send_query_prepared(self, name, param_values, param_formats=None, result_format=0):
        self.calls.append(("send_query_prepared", name.decode(), list(param_values)))
        assert not self.pending, "another command is already in progress"
        assert result_format == pq.Format.BINARY
        sql = self.prepared[name.decode()]
        ftypes, rows, command_tuples = self._lookup(self.results, sql) or ([], [], None)
        for row in rows:
            self.pending.append(
                FakePGresult(pq.ExecStatus.SINGLE_TUPLE, row=row, ftypes=ftypes)
            )
        if ftypes:
            self.pending.append(
                FakePGresult(pq.ExecStatus.TUPLES_OK, ftypes=ftypes, command_tuples=len(rows))
            )
        else:
            self.pending.append(
                FakePGresult(pq.ExecStatus.COMMAND_OK, command_tuples=command_tuples)
            )
        self.single_row = False

    def set_single_row_mode(self):
        self.calls.append(("set_single_row_mode",))
        self.single_row = True

    def get_result(self):
        if not self.pending:
            return None
        assert self.single_row, "single-row mode was not enabled"
        return self.pending.pop(0)


@pytest.fixture
def fake_pgconn(monkeypatch):
    """A FakePGconn that ``PostgresConnection.open`` will receive."""
    pgconn = FakePGconn()
    monkeypatch.setattr(postgres_backend, "_connect", lambda conninfo: pgconn)
    return pgconn


@pytest.fixture
def fake_pg(fake_pgconn):
    """``Connection`` opened on the postgres driver against a FakePGconn."""
    conn = Connection(OpenParams(driver="postgres", connection_string="host=fake"))
    yield conn
    conn.close()
