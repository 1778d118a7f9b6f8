from types import SimpleNamespace

import psycopg2
import pytest

from services.pg_driver import PgDriver, RecordSet, version_from_number


class FakeCursor:
    def __init__(self, conn):
        self._conn = conn
        self.description = None
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, sql, params=None):
        self._conn.calls.append(("execute", sql, params))
        if self._conn.error:
            raise psycopg2.ProgrammingError(self._conn.error)
        if self._conn.result is not None:
            columns, self._rows = self._conn.result
            self.description = [SimpleNamespace(name=name, type_code=oid) for name, oid in columns]

    def copy_expert(self, sql, stream):
        self._conn.calls.append(("copy", sql, stream.read()))

    def fetchall(self):
        return self._rows


class FakeConnection:
    server_version = 140005
    encoding = "UTF8"

    def __init__(self, result=None, error=None):
        self.calls  = []
        self.result = result
        self.error  = error

    def cursor(self, **kwargs):
        return FakeCursor(self)


@pytest.mark.parametrize("number, expected", [(90605, 9.6), (90224, 9.2), (140005, 14.0), (100001, 10.0)])
def test_version_from_number(number, expected):
    assert version_from_number(number) == expected


def test_server_version_cached_from_connection():
    assert PgDriver(FakeConnection()).server_version == 14.0


def test_execute_plain_statement():
    conn = FakeConnection()
    driver = PgDriver(conn)
    assert driver.execute("CREATE TABLE t ()") == 0
    assert conn.calls == [("execute", "CREATE TABLE t ()", None)]


def test_execute_copy_streams_payload_without_terminator():
    conn = FakeConnection()
    PgDriver(conn).execute("COPY t (id, v) FROM stdin;\n1\ta\n2\t\\N\n\\.")
    assert conn.calls == [("copy", "COPY t (id, v) FROM stdin;", "1\ta\n2\t\\N\n")]


def test_copy_to_stdout_is_not_streamed():
    conn = FakeConnection()
    PgDriver(conn).execute("COPY t TO stdout;")
    assert conn.calls[0][0] == "execute"


def test_copy_query_mentioning_stdin_is_not_streamed():
    conn = FakeConnection()
    PgDriver(conn).execute("COPY (SELECT 'x FROM stdin') TO STDOUT;\n1\n")
    assert conn.calls[0][0] == "execute"


def test_execute_failure_keeps_error():
    driver = PgDriver(FakeConnection(error="relation \"t\" does not exist"))
    assert driver.execute("SELECT * FROM t") == -1
    assert driver.last_error == 'relation "t" does not exist'


def test_select_set_returns_rows_and_columns():
    conn = FakeConnection(result=([("id", 23), ("name", 25)], [{"id": 1, "name": "a"}]))
    rs = PgDriver(conn).select_set("SELECT id, name FROM t WHERE id = %s", (1,))

    assert rs.columns == [("id", 23), ("name", 25)]
    assert rs.first() == {"id": 1, "name": "a"}
    assert conn.calls == [("execute", "SELECT id, name FROM t WHERE id = %s", (1,))]


def test_select_set_without_result_description():
    rs = PgDriver(FakeConnection()).select_set("SET search_path TO x")
    assert rs is not None
    assert len(rs) == 0


def test_select_set_failure_returns_none():
    driver = PgDriver(FakeConnection(error="syntax error"))
    assert driver.select_set("SELEC 1") is None
    assert driver.last_error == "syntax error"


def test_current_user_queried_once():
    conn = FakeConnection(result=([("usename", 19)], [{"usename": "alice"}]))
    driver = PgDriver(conn)
    assert driver.current_user == "alice"
    assert driver.current_user == "alice"
    assert len(conn.calls) == 1


def test_escape_bytea():
    assert PgDriver.escape_bytea(b"\x00\xffA") == "\\x00ff41"


def test_record_set_cursor_navigation():
    rs = RecordSet([{"a": 1}, {"a": 2}])
    assert rs.columns == [("a", None)]
    assert rs.record_count == 2
    assert rs.fields == {"a": 1}
    rs.move_next()
    rs.move_next()
    assert rs.eof
    assert rs.fields is None
    rs.move_first()
    assert rs.fields == {"a": 1}


def test_empty_record_set_is_truthy():
    rs = RecordSet([])
    assert rs
    assert rs.first() is None
    assert rs.columns == []
