import psycopg2
import pytest

from conftest import FakeDriver

from models.connection_info import ConnectionInfo
from services import connection_service
from services.connection_service import ConnectionService, list_user_schemas
from services.pg_driver import PgDriver


class FakeConnection:
    server_version = 160002

    def __init__(self, dsn):
        self.dsn = dsn
        self.closed = 0
        self.session = None

    def set_session(self, **kwargs):
        self.session = kwargs

    def close(self):
        self.closed = 1


@pytest.fixture
def opened(monkeypatch):
    conns = []

    def fake_connect(**kwargs):
        conn = FakeConnection(kwargs)
        conns.append(conn)
        return conn

    monkeypatch.setattr(connection_service.psycopg2, "connect", fake_connect)
    return conns


def test_connect_wraps_connection_in_driver(opened, log):
    service = ConnectionService(log)
    driver = service.connect(ConnectionInfo(host="db", dbname="app", user="u"))

    assert isinstance(driver, PgDriver)
    assert service.driver is driver
    assert service.is_connected
    assert opened[0].session == {"autocommit": True}
    assert opened[0].dsn["dbname"] == "app"
    assert any("u@db:5432/app" in message and "16.0" in message for message in log.tags("OK"))


def test_connect_closes_previous_connection(opened):
    service = ConnectionService()
    service.connect(ConnectionInfo(dbname="a"))
    service.connect(ConnectionInfo(dbname="b"))

    assert opened[0].closed == 1
    assert opened[1].closed == 0


def test_reconnect_uses_last_info(opened, log):
    service = ConnectionService(log)
    service.connect(ConnectionInfo(dbname="a"))
    driver = service.reconnect()

    assert len(opened) == 2
    assert opened[1].dsn["dbname"] == "a"
    assert service.driver is driver
    assert len(log.tags("WARN")) == 1


def test_reconnect_without_info_raises():
    with pytest.raises(RuntimeError):
        ConnectionService().reconnect()


def test_test_connection_does_not_touch_active_connection(opened):
    service = ConnectionService()
    assert service.test_connection(ConnectionInfo(dbname="probe")) is True
    assert opened[0].closed == 1
    assert not service.is_connected


def test_test_connection_propagates_failure(monkeypatch):
    def refuse(**kwargs):
        raise psycopg2.OperationalError("connection refused")

    monkeypatch.setattr(connection_service.psycopg2, "connect", refuse)
    with pytest.raises(psycopg2.OperationalError):
        ConnectionService().test_connection(ConnectionInfo())


def test_close_resets_state(opened):
    service = ConnectionService()
    service.connect(ConnectionInfo())
    service.close()
    service.close()

    assert service.driver is None
    assert not service.is_connected
    assert opened[0].closed == 1


def test_get_schemas_requires_connection():
    with pytest.raises(RuntimeError):
        ConnectionService().get_schemas()


def test_list_user_schemas():
    driver = FakeDriver()
    driver.on("nspname NOT LIKE", [{"nspname": "public"}, {"nspname": "app"}])
    assert list_user_schemas(driver) == ["public", "app"]


def test_list_user_schemas_failure():
    driver = FakeDriver().fail_on("nspname NOT LIKE", "permission denied")
    with pytest.raises(RuntimeError, match="permission denied"):
        list_user_schemas(driver)
