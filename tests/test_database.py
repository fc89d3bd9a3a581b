"""Tests for measurement storage."""

from __future__ import annotations

import asyncio
import threading
import time
from datetime import datetime, timezone

import pymysql
import pytest

from tp358.shared.database import DBConfig, MeasurementStorage


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        conn = self.connection
        with conn.guard:
            conn.active += 1
            conn.max_active = max(conn.max_active, conn.active)
        try:
            time.sleep(conn.execute_delay)
            if conn.fail_on_execute:
                raise pymysql.err.OperationalError(2013, "Lost connection to MySQL server")
            conn.executed.append((" ".join(sql.split()), params))
        finally:
            with conn.guard:
                conn.active -= 1


class FakeConnection:
    def __init__(self):
        self.executed = []
        self.commits = 0
        self.open = True
        self.fail_on_execute = False
        self.execute_delay = 0.0
        # Concurrent executes on this connection
        self.guard = threading.Lock()
        self.active = 0
        self.max_active = 0

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def close(self):
        self.open = False


@pytest.fixture
def connection(monkeypatch):
    conn = FakeConnection()
    monkeypatch.setattr(pymysql, "connect", lambda **kwargs: conn)
    return conn


@pytest.fixture
def measurement_storage():
    return MeasurementStorage(DBConfig(host="localhost", user="tp358", password="", database="tp358"))


def test_insert_skipped_until_initialized(measurement_storage, connection):
    stored = measurement_storage.insert_measurement("FB:B9:30:BB:5E:55", 16.9, 40, datetime.now(timezone.utc))

    assert not stored
    assert connection.executed == []


def test_initialize_creates_table(measurement_storage, connection):
    measurement_storage.initialize()

    assert measurement_storage.is_available
    assert connection.executed[0][0].startswith("CREATE TABLE IF NOT EXISTS measurements")
    assert connection.commits == 1


def test_insert_measurement(measurement_storage, connection):
    measured_at = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
    measurement_storage.initialize()

    assert measurement_storage.insert_measurement("FB:B9:30:BB:5E:55", 16.9, 40, measured_at)

    sql, params = connection.executed[-1]
    assert sql.startswith("INSERT INTO measurements (device_mac, temperature, humidity, measured_at)")
    assert params == ("FB:B9:30:BB:5E:55", 16.9, 40, datetime(2026, 1, 15, 12, 0, 0))


def test_insert_allows_missing_values(measurement_storage, connection):
    measurement_storage.initialize()

    assert measurement_storage.insert_measurement("FB:B9:30:BB:5E:55", None, None, datetime.now(timezone.utc))
    assert connection.executed[-1][1][1:3] == (None, None)


def test_insert_failure_returns_false_and_reconnects(measurement_storage, connection):
    measurement_storage.initialize()
    connection.fail_on_execute = True

    assert not measurement_storage.insert_measurement("FB:B9:30:BB:5E:55", 16.9, 40, datetime.now(timezone.utc))
    assert not connection.open
    assert measurement_storage.is_available


def test_initialize_failure_raises(measurement_storage, monkeypatch):
    def refuse(**kwargs):
        raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")

    monkeypatch.setattr(pymysql, "connect", refuse)

    with pytest.raises(pymysql.MySQLError):
        measurement_storage.initialize()
    assert not measurement_storage.is_available


@pytest.mark.asyncio
async def test_timed_out_insert_does_not_share_the_connection(
    measurement_storage, connection, dispatcher, make_frame
):
    measurement_storage.initialize()
    connection.execute_delay = 0.3
    dispatcher.storage = measurement_storage
    dispatcher.sink_timeout = 0.05

    await dispatcher.process_frame(make_frame(address="FB:B9:30:BB:5E:55"))
    await dispatcher.process_frame(make_frame(address="F4:B8:2A:C1:37:AF"))

    # Both worker threads outlive their timed-out awaits
    def inserts():
        return [params[0] for sql, params in connection.executed if sql.startswith("INSERT")]

    for _ in range(200):
        if len(inserts()) == 2:
            break
        await asyncio.sleep(0.01)

    assert sorted(inserts()) == ["F4:B8:2A:C1:37:AF", "FB:B9:30:BB:5E:55"]
    assert connection.max_active == 1


def test_connect_uses_query_timeouts(measurement_storage, monkeypatch):
    captured = {}

    def connect(**kwargs):
        captured.update(kwargs)
        return FakeConnection()

    monkeypatch.setattr(pymysql, "connect", connect)
    measurement_storage.initialize()

    assert captured["read_timeout"] > 0
    assert captured["write_timeout"] > 0
