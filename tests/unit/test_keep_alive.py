"""
Unit tests for KeepAliveMonitor, over socket pairs.
"""

import socket
import threading

import pytest

from productserver.core.connection import Connection, ConnectionState
from productserver.core.keep_alive import KeepAliveMonitor


class Recorder:
    """Collects the monitor's callbacks."""

    def __init__(self):
        self.ready = []
        self.closed = []
        self.event = threading.Event()

    def on_ready(self, conn):
        self.ready.append(conn)
        self.event.set()

    def on_closed(self, conn):
        self.closed.append(conn)
        self.event.set()


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def monitor(recorder):
    monitor = KeepAliveMonitor(on_ready=recorder.on_ready, on_closed=recorder.on_closed)
    monitor.start()
    yield monitor
    monitor.stop()


@pytest.fixture
def idle_conn():
    """A connection that served one request and is waiting for the next."""
    server_side, client_side = socket.socketpair()
    conn = Connection(socket=server_side, address=("127.0.0.1", 50000), idle_timeout=5.0)

    client_side.sendall(b"GET / HTTP/1.1\r\n\r\n")
    conn.read_request()
    conn.set_keep_alive()

    yield conn, client_side

    conn.abort()
    client_side.close()


def test_next_request_hands_connection_back(monitor, recorder, idle_conn):
    conn, client_side = idle_conn
    monitor.park(conn)

    client_side.sendall(b"GET /products/x HTTP/1.1\r\n\r\n")

    assert recorder.event.wait(2.0)
    assert recorder.ready == [conn]
    assert conn.state == ConnectionState.READING
    assert conn.read_request() == b"GET /products/x HTTP/1.1\r\n\r\n"


def test_idle_timeout_closes_connection(monitor, recorder, idle_conn):
    conn, client_side = idle_conn
    conn.idle_timeout = 0.2
    monitor.park(conn)

    assert recorder.event.wait(2.0)
    assert recorder.closed == [conn]
    assert conn.is_closed
    assert client_side.recv(1) == b""


def test_connection_closed_elsewhere_is_reported(monitor, recorder, idle_conn):
    conn, _ = idle_conn
    monitor.park(conn)

    assert conn.close_if_idle() is True
    monitor.wake()

    assert recorder.event.wait(2.0)
    assert recorder.closed == [conn]
    assert recorder.ready == []


def test_parking_a_closed_connection(monitor, recorder, idle_conn):
    conn, _ = idle_conn
    conn.abort()

    monitor.park(conn)

    assert recorder.event.wait(2.0)
    assert recorder.closed == [conn]


def test_stop_ends_thread(recorder):
    monitor = KeepAliveMonitor(on_ready=recorder.on_ready, on_closed=recorder.on_closed)
    monitor.start()

    monitor.stop()

    assert not monitor.is_alive()
