"""
=============================================================================
KEEP-ALIVE MONITOR
=============================================================================

Holds idle keep-alive connections without holding a worker thread.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   worker: response sent, keep-alive ──► park(conn) ──► worker free   │
    │                                              │                       │
    │                                              ▼                       │
    │                                    selector (one thread)             │
    │                                    │            │            │       │
    │                           bytes arrive    idle_timeout    closed by  │
    │                                    │            │          shutdown  │
    │                                    ▼            ▼            │       │
    │                            claim() → on_ready  close ──► on_closed   │
    │                            (back to the pool)                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Without this, a client that keeps its connection open and sends nothing
pins a worker for idle_timeout, and a handful of such clients starve the
pool.

All selector calls happen on the monitor thread. Other threads hand
connections over through a pending list and wake the selector through a
socket pair.

=============================================================================
"""

import logging
import selectors
import socket
import threading
import time
from typing import Callable, Dict, List, Tuple

from .connection import Connection


logger = logging.getLogger(__name__)

# Upper bound on one select() call, so closed connections are swept
# even when nobody wakes the monitor
MAX_WAIT = 0.5


class KeepAliveMonitor(threading.Thread):
    """
    Watches parked keep-alive connections for their next request.

        monitor = KeepAliveMonitor(on_ready=resume, on_closed=release)
        monitor.start()
        monitor.park(conn)       # conn.state must be KEEP_ALIVE
        ...
        monitor.stop()

    on_ready(conn) runs on the monitor thread once conn has been claimed
    for reading; it must not block. on_closed(conn) runs for connections
    that went away while parked (idle timeout, peer or shutdown closed it).
    """

    def __init__(
        self,
        on_ready: Callable[[Connection], None],
        on_closed: Callable[[Connection], None],
    ):
        super().__init__(name="keep-alive-monitor", daemon=True)
        self._on_ready = on_ready
        self._on_closed = on_closed

        self._selector = selectors.DefaultSelector()
        self._wake_reader, self._wake_writer = socket.socketpair()
        self._wake_reader.setblocking(False)
        self._wake_writer.setblocking(False)
        self._selector.register(self._wake_reader, selectors.EVENT_READ)

        self._pending: List[Connection] = []
        self._pending_lock = threading.Lock()
        # conn.id → (connection, monotonic time its idle timeout runs out)
        self._parked: Dict[str, Tuple[Connection, float]] = {}
        self._stopping = threading.Event()

    @property
    def parked_count(self) -> int:
        return len(self._parked)

    def park(self, conn: Connection):
        """Hand an idle keep-alive connection to the monitor (any thread)."""
        with self._pending_lock:
            self._pending.append(conn)
        self.wake()

    def wake(self):
        """Interrupt select() so the monitor re-checks its connections."""
        try:
            self._wake_writer.send(b"\0")
        except OSError:
            pass  # already awake (buffer full) or stopped

    def stop(self, timeout: float = 2.0):
        self._stopping.set()
        self.wake()
        if self.is_alive():
            self.join(timeout)

    # =========================================================================
    # MONITOR THREAD
    # =========================================================================

    def run(self):
        try:
            while not self._stopping.is_set():
                self._sweep_closed()
                self._register_pending()

                for key, _ in self._selector.select(self._next_wait()):
                    if key.fileobj is self._wake_reader:
                        self._drain_wakeups()
                    else:
                        self._ready(key.data)

                self._expire_idle()
        finally:
            self._selector.close()
            self._wake_reader.close()
            self._wake_writer.close()
            logger.debug("Keep-alive monitor stopped")

    def _register_pending(self):
        with self._pending_lock:
            pending, self._pending = self._pending, []

        now = time.monotonic()
        for conn in pending:
            if conn.is_closing:
                self._on_closed(conn)
                continue

            try:
                try:
                    self._selector.register(conn.socket, selectors.EVENT_READ, conn)
                except KeyError:
                    # fd reused since a parked socket was closed
                    self._sweep_closed()
                    self._selector.register(conn.socket, selectors.EVENT_READ, conn)
            except (KeyError, ValueError, OSError) as e:
                # Socket closed between the check and register()
                logger.debug(f"[{conn.id}] Cannot watch connection: {e}")
                self._on_closed(conn)
                continue

            self._parked[conn.id] = (conn, now + conn.idle_timeout)

    def _sweep_closed(self):
        """Forget connections another thread closed while they were parked."""
        closed = [conn for conn, _ in self._parked.values() if conn.is_closing]
        for conn in closed:
            self._forget(conn)
            self._on_closed(conn)

    def _ready(self, conn: Connection):
        self._forget(conn)

        if conn.claim():
            self._on_ready(conn)
        else:
            self._on_closed(conn)

    def _expire_idle(self):
        now = time.monotonic()
        expired = [conn for conn, deadline in self._parked.values() if deadline <= now]

        for conn in expired:
            self._forget(conn)
            if conn.close_if_idle():
                logger.debug(f"[{conn.id}] Keep-alive idle timeout")
            self._on_closed(conn)

    def _forget(self, conn: Connection):
        self._parked.pop(conn.id, None)
        try:
            self._selector.unregister(conn.socket)
        except (KeyError, ValueError):
            pass

    def _next_wait(self) -> float:
        if not self._parked:
            return MAX_WAIT
        nearest = min(deadline for _, deadline in self._parked.values()) - time.monotonic()
        return min(max(nearest, 0), MAX_WAIT)

    def _drain_wakeups(self):
        try:
            while self._wake_reader.recv(1024):
                pass
        except BlockingIOError:
            pass
