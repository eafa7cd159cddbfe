"""
=============================================================================
SOCKET SERVER
=============================================================================

Owns the listening socket and the accept loop. Everything above the TCP
level (parsing, routing, keep-alive, draining) belongs to HTTPServer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     SOCKET LIFECYCLE                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   bind()                                                             │
    │     socket() → SO_REUSEADDR → bind(host, port) → listen(backlog)     │
    │                                                                      │
    │   serve(handler)            ← blocks, usually on a background thread │
    │     while running:                                                   │
    │         accept() ──► Connection ──► handler(conn)                    │
    │                                                                      │
    │   shutdown()                ← any thread                             │
    │     running = False                                                  │
    │     listener.shutdown(SHUT_RDWR)  → wakes the blocked accept()       │
    │     serve() returns and closes the listener                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Binding is separate from serving so that "address already in use" is
reported to the caller that asked for the bind, before any background
thread exists.

The listener also has a short accept timeout, so the loop notices the
running flag even on platforms where shutdown() does not interrupt a
blocked accept().

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5


class SocketServer:
    """
    Low-level TCP listener.

        server = SocketServer(config)
        server.bind()
        server.serve(handle_connection)   # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig):
        """
        Args:
            config: Supplies host, port, backlog and the per-connection
                    limits copied onto every Connection.

        Nothing is opened until bind().
        """
        self.config = config

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None
        self._running = False
        self._serving = False
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        """
        The address actually bound.

        Differs from the configured one when port 0 asked the OS to pick.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind immediately after a restart despite TIME_WAIT sockets.
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self):
        """
        Create the listening socket.

        Raises:
            OSError: Bind or listen failed (address in use, permission
                     denied, unknown host). The socket is closed first.
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError:
            sock.close()
            raise

        self._socket = sock
        self._bound_address = sock.getsockname()[:2]
        self._running = True
        self._closed.clear()

        logger.debug(f"Listening on {self._bound_address[0]}:{self._bound_address[1]}")

    def serve(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown().

        Args:
            connection_handler: Called on the accept thread with every new
                                Connection. It must hand the connection off
                                quickly (e.g. to a thread pool).
        """
        with self._lock:
            if not self._running or self._socket is None:
                return
            self._serving = True

        try:
            self._accept_loop(connection_handler)
        finally:
            with self._lock:
                self._serving = False
                self._close_socket()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break
                # EMFILE, ECONNABORTED and friends: keep listening
                logger.error(f"Accept error: {e}")
                continue

            if not self._running:
                # Raced with shutdown(); never serve it
                logger.debug(f"Refusing connection from {client_address[0]} during shutdown")
                client_socket.close()
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                read_timeout=self.config.read_timeout,
                write_timeout=self.config.write_timeout,
                idle_timeout=self.config.idle_timeout,
                max_request_size=self.config.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """
        Stop accepting. Safe to call from any thread, more than once.

        If serve() is blocked in accept() it is woken and closes the
        listener on its way out; otherwise the listener is closed here.
        """
        with self._lock:
            if not self._running and self._socket is None:
                return

            self._running = False

            if not self._serving:
                self._close_socket()
                return

            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # not supported on a listener here; the accept timeout covers it

    def _close_socket(self):
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
            logger.debug("Listener closed")

        self._closed.set()

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the listener is closed.

        Returns:
            True once closed, False on timeout.
        """
        return self._closed.wait(timeout)
