"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer ──accept──► HTTPServer._handle_connection             │
    │                                 │  track + submit                    │
    │                                 ▼                                    │
    │                            ThreadPool worker ◄──────────┐            │
    │                                 │                       │ next       │
    │                                 ▼                       │ request    │
    │            _process_connection (keep-alive loop)        │            │
    │              read_request → parse → middleware → send   │            │
    │                                 │ idle                  │            │
    │                                 ▼                       │            │
    │                          KeepAliveMonitor ──────────────┘            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SERVER STATES
=============================================================================

    CREATED ──listen()──► RUNNING ──shutdown()──► SHUTTING_DOWN ──► STOPPED
       │                                                              ▲
       └──────────────────────── shutdown() ──────────────────────────┘

There is no way back from STOPPED; a stopped server cannot listen again.

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    shutdown(timeout)
      │
      ├─ 1. state = SHUTTING_DOWN, keep-alive off for every response
      ├─ 2. wake the accept loop and close the listener
      │       new connections are refused from here on
      ├─ 3. every 50ms until no connections are left or the deadline:
      │       close connections idle between keep-alive requests
      ├─ 4. deadline passed? abort whatever is still open
      │       (SHUT_RDWR + close; responses may be truncated)
      └─ 5. stop the worker threads and the keep-alive monitor, state = STOPPED

Returns True when everything finished inside the grace period, False when
connections had to be aborted. Running out of time is logged at INFO and
is not an error.

=============================================================================
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional, Callable, Dict, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, RequestTooLarge, ThreadPool, KeepAliveMonitor
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, ResponseBuilder, HTTPStatus,
    Router, internal_error,
)
from .middleware import MiddlewarePipeline, Middleware, LoggingMiddleware
from .handlers import register_catalog


logger = logging.getLogger(__name__)

DRAIN_POLL_INTERVAL = 0.05


class ServerState(Enum):
    CREATED = "created"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"


class ServerError(Exception):
    """Base class for server lifecycle errors."""


class ServerStartError(ServerError):
    """The listening socket could not be bound. Fatal at startup."""


class ServerClosedError(ServerError):
    """The server has been shut down and cannot be used again."""


class HTTPServer:
    """
    Multi-threaded HTTP/1.1 server with graceful shutdown.

        server = HTTPServer(ServerConfig(port=8000))

        @server.get("/")
        def home(request):
            return ok("Home")

        server.listen()                       # bind; errors surface here
        threading.Thread(target=server.serve).start()
        ...
        server.shutdown(timeout=3.0)          # from any thread

    start() is listen() followed by serve() on the calling thread.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults to ServerConfig().

        Raises:
            ValueError: The configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._router = Router()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None

        self._state = ServerState.CREATED
        self._state_lock = threading.Lock()
        self._stopped = threading.Event()
        self._shutdown_clean = True

        # Live connections, from accept until closed; parked ones included
        self._connections: Dict[str, Connection] = {}
        self._conn_lock = threading.Lock()
        self._conn_released = threading.Condition(self._conn_lock)
        self._draining = threading.Event()
        self._keep_alive: Optional[KeepAliveMonitor] = None

    # =========================================================================
    # CONFIGURATION
    # =========================================================================

    def use(self, middleware: Middleware) -> "HTTPServer":
        """Add middleware; the first added runs outermost."""
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self._router

    def route(self, path: str, method: str = "GET"):
        """Decorator registering a handler for method + path."""
        return self._router.route(path, method)

    def get(self, path: str):
        """Decorator registering a GET handler."""
        return self._router.get(path)

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once listen() has run with port 0."""
        return self._socket_server.address

    @property
    def active_connections(self) -> int:
        with self._conn_lock:
            return len(self._connections)

    # =========================================================================
    # STARTING
    # =========================================================================

    def listen(self):
        """
        Bind the listening socket. CREATED → RUNNING.

        Raises:
            ServerStartError: Bind or listen failed (e.g. address in use).
            ServerClosedError: The server was already shut down.
            RuntimeError: The server is already listening.
        """
        with self._state_lock:
            if self._state in (ServerState.SHUTTING_DOWN, ServerState.STOPPED):
                raise ServerClosedError("Server is shut down")
            if self._state == ServerState.RUNNING:
                raise RuntimeError("Server is already listening")

            try:
                self._socket_server.bind()
            except OSError as e:
                raise ServerStartError(f"Cannot listen on {self.config.address}: {e}") from e

            self._handler = self._middleware.wrap(self._router.handle)
            self._thread_pool.start()
            self._keep_alive = KeepAliveMonitor(on_ready=self._dispatch, on_closed=self._close)
            self._keep_alive.start()
            self._state = ServerState.RUNNING

        logger.debug(f"Routes:\n{self._router.describe()}")

    def serve(self):
        """
        Accept connections until shutdown(). Blocks.

        Returns normally once shutdown() has closed the listener.

        Raises:
            ServerClosedError: The server was already shut down.
            RuntimeError: listen() has not been called.
        """
        state = self._state
        if state in (ServerState.SHUTTING_DOWN, ServerState.STOPPED):
            raise ServerClosedError("Server is shut down")
        if state != ServerState.RUNNING:
            raise RuntimeError("Call listen() before serve()")

        self._socket_server.serve(self._handle_connection)
        logger.debug("Accept loop finished")

    def start(self):
        """listen() then serve(). Blocks until shutdown()."""
        self.listen()
        self.serve()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Stop accepting and drain in-flight connections within `timeout`.

        Args:
            timeout: Grace period in seconds. Defaults to
                     config.shutdown_timeout.

        Returns:
            True if every connection finished in time, False if some had
            to be closed forcibly.
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout

        with self._state_lock:
            state = self._state

            if state == ServerState.CREATED:
                self._state = ServerState.STOPPED
                self._socket_server.shutdown()
                self._stopped.set()
                return True

            if state == ServerState.RUNNING:
                self._state = ServerState.SHUTTING_DOWN
                self._draining.set()

        if state != ServerState.RUNNING:
            # Another call got here first
            self._stopped.wait()
            return self._shutdown_clean

        deadline = time.monotonic() + timeout

        self._socket_server.shutdown()
        self._socket_server.wait_closed(max(deadline - time.monotonic(), 0))

        clean = self._drain(deadline)
        if not clean:
            aborted = self._abort_connections()
            logger.info(
                f"Shutdown grace period of {timeout:g}s exceeded, "
                f"forcibly closed {aborted} connection(s)"
            )

        self._thread_pool.shutdown(wait=False)
        self._keep_alive.stop()

        with self._state_lock:
            self._state = ServerState.STOPPED
            self._shutdown_clean = clean
        self._stopped.set()

        logger.debug("Server stopped")
        return clean

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown() has finished."""
        return self._stopped.wait(timeout)

    def _drain(self, deadline: float) -> bool:
        """Wait for tracked connections to go away, closing idle ones."""
        with self._conn_lock:
            while True:
                for conn in list(self._connections.values()):
                    if conn.close_if_idle():
                        self._keep_alive.wake()

                if not self._connections:
                    return True

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False

                self._conn_released.wait(min(remaining, DRAIN_POLL_INTERVAL))

    def _abort_connections(self) -> int:
        with self._conn_lock:
            remaining = list(self._connections.values())

        for conn in remaining:
            conn.abort()

        return len(remaining)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _track(self, conn: Connection):
        with self._conn_lock:
            self._connections[conn.id] = conn

    def _release(self, conn: Connection):
        with self._conn_lock:
            self._connections.pop(conn.id, None)
            self._conn_released.notify_all()

    def _close(self, conn: Connection):
        conn.close()
        self._release(conn)

    def _handle_connection(self, conn: Connection):
        """
        Hand a new connection to the thread pool (runs on the accept thread).

        The connection is tracked before it is queued, so shutdown waits
        for connections that are accepted but not yet picked up.
        """
        self._track(conn)
        self._dispatch(conn)

    def _dispatch(self, conn: Connection):
        """
        Queue a connection that has a request to read; 503 if the pool is full.

        Runs on the accept thread for new connections and on the
        keep-alive monitor for parked ones whose next request arrived.
        """
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                block=False,
            )
        except RuntimeError:
            submitted = False

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            self._close(conn)

    def _process_connection(self, conn: Connection):
        """
        Worker-thread entry point: serve the connection, then release it
        unless it was parked with the keep-alive monitor.
        """
        parked = False
        try:
            parked = self._serve_requests(conn)
        except Exception as e:
            if conn.aborted:
                logger.debug(f"[{conn.id}] Aborted: {type(e).__name__}: {e}")
            else:
                logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            if not parked:
                self._close(conn)

    def _serve_requests(self, conn: Connection) -> bool:
        """
        The keep-alive loop.

        =====================================================================
        CONNECTION PROCESSING LOOP
        =====================================================================

            1. read one request (408 on read deadline, 413 if too large)
            2. parse it (parse errors answer with their own status)
            3. middleware + router + handler (exceptions answer 500)
            4. send the response
            5. keep-alive and not shutting down?
                 pipelined bytes buffered → back to 1
                 otherwise → park with the keep-alive monitor, free the worker

        The first request on a connection is always served, even if
        shutdown started after the connection was accepted. Only the
        decision to wait for another request looks at the drain flag.

        =====================================================================

        Returns:
            True if the connection was parked and must stay open.
        """
        while True:
            try:
                raw_request = conn.read_request()
            except TimeoutError:
                logger.debug(f"[{conn.id}] Read timeout")
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request Timeout")
                return False
            except RequestTooLarge as e:
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                return False

            if raw_request is None:
                return False

            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                logger.debug(f"[{conn.id}] Parse error: {e}")
                self._send_error(conn, e.status_code, str(e))
                return False

            conn.mark_processing()

            try:
                response = self._handler(request)
            except Exception as e:
                logger.exception(f"[{conn.id}] Handler error: {e}")
                response = internal_error()

            keep_alive = (
                self.config.keep_alive
                and request.is_keep_alive
                and not self._draining.is_set()
            )

            if keep_alive:
                response.headers.setdefault("Connection", "keep-alive")
                response.headers.setdefault("Keep-Alive", f"timeout={int(self.config.idle_timeout)}")
            else:
                response.headers["Connection"] = "close"

            if not conn.send_response(response.to_bytes(self.config.server_name)):
                return False

            if not keep_alive or self._draining.is_set():
                return False

            conn.set_keep_alive()

            if not conn.has_buffered_data:
                self._keep_alive.park(conn)
                return True

    def _send_error(self, conn: Connection, status: HTTPStatus, message: str):
        """Answer a request that never reached a handler, then close."""
        response = (ResponseBuilder()
            .status(status)
            .text(message)
            .close_connection()
            .build())

        conn.send_response(response.to_bytes(self.config.server_name))


def create_app(config: Optional[ServerConfig] = None) -> HTTPServer:
    """
    Build the product server: catalog routes plus the access log.

        app = create_app(ServerConfig(port=0))
        app.listen()
        host, port = app.address
    """
    config = config or ServerConfig()
    server = HTTPServer(config)

    if config.access_log:
        server.use(LoggingMiddleware())

    register_catalog(server.router)
    return server
