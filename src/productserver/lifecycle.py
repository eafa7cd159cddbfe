"""
=============================================================================
PROCESS LIFECYCLE
=============================================================================

Runs one HTTPServer from startup to exit status:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  main thread                        ServeTask thread                 │
    │  ───────────                        ────────────────                 │
    │  signals.subscribe()                                                 │
    │  server.listen()  ── fails? ──► exit 1                               │
    │  log "Starting server at ..."                                        │
    │  task.start() ───────────────────►  server.serve()                   │
    │                                       accept, accept, ...            │
    │  signals.wait()   ◄── Ctrl+C                                         │
    │  server.shutdown(3s) ────────────►  accept loop returns              │
    │  task.join()      ◄───────────────  thread ends                      │
    │  log "Shutting down"                                                 │
    │  signals.close()                                                     │
    │  exit 0                                                              │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SIGNALS
=============================================================================

Only SIGINT (Ctrl+C) starts a graceful shutdown. SIGTERM and SIGQUIT keep
their default behaviour and end the process without cleanup, and SIGKILL
cannot be caught at all.

The interrupt arrives through a SignalSource object handed to Lifecycle,
so tests drive shutdown with a plain SignalSource and trigger() instead
of sending real signals to the test process.

While shutdown is in progress the SIGINT handler stays installed. A
second Ctrl+C is absorbed; the grace period bounds how long that lasts.

=============================================================================
"""

import logging
import signal
import threading
from typing import Optional

from .server import HTTPServer, ServerStartError


logger = logging.getLogger(__name__)


class SignalSource:
    """
    A subscription that fires once.

    The base class has no OS hookup: call trigger() to fire it. Useful on
    its own for tests and for embedding the server in another program.

        signals = SignalSource()
        signals.subscribe()
        ...
        signals.trigger()           # from any thread
        signals.wait(0.5)           # → True
        signals.close()
    """

    def __init__(self):
        self._event = threading.Event()
        self._subscribed = False

    @property
    def subscribed(self) -> bool:
        return self._subscribed

    @property
    def triggered(self) -> bool:
        return self._event.is_set()

    def subscribe(self) -> "SignalSource":
        self._subscribed = True
        return self

    def trigger(self):
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until triggered. Returns False if `timeout` ran out first."""
        return self._event.wait(timeout)

    def close(self):
        self._subscribed = False

    def __enter__(self):
        return self.subscribe()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class InterruptSignal(SignalSource):
    """
    SignalSource fired by SIGINT.

    subscribe() installs the handler and remembers the previous one;
    close() puts the previous one back. Both must run on the main thread,
    which is where Python delivers signals.
    """

    def __init__(self, signum: int = signal.SIGINT):
        super().__init__()
        self.signum = signum
        self._previous_handler = None

    def subscribe(self) -> "InterruptSignal":
        if self._subscribed:
            return self

        self._previous_handler = signal.signal(self.signum, self._handle)
        self._subscribed = True
        return self

    def _handle(self, signum, frame):
        if not self.triggered:
            logger.info(f"Received {signal.Signals(signum).name}")
        self.trigger()

    def close(self):
        if not self._subscribed:
            return

        previous = self._previous_handler
        if previous is None:
            previous = signal.SIG_DFL
        signal.signal(self.signum, previous)

        self._previous_handler = None
        self._subscribed = False


class ServeTask(threading.Thread):
    """
    Background thread running server.serve().

    An exception that ends the accept loop is kept in `error` for the
    coordinator to report; it does not leave the thread.
    """

    def __init__(self, server: HTTPServer):
        super().__init__(name="serve", daemon=True)
        self.server = server
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            self.server.serve()
        except Exception as e:
            self.error = e


class Lifecycle:
    """
    Coordinates startup, the interrupt, and graceful shutdown.

        server = create_app(config)
        sys.exit(Lifecycle(server).run())

    Exit status: 0 after an interrupt (clean or forced shutdown), 1 when
    the server could not start or the accept loop died.
    """

    def __init__(
        self,
        server: HTTPServer,
        signals: Optional[SignalSource] = None,
        shutdown_timeout: Optional[float] = None,
        poll_interval: float = 0.5,
        join_timeout: float = 2.0,
    ):
        """
        Args:
            server: The server to run. Must be in the CREATED state.
            signals: Interrupt source; InterruptSignal() when omitted.
            shutdown_timeout: Grace period; config.shutdown_timeout when omitted.
            poll_interval: How often the main thread checks the serve task.
            join_timeout: How long to wait for the serve task after shutdown.
        """
        self.server = server
        self.signals = signals if signals is not None else InterruptSignal()
        self.shutdown_timeout = shutdown_timeout
        self.poll_interval = poll_interval
        self.join_timeout = join_timeout

        self.task: Optional[ServeTask] = None
        self.clean_shutdown: Optional[bool] = None

    def run(self) -> int:
        """Serve until interrupted. Returns the process exit status."""
        self.signals.subscribe()

        try:
            try:
                self.server.listen()
            except ServerStartError as e:
                logger.error(str(e))
                return 1

            host, port = self.server.address
            logger.info(f"Starting server at {host}:{port}")

            self.task = ServeTask(self.server)
            self.task.start()

            exit_code = self._wait_for_interrupt()

            self.clean_shutdown = self.server.shutdown(self.shutdown_timeout)

            self.task.join(self.join_timeout)
            if self.task.is_alive():
                logger.warning("Accept loop did not finish after shutdown")

            logger.info("Shutting down")
            return exit_code
        finally:
            self.signals.close()

    def _wait_for_interrupt(self) -> int:
        """Block until the interrupt (→ 0) or until the serve task dies (→ 1)."""
        while not self.signals.wait(self.poll_interval):
            if self.task.is_alive():
                continue

            if self.task.error is not None:
                logger.error(
                    f"Server stopped unexpectedly: {self.task.error}",
                    exc_info=self.task.error,
                )
            else:
                logger.error("Server stopped unexpectedly")
            return 1

        return 0
