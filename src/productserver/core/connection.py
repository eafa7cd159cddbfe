"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the API the server needs: read one
complete request, send one response, close (politely or by force).

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

    Client sends:   "GET /products/abc HTTP/1.1\r\nHost: x\r\n\r\n"

    Server may see: recv() → "GET /prod"
                    recv() → "ucts/abc HTTP/1.1\r\nHost: x\r\n\r\n"

So reads are buffered until the header terminator (\r\n\r\n) shows up,
then Content-Length more bytes are read for the body. Bytes beyond the
request (a pipelined next request) stay in the buffer.

=============================================================================
DEADLINES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   first request     ├──────────── read_timeout ────────────┤         │
    │                     wait for bytes, headers, body                    │
    │                                                                      │
    │   keep-alive        ├── idle_timeout ──┤├──── read_timeout ────┤     │
    │                     waiting, no bytes    first byte → full request   │
    │                                                                      │
    │   response          ├──── write_timeout ────┤                        │
    │                     sendall()                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The read deadline is absolute: every recv() is given only the time left
until the deadline, so a client trickling one byte at a time cannot hold
the connection past read_timeout.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ──► READING ...
     │         │                          │            │
     └─────────┴──────────► CLOSING ◄─────┴────────────┘
                               │
                               ▼
                            CLOSED

KEEP_ALIVE means "served at least one request, waiting for the next one,
nothing buffered". That is exactly the set of connections graceful
shutdown may close without losing work (see is_idle). While a connection
sits in KEEP_ALIVE no worker thread holds it; the KeepAliveMonitor
watches the socket and claim()s it back when the next request arrives.

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""

    NEW = "new"                # Just accepted, nothing read yet
    READING = "reading"        # Receiving a request
    PROCESSING = "processing"  # Handler is executing
    WRITING = "writing"        # Sending the response
    KEEP_ALIVE = "keep_alive"  # Waiting for the next request
    CLOSING = "closing"
    CLOSED = "closed"


class RequestTooLarge(ValueError):
    """The buffered request grew past max_request_size."""


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short identifier used in log lines.
        state: Current connection state.
        requests_handled: Complete requests read so far.
        aborted: Set once abort() has force-closed the socket.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = field(default_factory=time.monotonic)
    requests_handled: int = 0
    aborted: bool = False

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────
    buffer_size: int = 8192
    read_timeout: float = 15.0
    write_timeout: float = 15.0
    idle_timeout: float = 15.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.read_timeout)

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.monotonic() - self.created_at

    @property
    def is_idle(self) -> bool:
        """
        True when closing the connection now loses no work.

        Only a keep-alive connection between requests qualifies. A NEW
        connection is never idle: its first request is always served.
        """
        return (
            self.state == ConnectionState.KEEP_ALIVE
            and self.requests_handled > 0
            and not self._buffer
        )

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def is_closing(self) -> bool:
        return self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED)

    @property
    def has_buffered_data(self) -> bool:
        """A pipelined request (or part of one) is already buffered."""
        return bool(self._buffer)

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        ┌─────────────────────────────────────────────────────────────────┐
        │   keep-alive and buffer empty?                                  │
        │       └─ wait up to idle_timeout for the first byte             │
        │   deadline = now + read_timeout                                 │
        │   while no \\r\\n\\r\\n:  recv(time left) → buffer                  │
        │   Content-Length → while body short: recv(time left)            │
        │   split request off the front of the buffer                     │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The request bytes, or None when the peer closed the connection
            (or went quiet) between requests.

        Raises:
            TimeoutError: The request was not complete by the read deadline.
            RequestTooLarge: The request exceeds max_request_size.
        """
        if self._buffer:
            self.state = ConnectionState.READING
        elif self.requests_handled > 0:
            # KEEP_ALIVE, or READING once claim() has handed it back
            if self.is_closing:
                return None
            first = self._wait_for_next_request()
            if not first:
                return None
            with self._close_lock:
                if self.is_closing:
                    return None
                self._buffer = first
                self.state = ConnectionState.READING
        else:
            self.state = ConnectionState.READING

        deadline = time.monotonic() + self.read_timeout

        while b"\r\n\r\n" not in self._buffer:
            chunk = self._recv_until(deadline)
            if not chunk:
                if self._buffer and not self.aborted:
                    logger.debug(f"[{self.id}] Peer closed mid-request")
                self._buffer = b""
                return None
            self._buffer += chunk
            self._check_size()

        header_end = self._buffer.find(b"\r\n\r\n")
        body_start = header_end + 4
        content_length = self._parse_content_length(self._buffer[:header_end])

        if body_start + content_length > self.max_request_size:
            raise RequestTooLarge(
                f"Request too large: {body_start + content_length} bytes"
            )

        while len(self._buffer) - body_start < content_length:
            chunk = self._recv_until(deadline)
            if not chunk:
                # Incomplete body; let the parser report it
                break
            self._buffer += chunk

        request_end = body_start + content_length
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]

        self.requests_handled += 1
        self.last_activity = time.monotonic()
        return request_data

    def _wait_for_next_request(self) -> bytes:
        """Block up to idle_timeout for the first byte of the next request."""
        try:
            self.socket.settimeout(self.idle_timeout)
            return self._recv()
        except socket.timeout:
            logger.debug(f"[{self.id}] Keep-alive idle timeout")
            return b""

    def _recv_until(self, deadline: float) -> bytes:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError("Request read timeout")

        try:
            self.socket.settimeout(remaining)
            return self._recv()
        except socket.timeout:
            raise TimeoutError("Request read timeout") from None

    def _recv(self) -> bytes:
        """
        socket.recv() with connection-loss errors mapped to b"".

        socket.timeout is left to the caller.
        """
        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError as e:
            if not self.aborted:
                logger.debug(f"[{self.id}] recv failed: {e}")
            return b""

        self.last_activity = time.monotonic()
        return data

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Pull Content-Length out of raw header bytes.

        Needed before the request can be parsed. A missing or invalid
        value reads as 0 here; the parser rejects invalid values later.
        """
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(int(line.split(":", 1)[1].strip()), 0)
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def mark_processing(self):
        self.state = ConnectionState.PROCESSING

    def send_response(self, data: bytes) -> bool:
        """
        Send a complete response within write_timeout.

        Returns:
            True if every byte was handed to the kernel, False if the
            connection was lost, timed out or aborted.
        """
        if self.aborted or self.is_closed:
            return False

        self.state = ConnectionState.WRITING

        try:
            self.socket.settimeout(self.write_timeout)
            self.socket.sendall(data)
        except socket.timeout:
            logger.warning(f"[{self.id}] Write timeout after {self.write_timeout}s")
            return False
        except OSError as e:
            if self.aborted:
                logger.debug(f"[{self.id}] Send interrupted by forced close")
            else:
                logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.monotonic()
        return True

    def set_keep_alive(self):
        """Response sent; the next read_request() waits for another request."""
        self.state = ConnectionState.KEEP_ALIVE

    def claim(self) -> bool:
        """
        Take an idle keep-alive connection back for reading.

        Called when the next request starts arriving. Shares the lock with
        close_if_idle(), so exactly one of the two wins.

        Returns:
            True if the connection was idle and is now READING, False if
            it is already being closed.
        """
        with self._close_lock:
            if self.state != ConnectionState.KEEP_ALIVE:
                return False
            self.state = ConnectionState.READING
            return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

            1. shutdown(SHUT_WR)  → client sees FIN after our last byte
            2. drain briefly       → don't leave unread data (avoids RST)
            3. close()             → release the file descriptor
        """
        with self._close_lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.settimeout(0.2)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self._release()
        logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests "
            f"({self.age:.2f}s)"
        )

    def close_if_idle(self) -> bool:
        """
        Close the connection from another thread if it is between requests.

        The idle check and the state change happen under the same lock the
        reader takes when the next request starts arriving, so a request
        that has begun is never cut off here.

        Returns:
            True if the connection was idle and is now closed.
        """
        with self._close_lock:
            if not self.is_idle:
                return False
            self.state = ConnectionState.CLOSING

        self._interrupt()
        logger.debug(f"[{self.id}] Idle connection closed")
        return True

    def abort(self):
        """
        Force the connection closed from another thread.

        shutdown(SHUT_RDWR) wakes a worker blocked in recv() or sendall();
        the worker sees end-of-stream or an OSError and unwinds. A response
        being written may be truncated.
        """
        with self._close_lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.aborted = True
            self.state = ConnectionState.CLOSING

        self._interrupt()
        logger.debug(f"[{self.id}] Connection aborted")

    def _interrupt(self):
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        self._release()

    def _release(self):
        with self._close_lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSED

        try:
            self.socket.close()
        except OSError:
            pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
