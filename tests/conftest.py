"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Dict, Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from productserver import HTTPServer, ServerConfig, create_app


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /products/widget123?ref=home&ref=nav HTTP/1.1\r\n"
        b"Host: 127.0.0.1:8000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/plain\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b"key=widget123"
    return (
        b"POST /products HTTP/1.1\r\n"
        b"Host: 127.0.0.1:8000\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration on a free port with short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        min_workers=2,
        max_workers=32,
        read_timeout=5.0,
        write_timeout=5.0,
        idle_timeout=5.0,
        shutdown_timeout=3.0,
        access_log=False,
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


# =============================================================================
# RAW HTTP CLIENT
# =============================================================================


class RawResponse:
    """A response read off a socket by HTTPClient."""

    def __init__(self, status: int, headers: Dict[str, str], body: bytes):
        self.status = status
        self.headers = headers
        self.body = body

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


class HTTPClient:
    """
    Minimal blocking HTTP/1.1 client over raw sockets.

    Raw sockets rather than urllib so tests control exactly when bytes go
    out and can keep a connection open across requests.
    """

    def __init__(self, address: Tuple[str, int], timeout: float = 5.0):
        self.address = address
        self.timeout = timeout

    def connect(self) -> socket.socket:
        sock = socket.create_connection(self.address, timeout=self.timeout)
        return sock

    @staticmethod
    def format_request(
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
        keep_alive: bool = False,
    ) -> bytes:
        lines = [f"{method} {path} HTTP/1.1", "Host: test"]
        for name, value in (headers or {}).items():
            lines.append(f"{name}: {value}")
        if not keep_alive:
            lines.append("Connection: close")
        return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

    @staticmethod
    def read_response(sock: socket.socket) -> Optional[RawResponse]:
        """
        Read one response (headers + Content-Length body). None if closed first.

        Never reads past the end of the response, so pipelined responses
        stay on the socket for the next call.
        """
        head = b""
        while not head.endswith(b"\r\n\r\n"):
            byte = sock.recv(1)
            if not byte:
                return None
            head += byte

        lines = head[:-4].decode("latin-1").split("\r\n")
        status = int(lines[0].split(" ")[1])

        headers = {}
        for line in lines[1:]:
            name, _, value = line.partition(":")
            headers[name.strip().lower()] = value.strip()

        length = int(headers.get("content-length", "0"))
        body = b""
        while len(body) < length:
            chunk = sock.recv(length - len(body))
            if not chunk:
                break
            body += chunk

        return RawResponse(status, headers, body)

    def request(
        self,
        method: str,
        path: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> RawResponse:
        """One request on a fresh connection."""
        with self.connect() as sock:
            sock.sendall(self.format_request(method, path, headers))
            response = self.read_response(sock)

        assert response is not None, "connection closed without a response"
        return response

    def get(self, path: str, **kwargs) -> RawResponse:
        return self.request("GET", path, **kwargs)


# =============================================================================
# RUNNING SERVER
# =============================================================================


class TestServer:
    """Runs an HTTPServer's accept loop on a background thread."""

    __test__ = False  # not a test class, despite the name

    def __init__(self, server: HTTPServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self) -> "TestServer":
        self.server.listen()
        self._thread = threading.Thread(target=self.server.serve, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: float = 1.0) -> bool:
        result = self.server.shutdown(timeout)
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        return result

    @property
    def serve_thread_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


@pytest.fixture
def app(config: ServerConfig) -> HTTPServer:
    """The product server, not yet listening."""
    return create_app(config)


@pytest.fixture
def running_server(app: HTTPServer) -> Generator[TestServer, None, None]:
    """The product server accepting connections on a background thread."""
    test_srv = TestServer(app).start()

    yield test_srv

    test_srv.stop()


@pytest.fixture
def client(running_server: TestServer) -> HTTPClient:
    return HTTPClient(running_server.address)


@pytest.fixture
def make_client():
    """Factory for clients of servers a test starts itself."""
    return HTTPClient


@pytest.fixture
def start_server():
    """
    Start servers built inside a test; every one is shut down afterwards.

        test_srv = start_server(my_server)
    """
    started = []

    def _start(server: HTTPServer) -> TestServer:
        test_srv = TestServer(server).start()
        started.append(test_srv)
        return test_srv

    yield _start

    for test_srv in started:
        test_srv.stop(timeout=0.5)
