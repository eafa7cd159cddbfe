"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Handlers return HTTPResponse objects; the server serializes them.

    HTTP/1.1 200 OK\r\n                          ← status line
    Content-Type: text/plain; charset=utf-8\r\n  ← set by the handler
    Content-Length: 20\r\n                       ← added by to_bytes()
    Date: Sun, 18 Oct 2026 10:00:00 GMT\r\n      ← added by to_bytes()
    Server: productserver/1.0\r\n                ← added by to_bytes()
    \r\n
    Product 'widget123'                          ← body

Everything this server says is plain text, so the helpers at the bottom
of the module (ok, bad_request, not_found, ...) all produce
text/plain bodies.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Union

from .status_codes import HTTPStatus


TEXT_PLAIN = "text/plain; charset=utf-8"


def encode_text(text: str) -> bytes:
    """
    UTF-8 encode, turning surrogate-escaped bytes back into the raw bytes.

    Paths decoded with errors="surrogateescape" round-trip exactly.
    """
    return text.encode("utf-8", errors="surrogateescape")


@dataclass
class HTTPResponse:
    """
    An HTTP response waiting to be sent.

    Use ResponseBuilder or the helper functions rather than building one
    by hand.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """"HTTP/1.1 200 OK"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def text(self) -> str:
        """Body decoded as UTF-8 (convenient in tests and logs)."""
        return self.body.decode("utf-8", errors="replace")

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header, returning self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "productserver/1.0") -> bytes:
        """
        Serialize for socket.sendall().

        Content-Length, Date and Server are filled in unless the handler
        already set them.
        """
        response_headers = dict(self.headers)

        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        response = (ResponseBuilder()
            .status(HTTPStatus.BAD_REQUEST)
            .text("Product key not provided")
            .build())

    Every method except build() returns self.
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Raw body; strings are UTF-8 encoded."""
        if isinstance(body, str):
            self._body = encode_text(body)
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = TEXT_PLAIN) -> "ResponseBuilder":
        """Plain-text body with a matching Content-Type."""
        self._body = encode_text(text)
        self._headers["Content-Type"] = content_type
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Tell the client the connection closes after this response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 HTTP-date.

    Example: "Sun, 18 Oct 2026 10:00:00 GMT". Always GMT; day and month
    names are fixed English tokens, not locale-dependent.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def ok(text: str) -> HTTPResponse:
    """200 OK with a plain-text body."""
    return ResponseBuilder().status(HTTPStatus.OK).text(text).build()


def error(status: HTTPStatus, message: str) -> HTTPResponse:
    """Any error status with a plain-text message body."""
    return ResponseBuilder().status(status).text(message).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    """400 Bad Request."""
    return error(HTTPStatus.BAD_REQUEST, message)


def not_found(message: str = "404 page not found") -> HTTPResponse:
    """404 Not Found. The default body is what the router sends for unmatched requests."""
    return error(HTTPStatus.NOT_FOUND, message)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500. Keep the message generic; details belong in the log."""
    return error(HTTPStatus.INTERNAL_SERVER_ERROR, message)
