"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read by a Connection into an HTTPRequest.

    GET /products/widget123?ref=home HTTP/1.1\r\n    ← request line
    Host: 127.0.0.1:8000\r\n                         ← headers
    Connection: keep-alive\r\n
    \r\n                                             ← end of headers
    (body, Content-Length bytes)

The parser is strict about the request line and lenient about headers:
a malformed header line is skipped, a malformed request line is a 400.
Any method token is accepted; unknown methods are the router's business
(they match no route and get a 404).

The path is percent-decoded to its exact bytes and held as a str with
undecodable bytes kept as surrogates (surrogateescape), so

    /products/%FF      → key "\udcff"  → echoed back as the byte 0xFF
    /products/%C3%BC   → key "ü"       → echoed back as 0xC3 0xBC

ResponseBuilder encodes text the same way.

=============================================================================
ERROR MAPPING
=============================================================================

    Request line does not parse         → 400 Bad Request
    Version other than HTTP/1.0 or 1.1  → 505 HTTP Version Not Supported
    Request larger than the limit       → 413 Payload Too Large
    Path containing ".."                → 400 Bad Request

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict
from urllib.parse import parse_qs, urlparse, unquote_to_bytes
import re

from .status_codes import HTTPStatus


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status the server should answer with, so the connection
    loop can turn any parse failure into a response without inspecting
    the message.
    """

    def __init__(self, message: str, status_code: HTTPStatus = HTTPStatus.BAD_REQUEST):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Method token as sent ("GET"); case-sensitive.
        path:           URL-decoded path without the query string.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header names lower-cased.
        query_params:   "?a=1&a=2" → {"a": ["1", "2"]}.
        body:           Raw body, exactly Content-Length bytes.
        path_params:    Variables bound by the router ({"key": "widget123"}).
                        Filled in by Router.handle, empty before routing.
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: tuple[str, int] = ("", 0)

    @property
    def query_string(self) -> str:
        """Query parameters re-encoded for logging ("a=1&b=2")."""
        return "&".join(
            f"{name}={value}"
            for name, values in self.query_params.items()
            for value in values
        )

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

            HTTP/1.1: open unless "Connection: close"
            HTTP/1.0: closed unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    One parser is shared by all worker threads; it keeps no per-request
    state, only its size limit.

        parser = RequestParser(max_request_size=1024 * 1024)
        request = parser.parse(raw_bytes, ("127.0.0.1", 50123))
    """

    # method = token (RFC 7230 tchar)
    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: One complete request as returned by Connection.read_request().
            client_address: Peer (ip, port), copied onto the request.

        Returns:
            Parsed HTTPRequest with empty path_params.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=HTTPStatus.PAYLOAD_TOO_LARGE,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, Dict[str, list[str]], str]:
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            Tuple of (method, path, query_params, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=HTTPStatus.HTTP_VERSION_NOT_SUPPORTED,
            )

        parsed = urlparse(uri)
        path = decode_path(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..")

        return method, path, query_params, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lower-case names.

        Repeated headers are joined with ", ". Obsolete line folding
        (continuation lines starting with whitespace) is appended to the
        previous header.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed header lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def decode_path(raw_path: str) -> str:
    """
    Percent-decode a request path without losing bytes.

    `raw_path` comes from a latin-1 decoded request line, so encoding it
    back to latin-1 recovers the bytes the client sent.
    """
    raw = unquote_to_bytes(raw_path.encode("latin-1"))
    return raw.decode("utf-8", errors="surrogateescape")


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """One-shot helper around RequestParser.parse()."""
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
