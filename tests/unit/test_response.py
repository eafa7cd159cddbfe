"""
Unit tests for HTTP response building.
"""

from datetime import datetime, timezone

from productserver.http.response import (
    HTTPResponse,
    ResponseBuilder,
    TEXT_PLAIN,
    ok,
    error,
    not_found,
    bad_request,
    internal_error,
    format_http_date,
)
from productserver.http.status_codes import HTTPStatus


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        assert HTTPResponse(status=HTTPStatus.OK).status_line == "HTTP/1.1 200 OK"
        assert HTTPResponse(status=HTTPStatus.NOT_FOUND).status_line == "HTTP/1.1 404 Not Found"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Server: productserver/1.0\r\n" in result
        assert b"Date: " in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_to_bytes_sets_content_length(self):
        """Test that Content-Length is auto-set."""
        result = HTTPResponse(body=b"hello world").to_bytes()

        assert b"Content-Length: 11\r\n" in result

    def test_to_bytes_keeps_explicit_headers(self):
        response = HTTPResponse(body=b"x", headers={"Server": "custom"})

        result = response.to_bytes(server_name="ignored")

        assert b"Server: custom\r\n" in result
        assert b"ignored" not in result

    def test_to_bytes_does_not_mutate_headers(self):
        response = HTTPResponse(body=b"x")
        response.to_bytes()

        assert response.headers == {}

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers == {"X-One": "1", "X-Two": "2"}


class TestResponseBuilder:
    """Tests for ResponseBuilder."""

    def test_text(self):
        response = ResponseBuilder().text("Home").build()

        assert response.status == HTTPStatus.OK
        assert response.body == b"Home"
        assert response.headers["Content-Type"] == TEXT_PLAIN

    def test_text_is_utf8(self):
        response = ResponseBuilder().text("Product 'café'").build()

        assert response.body == "Product 'café'".encode("utf-8")
        assert response.text == "Product 'café'"

    def test_text_restores_escaped_bytes(self):
        """Bytes a path held as surrogates go out unchanged."""
        key = b"\xff\xfe".decode("utf-8", errors="surrogateescape")

        response = ResponseBuilder().text(f"Product '{key}'").build()

        assert response.body == b"Product '\xff\xfe'"

    def test_status_and_header(self):
        response = (ResponseBuilder()
            .status(HTTPStatus.BAD_REQUEST)
            .header("X-Test", "yes")
            .body(b"raw")
            .build())

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.headers["X-Test"] == "yes"
        assert response.body == b"raw"

    def test_close_connection(self):
        response = ResponseBuilder().close_connection().build()

        assert response.headers["Connection"] == "close"


class TestHelpers:
    def test_ok(self):
        response = ok("Home")

        assert response.status == HTTPStatus.OK
        assert response.text == "Home"

    def test_not_found_default_body(self):
        response = not_found()

        assert response.status == 404
        assert response.text == "404 page not found"

    def test_bad_request(self):
        response = bad_request("Product key not provided")

        assert response.status == 400
        assert response.text == "Product key not provided"

    def test_internal_error(self):
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_error(self):
        response = error(HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")

        assert response.status == 503
        assert response.headers["Content-Type"] == TEXT_PLAIN


class TestStatusCodes:
    def test_int_comparison(self):
        assert HTTPStatus.OK == 200
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"

    def test_categories(self):
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert HTTPStatus.SERVICE_UNAVAILABLE.is_server_error
        assert HTTPStatus.BAD_REQUEST.is_error
        assert not HTTPStatus.OK.is_error


def test_format_http_date():
    dt = datetime(2026, 10, 18, 9, 5, 3, tzinfo=timezone.utc)

    assert format_http_date(dt) == "Sun, 18 Oct 2026 09:05:03 GMT"
