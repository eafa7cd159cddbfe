"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

The HTTP/1.1 layer: raw request bytes in, response bytes out.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   b"GET /products/abc HTTP/1.1\r\n..."  →  HTTPRequest              │
    ├─────────────────────────────────────────────────────────────────────┤
    │ ROUTER (router.py)                                                  │
    │   GET /products/abc  →  product(request), path_params={"key": ...}  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE (response.py)                                              │
    │   ok("Home")  →  b"HTTP/1.1 200 OK\r\n...\r\n\r\nHome"              │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py)                                      │
    │   HTTPStatus.NOT_FOUND → 404, phrase="Not Found"                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    TEXT_PLAIN,
    format_http_date,
    ok,             # 200 OK
    error,          # any status, text body
    bad_request,    # 400 Bad Request
    not_found,      # 404 Not Found
    internal_error, # 500 Internal Server Error
)
from .router import Router, Route, RouteMatch, RouteConflictError, Handler
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "TEXT_PLAIN",
    "format_http_date",
    "ok",
    "error",
    "bad_request",
    "not_found",
    "internal_error",

    # Routing
    "Router",
    "Route",
    "RouteMatch",
    "RouteConflictError",
    "Handler",

    # Status codes
    "HTTPStatus",
]
