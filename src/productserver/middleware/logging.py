"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One line per request on the "productserver.access" logger:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ 127.0.0.1 - - [18/Oct/2026:10:55:36 +0000] "GET /products/abc"      │
    │     200 13 0.42ms                                                   │
    │ ───────────────────────────────────────────────────────────────────│
    │ IP          Timestamp          Method/Path   Status Size Duration  │
    └─────────────────────────────────────────────────────────────────────┘

The logger is namespaced so it can be tuned apart from the server log:

    logging.getLogger("productserver.access").setLevel(logging.WARNING)

Successful requests are logged at the configured level (INFO by default),
4xx/5xx answers at WARNING. A handler exception is logged at ERROR and
re-raised so the connection loop can answer 500.

=============================================================================
"""

import time
import logging
from dataclasses import dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("productserver.access")


@dataclass
class RequestLog:
    """A single access-log entry."""

    method: str
    path: str
    query: str
    client_ip: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_text(self) -> str:
        """Apache-style line, with the query string appended when present."""
        target = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {target}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Add it first so the timing covers routing and the handler, and so
    every request is logged, including 404s.

        pipeline.add(LoggingMiddleware())
    """

    def __init__(self, log_level: int = logging.INFO):
        """
        Args:
            log_level: Level for successful requests. Error statuses are
                       always logged at WARNING or above.
        """
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        start_time = time.monotonic()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000

        log_entry = RequestLog(
            method=request.method,
            path=request.path,
            query=request.query_string,
            client_ip=request.client_address[0] or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        level = self.log_level
        if response.status.is_error:
            level = max(level, logging.WARNING)

        logger.log(level, log_entry.to_text())
        return response
