"""
=============================================================================
MIDDLEWARE MODULE
=============================================================================

Request/response processing layered around the router.

    from productserver.middleware import MiddlewarePipeline, LoggingMiddleware

    pipeline = MiddlewarePipeline()
    pipeline.add(LoggingMiddleware())
    handler = pipeline.wrap(router.handle)

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
]
