"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline that chains middleware
around the router (Chain of Responsibility).

    ┌─────────────────────────────────────────────────────────────────────┐
    │              CHAIN OF RESPONSIBILITY - REQUEST FLOW                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ─────────────────────────────────►                         │
    │                                                                      │
    │   ┌──────────────┐    ┌──────────────┐    ┌──────────────┐           │
    │   │   Logging    │───►│  (your own)  │───►│ router.handle│           │
    │   │      MW      │    │      MW      │    │              │           │
    │   └──────┬───────┘    └──────┬───────┘    └──────┬───────┘           │
    │          ▼                   ▼                   ▼                   │
    │     [before]            [before]              [exec]                 │
    │     start clock                               match + handler        │
    │          ▲                   ▲                   │                   │
    │     [after]             [after]                  ▼                   │
    │     access log                                                       │
    │                                                                      │
    │   ◄───────────────────────────────────────── Response                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A middleware either calls next(request) to continue the chain or returns
a response of its own (short-circuit).

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware or the final handler.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class ServerTiming(Middleware):
            def __call__(self, request, next):
                response = next(request)          # continue the chain
                response.set_header("X-Served-By", "productserver")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            HTTP response (either from next() or short-circuited)
        """

    @property
    def name(self) -> str:
        """Middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware together with a final handler.

    First added = outermost:

        pipeline = MiddlewarePipeline()
        pipeline.add(LoggingMiddleware())
        handler = pipeline.wrap(router.handle)

        handler(request)   # LoggingMiddleware → router.handle
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware; returns self for chaining."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a handler with every middleware in the pipeline.

        =====================================================================
        HOW WRAPPING WORKS
        =====================================================================

        Given [MW1, MW2] and handler, wrap in reverse order:

            current = handler
            current = MW2 around current
            current = MW1 around current

        Final: MW1 → MW2 → handler

        =====================================================================
        """
        current = handler

        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)

        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
