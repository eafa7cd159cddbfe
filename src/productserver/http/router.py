"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler and extracts named path variables.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTING FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   GET /products/widget123                                            │
    │        │                                                             │
    │        ▼                                                             │
    │   Registered Routes:                                                 │
    │     GET  /                  → home                                   │
    │     GET  /products/{key}    → product      ← MATCH                   │
    │        │                                                             │
    │        ▼                                                             │
    │   RouteMatch(route=<product>, params={"key": "widget123"})           │
    │        │                                                             │
    │        ▼                                                             │
    │   product(request)   # request.path_params["key"] == "widget123"     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
MATCHING RULES
=============================================================================

- The method must match exactly.
- Literal segments must match exactly.
- A {name} segment matches exactly one non-empty segment (no "/").
- The whole path must match: no prefix matching and no trailing-slash
  folding. "/products/" and "/products/a/b" do not match
  "/products/{key}".
- Nothing matched → 404 "404 page not found". A known path requested
  with another method is also a 404.

Patterns are compiled once, at registration, into anchored regexes:

    /products/{key}   →   ^/products/(?P<key>[^/]+)$

A (method, pattern) pair may be registered only once. A duplicate is a
configuration bug, so add_route raises RouteConflictError at startup
instead of letting the second route stay silently unreachable.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found


# Handler: a function that takes a request and returns a response
Handler = Callable[[HTTPRequest], HTTPResponse]

_VARIABLE_SEGMENT = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")


class RouteConflictError(ValueError):
    """Raised when a (method, pattern) pair is registered twice."""


@dataclass(frozen=True)
class Route:
    """
    A registered route. Immutable once created.

        Route(
            method="GET",
            path="/products/{key}",
            handler=product,
            pattern=re.compile(r"^/products/(?P<key>[^/]+)$"),
            param_names=("key",),
        )
    """

    method: str
    path: str
    handler: Handler
    pattern: re.Pattern = field(repr=False, compare=False)
    param_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class RouteMatch:
    """
    Result of a successful match: the route plus its bound variables.

    A failed match is represented by None, never by an empty RouteMatch.
    """

    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router with named path variables.

        router = Router()

        @router.get("/products/{key}")
        def product(request):
            return ok(f"Product '{request.path_params['key']}'")

        router.handle(request)   # → HTTPResponse
    """

    def __init__(self):
        self._routes: List[Route] = []

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(self, path: str, handler: Handler, method: str = "GET") -> Route:
        """
        Register a route.

        Args:
            path: Pattern such as "/products/{key}".
            handler: Called with the request when the route matches.
            method: HTTP method the route answers.

        Returns:
            The registered Route.

        Raises:
            RouteConflictError: The (method, path) pair is already registered.
            ValueError: The pattern is malformed.
        """
        method = method.upper()

        for existing in self._routes:
            if existing.method == method and existing.path == path:
                raise RouteConflictError(f"Route already registered: {method} {path}")

        pattern, param_names = self._compile_pattern(path)
        route = Route(
            method=method,
            path=path,
            handler=handler,
            pattern=pattern,
            param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, tuple[str, ...]]:
        """
        Compile a pattern into an anchored regex.

            "/products/{key}"
              → split: ["", "products", "{key}"]
              → "^" + "/products" + "/(?P<key>[^/]+)" + "$"
        """
        if not path.startswith("/"):
            raise ValueError(f"Route pattern must start with '/': {path!r}")

        if path == "/":
            return re.compile("^/$"), ()

        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/")[1:]:
            regex_parts.append("/")

            variable = _VARIABLE_SEGMENT.match(segment)
            if variable:
                name = variable.group(1)
                if name in param_names:
                    raise ValueError(f"Duplicate variable {name!r} in {path!r}")
                param_names.append(name)
                regex_parts.append(f"(?P<{name}>[^/]+)")
            elif "{" in segment or "}" in segment:
                raise ValueError(f"Malformed variable segment {segment!r} in {path!r}")
            else:
                regex_parts.append(re.escape(segment))

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), tuple(param_names)

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the route for a method and path.

        Method tokens are case-sensitive: "get" does not match a GET route.

        Returns:
            RouteMatch with the bound variables, or None.
        """
        path = path or "/"

        for route in self._routes:
            if route.method != method:
                continue

            found = route.pattern.match(path)
            if found:
                return RouteMatch(route=route, params=found.groupdict())

        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request to its handler.

        On a match the variables are placed in request.path_params before
        the handler runs. Otherwise the answer is a plain 404.
        """
        match = self.match(request.method, request.path)

        if match is None:
            return not_found()

        request.path_params = dict(match.params)
        return match.route.handler(request)

    # =========================================================================
    # DECORATOR-STYLE REGISTRATION
    # =========================================================================

    def route(self, path: str, method: str = "GET") -> Callable[[Handler], Handler]:
        """
        Decorator form of add_route().

            @router.route("/products/{key}", method="GET")
            def product(request): ...
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        """Register a GET route."""
        return self.route(path, "GET")

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    def routes(self) -> List[Route]:
        """All registered routes in registration order."""
        return list(self._routes)

    def describe(self) -> str:
        """
        Route table for the startup log.

              GET      /
              GET      /products/{key}
        """
        return "\n".join(f"  {route.method:8} {route.path}" for route in self._routes)

    def __len__(self) -> int:
        return len(self._routes)
