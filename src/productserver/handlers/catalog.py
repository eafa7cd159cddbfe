"""
=============================================================================
CATALOG HANDLERS
=============================================================================

The two pages the product server answers.

    ┌──────────────────────┬────────┬──────────────────────────────────────┐
    │ Route                │ Status │ Body                                 │
    ├──────────────────────┼────────┼──────────────────────────────────────┤
    │ GET /                │ 200    │ Home                                 │
    │ GET /products/{key}  │ 200    │ Product '<key>'                      │
    │                      │ 400    │ Product key not provided             │
    └──────────────────────┴────────┴──────────────────────────────────────┘

The 400 branch guards the handler contract: the router only dispatches to
product() with a non-empty key, so through the server it cannot happen.
Calling the handler directly with an empty path_params dict reaches it.

Bodies are plain text, byte-exact, with no trailing newline. The key is
echoed as bound by the router (already URL-decoded by the parser).

=============================================================================
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok, bad_request
from ..http.router import Router


HOME_BODY = "Home"
MISSING_KEY_BODY = "Product key not provided"


def home(request: HTTPRequest) -> HTTPResponse:
    """GET / → 200 "Home"."""
    return ok(HOME_BODY)


def product(request: HTTPRequest) -> HTTPResponse:
    """
    GET /products/{key} → 200 "Product '<key>'".

    Example:
        GET /products/widget123  →  Product 'widget123'
    """
    key = request.path_params.get("key")
    if not key:
        return bad_request(MISSING_KEY_BODY)

    return ok(f"Product '{key}'")


def register(router: Router) -> Router:
    """
    Register the catalog routes on a router.

        router = register(Router())
    """
    router.add_route("/", home, "GET")
    router.add_route("/products/{key}", product, "GET")
    return router
