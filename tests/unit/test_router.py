"""
Unit tests for URL router.
"""

import pytest

from productserver.http.router import Router, Route, RouteMatch, RouteConflictError
from productserver.http.request import HTTPRequest
from productserver.http.response import HTTPResponse, ResponseBuilder, ok
from productserver.http.status_codes import HTTPStatus


def make_request(method: str, path: str) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path)


def dummy_handler(request: HTTPRequest) -> HTTPResponse:
    """Dummy handler for testing."""
    return ResponseBuilder().text(request.path).build()


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        """Test adding routes."""
        router = Router()
        route = router.add_route("/products", dummy_handler, method="GET")

        assert isinstance(route, Route)
        assert len(router) == 1
        assert router.routes()[0].path == "/products"
        assert router.routes()[0].method == "GET"

    def test_method_is_normalized(self):
        router = Router()
        router.add_route("/", dummy_handler, method="get")

        assert router.routes()[0].method == "GET"
        assert router.match("GET", "/") is not None

    def test_request_method_is_case_sensitive(self):
        router = Router()
        router.add_route("/", dummy_handler)

        assert router.match("get", "/") is None

    def test_match_static_path(self):
        """Test matching static paths."""
        router = Router()
        router.add_route("/", dummy_handler)
        router.add_route("/about", dummy_handler)

        match = router.match("GET", "/")
        assert match is not None
        assert match.route.path == "/"
        assert match.params == {}

        match = router.match("GET", "/about")
        assert match is not None
        assert match.route.path == "/about"

    def test_match_with_method(self):
        """Test method-based routing."""
        router = Router()
        router.add_route("/products", dummy_handler, method="GET")
        router.add_route("/products", dummy_handler, method="POST")

        get_match = router.match("GET", "/products")
        post_match = router.match("POST", "/products")

        assert get_match.route.method == "GET"
        assert post_match.route.method == "POST"

    def test_match_variable(self):
        """Test {name} path variables."""
        router = Router()
        router.add_route("/products/{key}", dummy_handler)
        router.add_route("/shops/{shop}/products/{key}", dummy_handler)

        match = router.match("GET", "/products/widget123")
        assert isinstance(match, RouteMatch)
        assert match.params == {"key": "widget123"}

        match = router.match("GET", "/shops/north/products/abc")
        assert match.params == {"shop": "north", "key": "abc"}

    def test_variable_matches_one_segment_only(self):
        router = Router()
        router.add_route("/products/{key}", dummy_handler)

        assert router.match("GET", "/products/") is None
        assert router.match("GET", "/products") is None
        assert router.match("GET", "/products/a/b") is None
        assert router.match("GET", "/products/a/") is None

    def test_no_prefix_matching(self):
        router = Router()
        router.add_route("/", dummy_handler)

        assert router.match("GET", "/unknown") is None
        assert router.match("GET", "//") is None

    def test_empty_path_is_root(self):
        router = Router()
        router.add_route("/", dummy_handler)

        assert router.match("GET", "") is not None

    def test_no_match(self):
        """Test when no route matches."""
        router = Router()
        router.add_route("/products/{key}", dummy_handler, method="GET")

        assert router.match("GET", "/posts") is None
        assert router.match("POST", "/products/abc") is None  # Wrong method

    def test_literal_segments_are_escaped(self):
        router = Router()
        router.add_route("/v1.0/items", dummy_handler)

        assert router.match("GET", "/v1.0/items") is not None
        assert router.match("GET", "/v1x0/items") is None

    def test_handle_success(self):
        """Test handling a request successfully."""
        router = Router()

        @router.get("/hello")
        def hello(request):
            return ok("Hello!")

        response = router.handle(make_request("GET", "/hello"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello!"

    def test_handle_not_found(self):
        """Test 404 handling."""
        router = Router()
        router.add_route("/products/{key}", dummy_handler)

        response = router.handle(make_request("GET", "/posts"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"404 page not found"

    def test_handle_wrong_method_is_not_found(self):
        """A known path with another method is a plain 404."""
        router = Router()
        router.add_route("/", dummy_handler, method="GET")

        response = router.handle(make_request("POST", "/"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert "Allow" not in response.headers

    def test_path_params_in_request(self):
        """Test that path params are injected into request."""
        router = Router()
        captured_params = {}

        @router.get("/products/{key}")
        def product(request):
            captured_params.update(request.path_params)
            return ok("ok")

        router.handle(make_request("GET", "/products/42"))

        assert captured_params == {"key": "42"}

    def test_first_registered_route_wins(self):
        router = Router()
        router.add_route("/products/new", lambda r: ok("literal"))
        router.add_route("/products/{key}", lambda r: ok("variable"))

        assert router.handle(make_request("GET", "/products/new")).text == "literal"
        assert router.handle(make_request("GET", "/products/old")).text == "variable"


class TestRouteRegistrationErrors:
    """Bad registrations fail at startup."""

    def test_duplicate_route_conflicts(self):
        router = Router()
        router.add_route("/products/{key}", dummy_handler)

        with pytest.raises(RouteConflictError):
            router.add_route("/products/{key}", dummy_handler)

    def test_conflict_is_value_error(self):
        assert issubclass(RouteConflictError, ValueError)

    def test_same_path_other_method_is_fine(self):
        router = Router()
        router.add_route("/", dummy_handler, method="GET")
        router.add_route("/", dummy_handler, method="POST")

        assert len(router) == 2

    def test_pattern_must_start_with_slash(self):
        with pytest.raises(ValueError):
            Router().add_route("products", dummy_handler)

    def test_duplicate_variable_name(self):
        with pytest.raises(ValueError):
            Router().add_route("/a/{key}/b/{key}", dummy_handler)

    @pytest.mark.parametrize("pattern", ["/a/{1key}", "/a/{}", "/a/{key", "/a/pre{key}"])
    def test_malformed_variable(self, pattern):
        with pytest.raises(ValueError):
            Router().add_route(pattern, dummy_handler)


class TestRouterDecorators:
    """Tests for decorator-style route registration."""

    def test_get_decorator(self):
        """Test @router.get decorator."""
        router = Router()

        @router.get("/test")
        def test_handler(request):
            return ok("test")

        assert len(router) == 1
        assert router.routes()[0].method == "GET"
        assert test_handler(make_request("GET", "/test")).text == "test"

    def test_route_decorator_with_method(self):
        router = Router()

        @router.route("/test", method="DELETE")
        def test_handler(request):
            return ok("test")

        assert router.routes()[0].method == "DELETE"


class TestRouterIntrospection:
    def test_describe(self):
        router = Router()
        router.add_route("/", dummy_handler)
        router.add_route("/products/{key}", dummy_handler)

        table = router.describe()

        assert "GET" in table
        assert "/products/{key}" in table
        assert table.index("/products/{key}") > table.index(" /")

    def test_routes_returns_copy(self):
        router = Router()
        router.add_route("/", dummy_handler)

        router.routes().clear()

        assert len(router) == 1

    def test_route_is_frozen(self):
        route = Router().add_route("/", dummy_handler)

        with pytest.raises(AttributeError):
            route.path = "/other"
