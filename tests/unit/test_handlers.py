"""
Unit tests for the catalog handlers.
"""

import pytest

from productserver.handlers import home, product, register_catalog
from productserver.http.request import HTTPRequest
from productserver.http.response import TEXT_PLAIN
from productserver.http.router import Router
from productserver.http.status_codes import HTTPStatus


def make_request(path: str, **kwargs) -> HTTPRequest:
    return HTTPRequest(method="GET", path=path, **kwargs)


class TestHome:
    def test_home(self):
        response = home(make_request("/"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"Home"
        assert response.headers["Content-Type"] == TEXT_PLAIN

    def test_home_ignores_query_and_headers(self):
        request = make_request(
            "/",
            query_params={"x": ["1"]},
            headers={"accept": "application/json"},
        )

        assert home(request).body == b"Home"

    def test_home_is_idempotent(self):
        bodies = {home(make_request("/")).body for _ in range(5)}

        assert bodies == {b"Home"}


class TestProduct:
    @pytest.mark.parametrize("key", ["widget123", "abc", "a b", "ключ", "'quoted'"])
    def test_product(self, key):
        response = product(make_request(f"/products/{key}", path_params={"key": key}))

        assert response.status == HTTPStatus.OK
        assert response.text == f"Product '{key}'"

    def test_missing_key(self):
        """Direct call without a bound key hits the contract check."""
        response = product(make_request("/products/"))

        assert response.status == HTTPStatus.BAD_REQUEST
        assert response.body == b"Product key not provided"

    def test_empty_key(self):
        response = product(make_request("/products/", path_params={"key": ""}))

        assert response.status == HTTPStatus.BAD_REQUEST


class TestRegister:
    def test_registers_both_routes(self):
        router = register_catalog(Router())

        assert [(r.method, r.path) for r in router.routes()] == [
            ("GET", "/"),
            ("GET", "/products/{key}"),
        ]

    def test_registering_twice_conflicts(self):
        router = register_catalog(Router())

        with pytest.raises(ValueError):
            register_catalog(router)

    def test_routed_product(self):
        router = register_catalog(Router())

        response = router.handle(make_request("/products/widget123"))

        assert response.text == "Product 'widget123'"

    @pytest.mark.parametrize("path", ["/products/", "/products/a/b", "/unknown", "/products"])
    def test_routed_not_found(self, path):
        router = register_catalog(Router())

        response = router.handle(make_request(path))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"404 page not found"
