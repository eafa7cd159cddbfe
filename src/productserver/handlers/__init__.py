"""
=============================================================================
HANDLERS MODULE
=============================================================================

Request handlers hold the application logic: a handler receives a parsed
request (path variables already bound by the router) and returns a
response. They never see sockets, timeouts or shutdown.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    REQUEST → HANDLER → RESPONSE                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    Request                 Handler                 Response         │
    │   ┌──────────┐          ┌─────────┐           ┌─────────────┐       │
    │   │ GET      │          │         │           │ 200 OK      │       │
    │   │ /products│ ───────▶ │ product │ ────────▶ │ Product     │       │
    │   │ /abc     │          │         │           │ 'abc'       │       │
    │   └──────────┘          └─────────┘           └─────────────┘       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Usage:

    from productserver.handlers import register_catalog

    router = Router()
    register_catalog(router)

=============================================================================
"""

from .catalog import home, product, register as register_catalog

__all__ = [
    "home",
    "product",
    "register_catalog",
]
