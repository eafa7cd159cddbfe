"""
=============================================================================
PRODUCTSERVER - Minimal Product Catalog HTTP Server
=============================================================================

An HTTP/1.1 server on raw sockets that answers two routes and shuts down
gracefully on Ctrl+C.

    GET /                  → 200 Home
    GET /products/{key}    → 200 Product '<key>'
    anything else          → 404 404 page not found

On SIGINT the server stops accepting connections, gives in-flight
requests a bounded grace period (3 seconds by default), closes whatever
is still open when it runs out, and exits 0.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    productserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m productserver)
    ├── config.py            # ServerConfig dataclass
    ├── server.py            # HTTPServer: states, connection tracking, shutdown
    ├── lifecycle.py         # Signal source, serve task, exit status
    ├── core/
    │   ├── socket_server.py # Listening socket and accept loop
    │   ├── connection.py    # Client socket: reads, deadlines, abort
    │   └── thread_pool.py   # Worker threads
    ├── http/
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response building
    │   ├── router.py        # {name} routing
    │   └── status_codes.py  # HTTPStatus enum
    ├── middleware/
    │   ├── base.py          # Middleware + pipeline
    │   └── logging.py       # Access log
    └── handlers/
        └── catalog.py       # home, product

=============================================================================
QUICK START
=============================================================================

    import sys
    from productserver import ServerConfig, Lifecycle, create_app

    server = create_app(ServerConfig(port=8000))
    sys.exit(Lifecycle(server).run())

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import (
    HTTPServer,
    ServerState,
    ServerError,
    ServerStartError,
    ServerClosedError,
    create_app,
)
from .lifecycle import Lifecycle, SignalSource, InterruptSignal, ServeTask

__all__ = [
    "HTTPServer",
    "ServerConfig",
    "ServerState",
    "ServerError",
    "ServerStartError",
    "ServerClosedError",
    "create_app",
    "Lifecycle",
    "SignalSource",
    "InterruptSignal",
    "ServeTask",
    "__version__",
]
