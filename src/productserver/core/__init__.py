"""
=============================================================================
CORE MODULE
=============================================================================

The TCP-level building blocks under HTTPServer:

    SocketServer      - listening socket and accept loop
    Connection        - one client socket: buffered reads, deadlines, abort
    ThreadPool        - worker threads, one task per connection with work to do
    KeepAliveMonitor  - watches idle keep-alive connections off the pool

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, RequestTooLarge
from .thread_pool import ThreadPool
from .keep_alive import KeepAliveMonitor

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "RequestTooLarge",
    "ThreadPool",
    "KeepAliveMonitor",
]
