"""UI proxy server."""

from startup_bench.web.server import create_app, serve

__all__ = [
    "create_app",
    "serve",
]
