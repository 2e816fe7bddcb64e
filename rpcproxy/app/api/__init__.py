"""API endpoints package for the proxy."""

from rpcproxy.app.api.rpc import create_router

__all__ = [
    "create_router",
]
