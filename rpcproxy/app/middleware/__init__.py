"""Middleware package for the proxy."""

from rpcproxy.app.middleware.request_id import RequestIdMiddleware, get_request_id
from rpcproxy.app.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestIdMiddleware",
    "SecurityHeadersMiddleware",
    "get_request_id",
]
