"""Services package for the proxy.

This package provides:
- JSON-RPC payload parsing and method whitelisting
- Per-client fixed-window rate limiting (in-memory or Redis)
- Request body size enforcement
- Upstream dispatch with a hard deadline
"""

from rpcproxy.app.services.jsonrpc import (
    RpcBatch,
    RpcPayload,
    RpcRequestItem,
    RpcSingle,
    enforce_allowed_methods,
    parse_payload,
)
from rpcproxy.app.services.rate_limit import RateLimiter, RateLimitSweeper, get_client_key
from rpcproxy.app.services.request_body import check_declared_length, read_limited_body
from rpcproxy.app.services.upstream import UpstreamResponse, forward_rpc

__all__ = [
    "RpcBatch",
    "RpcPayload",
    "RpcRequestItem",
    "RpcSingle",
    "enforce_allowed_methods",
    "parse_payload",
    "RateLimiter",
    "RateLimitSweeper",
    "get_client_key",
    "check_declared_length",
    "read_limited_body",
    "UpstreamResponse",
    "forward_rpc",
]
