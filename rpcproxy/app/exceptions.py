"""Custom exceptions for the RPC proxy.

Every rejection the gate can produce is one of these. The exception
handler in ``main`` renders them as ``{"error": message}`` with the
exception's status code and headers.
"""

from typing import Dict, Optional


ALLOWED_HTTP_METHODS = "POST, GET, OPTIONS"


class RpcProxyError(Exception):
    """Base class for proxy exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500
    default_message: str = "Proxy error"

    def __init__(
        self,
        message: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.headers = headers or {}
        super().__init__(self.message)


class InvalidPayloadError(RpcProxyError):
    """Body is not JSON, not an object or array, or an empty batch."""
    status_code = 400
    default_message = "Invalid JSON-RPC payload"


class InvalidRpcItemError(RpcProxyError):
    """An item lacks ``jsonrpc: "2.0"`` or a string ``method``."""
    status_code = 400
    default_message = "Invalid JSON-RPC"


class RpcMethodNotAllowedError(RpcProxyError):
    """Raised when a JSON-RPC item names a method outside the whitelist.

    Maps to HTTP 403 Forbidden.
    """
    status_code = 403

    def __init__(self, rpc_method: str):
        self.rpc_method = rpc_method
        super().__init__(f"RPC method not allowed: {rpc_method}")


class HttpMethodNotAllowedError(RpcProxyError):
    status_code = 405
    default_message = "Method Not Allowed"

    def __init__(self):
        super().__init__(headers={"Allow": ALLOWED_HTTP_METHODS})


class PayloadTooLargeError(RpcProxyError):
    status_code = 413
    default_message = "Request entity too large"


class RateLimitExceededError(RpcProxyError):
    """Raised when a client exceeds its per-window request ceiling.

    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    default_message = "Too many requests"

    def __init__(self, limit: int, reset_time: int, retry_after: int):
        self.limit = limit
        self.reset_time = reset_time
        self.retry_after = retry_after
        super().__init__(
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(reset_time),
            }
        )


class UpstreamNotConfiguredError(RpcProxyError):
    """The upstream API key is missing; never names the key or URL."""
    status_code = 500
    default_message = "RPC not configured"


class UpstreamError(RpcProxyError):
    status_code = 502
    default_message = "Upstream error"


class UpstreamTimeoutError(RpcProxyError):
    status_code = 504
    default_message = "Upstream timeout"
