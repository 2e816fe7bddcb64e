"""JSON-RPC proxy endpoint.

``OPTIONS`` and ``GET`` answer locally. ``POST`` runs the admission gate
in a fixed order, where the first failing stage produces the response:

1. upstream configured (500)
2. declared Content-Length within the ceiling (413)
3. per-client fixed-window rate limit (429)
4. body parses as a JSON-RPC object or non-empty batch (400)
5. every method is whitelisted (403)
6. upstream dispatch under a hard deadline (502 / 504)

Other HTTP methods are answered with 405 by the exception handler in
``main``. Security and CORS headers are added by
``SecurityHeadersMiddleware``.
"""

import httpx
from fastapi import APIRouter, Depends, Request, Response

from rpcproxy.app.api.responses import NO_STORE, NoStoreJSONResponse
from rpcproxy.app.core.config import Settings
from rpcproxy.app.core.logging import get_log_context, get_logger
from rpcproxy.app.exceptions import RateLimitExceededError, UpstreamNotConfiguredError
from rpcproxy.app.middleware.request_id import get_request_id
from rpcproxy.app.services.jsonrpc import enforce_allowed_methods, parse_payload
from rpcproxy.app.services.rate_limit import RateLimiter, get_client_key
from rpcproxy.app.services.request_body import check_declared_length, read_limited_body
from rpcproxy.app.services.upstream import forward_rpc

logger = get_logger(__name__)

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Methods": "POST, GET",
    "Access-Control-Allow-Headers": "content-type",
}


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_allowed_methods(request: Request) -> frozenset[str]:
    return request.app.state.allowed_methods


def get_upstream_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


async def preflight() -> Response:
    """CORS preflight; never rate limited and independent of configuration."""
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


async def info(app_settings: Settings = Depends(get_settings)) -> NoStoreJSONResponse:
    """Health/info payload; available even when no upstream is configured."""
    return NoStoreJSONResponse({
        "ok": True,
        "service": app_settings.service_name,
        "chain": app_settings.chain_label,
    })


async def forward(
    request: Request,
    app_settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_rate_limiter),
    allowed_methods: frozenset[str] = Depends(get_allowed_methods),
) -> Response:
    """Validate a JSON-RPC payload and relay it to the upstream provider."""
    request_id = get_request_id(request)

    upstream_url = app_settings.upstream_url
    if upstream_url is None:
        logger.error("Upstream API key is not configured", extra=get_log_context(request_id=request_id))
        raise UpstreamNotConfiguredError()

    check_declared_length(request, app_settings.max_body_bytes)

    client_key = get_client_key(request)
    result = await limiter.is_allowed(client_key)
    if not result.allowed:
        logger.info(
            "Rate limit exceeded",
            extra=get_log_context(request_id=request_id, client_key=client_key),
        )
        raise RateLimitExceededError(
            limit=result.limit,
            reset_time=result.reset_time,
            retry_after=result.retry_after or 1,
        )

    body = await read_limited_body(request, app_settings.max_body_bytes)
    payload = parse_payload(body)
    enforce_allowed_methods(payload, allowed_methods)

    first_method = payload.items[0].method
    upstream = await forward_rpc(
        get_upstream_client(request),
        upstream_url,
        payload.raw,
        timeout=app_settings.upstream_timeout_seconds,
    )

    logger.debug(
        f"Relayed {len(payload.items)} call(s) with upstream status {upstream.status_code}",
        extra=get_log_context(request_id=request_id, client_key=client_key, rpc_method=first_method),
    )

    headers: dict[str, str] = {
        "content-type": upstream.content_type,
        "Cache-Control": NO_STORE,
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_time),
    }
    return Response(content=upstream.content, status_code=upstream.status_code, headers=headers)


def create_router(path: str) -> APIRouter:
    """Mount the proxy handlers on ``path``."""
    router = APIRouter()
    router.add_api_route(path, preflight, methods=["OPTIONS"])
    router.add_api_route(path, info, methods=["GET"])
    router.add_api_route(path, forward, methods=["POST"])
    return router
