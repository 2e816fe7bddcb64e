"""Pooled HTTP client for upstream calls.

One ``httpx.AsyncClient`` is opened in the application lifespan, stored on
``app.state.http_client`` and reused by every request so upstream
connections stay warm.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx

from rpcproxy.app.core.config import Settings, settings


def create_http_client(app_settings: Optional[Settings] = None) -> httpx.AsyncClient:
    """Build a client from the configured pool limits and phase timeouts.

    The per-phase timeouts are a backstop only; the total upstream
    deadline is enforced by ``forward_rpc``.
    """
    app_settings = app_settings or settings
    limits = httpx.Limits(
        max_connections=app_settings.httpx_max_connections,
        max_keepalive_connections=app_settings.httpx_max_keepalive_connections,
        keepalive_expiry=app_settings.httpx_keepalive_expiry,
    )
    timeout = httpx.Timeout(
        connect=app_settings.httpx_connect_timeout,
        read=app_settings.httpx_read_timeout,
        write=app_settings.httpx_write_timeout,
        pool=app_settings.httpx_pool_timeout,
    )
    # Redirects are never followed; a 3xx from the provider is relayed as-is
    return httpx.AsyncClient(timeout=timeout, limits=limits, follow_redirects=False)


@asynccontextmanager
async def init_http_client(
    app_settings: Optional[Settings] = None,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the upstream client for the lifetime of the ``async with`` block."""
    client = create_http_client(app_settings)
    try:
        yield client
    finally:
        await client.aclose()
