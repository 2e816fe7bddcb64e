"""Upstream JSON-RPC dispatch under a hard deadline.

The upstream response body is relayed byte for byte; it is never parsed
or re-serialized. Failures are classified into exactly one of
``UpstreamTimeoutError`` (504) or ``UpstreamError`` (502), and neither
carries the keyed upstream URL or the original exception text.
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any

import httpx

from rpcproxy.app.core.logging import get_logger
from rpcproxy.app.exceptions import UpstreamError, UpstreamTimeoutError

logger = get_logger(__name__)

DEFAULT_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    content: bytes
    content_type: str


async def forward_rpc(
    client: httpx.AsyncClient,
    url: str,
    payload: Any,
    timeout: float,
) -> UpstreamResponse:
    """POST ``payload`` as JSON to ``url`` and return the raw response.

    The deadline covers connecting, sending and reading the whole body.
    Leaving the ``asyncio.timeout`` block releases the deadline on every
    exit path.

    Raises:
        UpstreamTimeoutError: the deadline elapsed before the body was read.
        UpstreamError: any other failure.
    """
    # Encoded before dispatch; a failure here is local, not an upstream error
    body = json.dumps(payload, separators=(",", ":"), allow_nan=False).encode()

    try:
        async with asyncio.timeout(timeout):
            response = await client.post(
                url,
                content=body,
                headers={"content-type": "application/json"},
            )
            content = await response.aread()
    except (TimeoutError, httpx.TimeoutException) as e:
        logger.warning(f"Upstream call timed out ({type(e).__name__})")
        raise UpstreamTimeoutError() from None
    except Exception as e:
        # The exception message may include the keyed URL; log the type only
        logger.warning(f"Upstream call failed ({type(e).__name__})")
        raise UpstreamError() from None

    return UpstreamResponse(
        status_code=response.status_code,
        content=content,
        content_type=response.headers.get("content-type") or DEFAULT_CONTENT_TYPE,
    )
