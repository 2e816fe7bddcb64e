"""Tests for upstream dispatch."""

import asyncio
import json

import httpx
import pytest
import respx

from rpcproxy.app.exceptions import UpstreamError, UpstreamTimeoutError
from rpcproxy.app.services.upstream import DEFAULT_CONTENT_TYPE, forward_rpc

UPSTREAM_URL = "https://arb-mainnet.g.alchemy.com/v2/secret-key"
PAYLOAD = {"jsonrpc": "2.0", "method": "eth_chainId", "id": 1}


class SlowClient:
    """Stands in for httpx.AsyncClient with a post that never finishes in time."""

    def __init__(self, delay: float):
        self.delay = delay
        self.cancelled = False

    async def post(self, *args, **kwargs):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        raise AssertionError("post should have been cancelled")


@pytest.mark.asyncio
async def test_relays_raw_bytes_status_and_content_type():
    raw = b'{"jsonrpc":"2.0","id":1,  "result":"0xa4b1"}'
    async with respx.mock:
        route = respx.post(UPSTREAM_URL).mock(
            return_value=httpx.Response(
                200, content=raw, headers={"content-type": "application/json"}
            )
        )
        async with httpx.AsyncClient() as client:
            response = await forward_rpc(client, UPSTREAM_URL, PAYLOAD, timeout=5.0)

    assert response.status_code == 200
    assert response.content == raw
    assert response.content_type == "application/json"
    sent = route.calls.last.request
    assert json.loads(sent.content) == PAYLOAD
    assert sent.headers["content-type"] == "application/json"


@pytest.mark.asyncio
async def test_forwards_batch_unchanged():
    batch = [
        {"jsonrpc": "2.0", "method": "eth_blockNumber", "id": 1},
        {"jsonrpc": "2.0", "method": "eth_gasPrice", "id": 2, "params": []},
    ]
    async with respx.mock:
        route = respx.post(UPSTREAM_URL).mock(return_value=httpx.Response(200, json=[]))
        async with httpx.AsyncClient() as client:
            await forward_rpc(client, UPSTREAM_URL, batch, timeout=5.0)

    assert json.loads(route.calls.last.request.content) == batch


@pytest.mark.asyncio
async def test_relays_upstream_error_status():
    async with respx.mock:
        respx.post(UPSTREAM_URL).mock(
            return_value=httpx.Response(429, content=b'{"error":"capacity"}')
        )
        async with httpx.AsyncClient() as client:
            response = await forward_rpc(client, UPSTREAM_URL, PAYLOAD, timeout=5.0)

    assert response.status_code == 429
    assert response.content == b'{"error":"capacity"}'


@pytest.mark.asyncio
async def test_missing_content_type_falls_back_to_json():
    async with respx.mock:
        respx.post(UPSTREAM_URL).mock(return_value=httpx.Response(200, content=b"{}"))
        async with httpx.AsyncClient() as client:
            response = await forward_rpc(client, UPSTREAM_URL, PAYLOAD, timeout=5.0)

    assert response.content_type == DEFAULT_CONTENT_TYPE


@pytest.mark.asyncio
async def test_deadline_cancels_inflight_call():
    client = SlowClient(delay=5.0)

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await forward_rpc(client, UPSTREAM_URL, PAYLOAD, timeout=0.05)

    assert exc_info.value.status_code == 504
    assert client.cancelled is True


@pytest.mark.asyncio
async def test_httpx_timeout_maps_to_504():
    async with respx.mock:
        respx.post(UPSTREAM_URL).mock(side_effect=httpx.ReadTimeout("read timed out"))
        async with httpx.AsyncClient() as client:
            with pytest.raises(UpstreamTimeoutError):
                await forward_rpc(client, UPSTREAM_URL, PAYLOAD, timeout=5.0)


@pytest.mark.asyncio
async def test_network_error_maps_to_502_without_leaking_url():
    async with respx.mock:
        respx.post(UPSTREAM_URL).mock(
            side_effect=httpx.ConnectError(f"connection refused: {UPSTREAM_URL}")
        )
        async with httpx.AsyncClient() as client:
            with pytest.raises(UpstreamError) as exc_info:
                await forward_rpc(client, UPSTREAM_URL, PAYLOAD, timeout=5.0)

    assert exc_info.value.status_code == 502
    assert "secret-key" not in str(exc_info.value)
    assert exc_info.value.__cause__ is None


@pytest.mark.asyncio
async def test_unencodable_payload_is_not_an_upstream_error():
    async with respx.mock:
        route = respx.post(UPSTREAM_URL).mock(return_value=httpx.Response(200, content=b"{}"))
        async with httpx.AsyncClient() as client:
            with pytest.raises(ValueError) as exc_info:
                await forward_rpc(client, UPSTREAM_URL, {"params": [float("inf")]}, timeout=5.0)

    assert not isinstance(exc_info.value, UpstreamError)
    assert route.called is False
