"""Tests for JSON-RPC payload parsing and method whitelisting."""

import json

import pytest

from rpcproxy.app.core.config import DEFAULT_ALLOWED_METHODS
from rpcproxy.app.exceptions import (
    InvalidPayloadError,
    InvalidRpcItemError,
    RpcMethodNotAllowedError,
)
from rpcproxy.app.services.jsonrpc import (
    RpcBatch,
    RpcSingle,
    enforce_allowed_methods,
    parse_payload,
)

ALLOWED = frozenset(DEFAULT_ALLOWED_METHODS)


def _body(value) -> bytes:
    return json.dumps(value).encode()


class TestParsePayload:
    """Tests for parse_payload."""

    def test_single_call(self):
        payload = parse_payload(_body({"jsonrpc": "2.0", "method": "eth_chainId", "id": 1}))

        assert isinstance(payload, RpcSingle)
        assert payload.is_batch is False
        assert payload.item.method == "eth_chainId"
        assert payload.raw == {"jsonrpc": "2.0", "method": "eth_chainId", "id": 1}

    def test_batch_preserves_order(self):
        calls = [
            {"jsonrpc": "2.0", "method": "eth_blockNumber", "id": 1},
            {"jsonrpc": "2.0", "method": "eth_gasPrice", "id": 2},
        ]
        payload = parse_payload(_body(calls))

        assert isinstance(payload, RpcBatch)
        assert payload.is_batch is True
        assert [item.method for item in payload.items] == ["eth_blockNumber", "eth_gasPrice"]
        assert payload.raw == calls

    def test_extra_fields_pass_through(self):
        call = {
            "jsonrpc": "2.0",
            "method": "eth_call",
            "params": [{"to": "0x0", "data": "0x"}, "latest"],
            "id": "abc",
        }
        payload = parse_payload(_body(call))
        assert payload.raw["params"] == call["params"]

    @pytest.mark.parametrize(
        "body",
        [b"", b"not json", b"{", b"[]", b"42", b'"eth_chainId"', b"null", b"true"],
    )
    def test_invalid_payload(self, body):
        with pytest.raises(InvalidPayloadError) as exc_info:
            parse_payload(body)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid JSON-RPC payload"

    def test_nan_is_rejected(self):
        with pytest.raises(InvalidPayloadError):
            parse_payload(b'{"jsonrpc": "2.0", "method": "eth_call", "id": NaN}')

    @pytest.mark.parametrize("number", [b"1e400", b"-1e400", b"1.5e999"])
    def test_overflowing_number_is_rejected(self, number):
        body = b'{"jsonrpc": "2.0", "method": "eth_call", "params": [' + number + b'], "id": 1}'
        with pytest.raises(InvalidPayloadError):
            parse_payload(body)

    def test_large_finite_number_is_kept(self):
        payload = parse_payload(b'{"jsonrpc": "2.0", "method": "eth_call", "params": [1e300]}')
        assert payload.raw["params"] == [1e300]

    @pytest.mark.parametrize(
        "item",
        [
            {"method": "eth_chainId"},
            {"jsonrpc": "1.0", "method": "eth_chainId"},
            {"jsonrpc": 2.0, "method": "eth_chainId"},
            {"jsonrpc": "2.0"},
            {"jsonrpc": "2.0", "method": 5},
            {"jsonrpc": "2.0", "method": None},
            {"jsonrpc": "2.0", "method": ["eth_chainId"]},
        ],
    )
    def test_invalid_item(self, item):
        with pytest.raises(InvalidRpcItemError) as exc_info:
            parse_payload(_body(item))
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Invalid JSON-RPC"

    @pytest.mark.parametrize("bad_item", [None, 1, "eth_chainId", []])
    def test_non_object_batch_item(self, bad_item):
        with pytest.raises(InvalidRpcItemError):
            parse_payload(_body([{"jsonrpc": "2.0", "method": "eth_chainId"}, bad_item]))

    def test_batch_with_one_invalid_item_is_rejected(self):
        calls = [
            {"jsonrpc": "2.0", "method": "eth_chainId"},
            {"method": "eth_chainId"},
        ]
        with pytest.raises(InvalidRpcItemError):
            parse_payload(_body(calls))

    def test_shape_is_checked_before_whitelist(self):
        # The first item names a forbidden method but the second is malformed;
        # the shape failure wins because whitelisting is a later pass.
        calls = [
            {"jsonrpc": "2.0", "method": "eth_sendRawTransaction"},
            {"jsonrpc": "2.0"},
        ]
        with pytest.raises(InvalidRpcItemError):
            parse_payload(_body(calls))


class TestEnforceAllowedMethods:
    """Tests for the method whitelist pass."""

    def test_allowed_single(self):
        payload = parse_payload(_body({"jsonrpc": "2.0", "method": "eth_getBalance"}))
        enforce_allowed_methods(payload, ALLOWED)

    def test_disallowed_single(self):
        payload = parse_payload(_body({"jsonrpc": "2.0", "method": "eth_sendRawTransaction", "id": 1}))
        with pytest.raises(RpcMethodNotAllowedError) as exc_info:
            enforce_allowed_methods(payload, ALLOWED)

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "RPC method not allowed: eth_sendRawTransaction"

    def test_first_disallowed_method_is_reported(self):
        payload = parse_payload(_body([
            {"jsonrpc": "2.0", "method": "eth_chainId"},
            {"jsonrpc": "2.0", "method": "debug_traceTransaction"},
            {"jsonrpc": "2.0", "method": "eth_sendRawTransaction"},
        ]))
        with pytest.raises(RpcMethodNotAllowedError) as exc_info:
            enforce_allowed_methods(payload, ALLOWED)
        assert exc_info.value.rpc_method == "debug_traceTransaction"

    def test_custom_allowed_set(self):
        payload = parse_payload(_body({"jsonrpc": "2.0", "method": "net_version"}))
        enforce_allowed_methods(payload, frozenset({"net_version"}))
