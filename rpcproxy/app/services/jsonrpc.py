"""JSON-RPC payload parsing and method whitelisting.

``parse_payload`` turns the raw request body into either an ``RpcSingle``
or an ``RpcBatch``; every other shape is rejected by raising. Whitelist
enforcement is a separate second pass that runs only once every item has
parsed.
"""

import json
import math
from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError

from rpcproxy.app.exceptions import (
    InvalidPayloadError,
    InvalidRpcItemError,
    RpcMethodNotAllowedError,
)


class RpcRequestItem(BaseModel):
    """One JSON-RPC call. Fields other than the two below pass through."""

    model_config = ConfigDict(extra="allow", strict=True, frozen=True)

    jsonrpc: Literal["2.0"]
    method: StrictStr


@dataclass(frozen=True)
class RpcSingle:
    item: RpcRequestItem
    raw: dict[str, Any]

    @property
    def items(self) -> tuple[RpcRequestItem, ...]:
        return (self.item,)

    @property
    def is_batch(self) -> bool:
        return False


@dataclass(frozen=True)
class RpcBatch:
    items: tuple[RpcRequestItem, ...]
    raw: list[Any]

    @property
    def is_batch(self) -> bool:
        return True


RpcPayload = Union[RpcSingle, RpcBatch]


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON and cannot be re-serialized upstream
    raise ValueError(f"invalid JSON constant: {name}")


def _parse_finite_float(text: str) -> float:
    # Literals such as 1e400 overflow to inf
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"number out of range: {text}")
    return value


def _parse_item(value: Any) -> RpcRequestItem:
    if not isinstance(value, dict):
        raise InvalidRpcItemError()
    try:
        return RpcRequestItem.model_validate(value)
    except ValidationError:
        raise InvalidRpcItemError() from None


def parse_payload(body: bytes) -> RpcPayload:
    """Parse a request body into a single call or a non-empty batch.

    Raises:
        InvalidPayloadError: body is not JSON, is neither an object nor an
            array, or is an empty array.
        InvalidRpcItemError: the first item (in order) that lacks
            ``jsonrpc == "2.0"`` or a string ``method``.
    """
    try:
        data = json.loads(
            body,
            parse_constant=_reject_constant,
            parse_float=_parse_finite_float,
        )
    except (ValueError, RecursionError):
        raise InvalidPayloadError() from None

    if isinstance(data, list):
        if not data:
            raise InvalidPayloadError()
        return RpcBatch(items=tuple(_parse_item(v) for v in data), raw=data)
    if isinstance(data, dict):
        return RpcSingle(item=_parse_item(data), raw=data)
    raise InvalidPayloadError()


def enforce_allowed_methods(payload: RpcPayload, allowed: frozenset[str]) -> None:
    """Reject the whole payload on the first method outside ``allowed``."""
    for item in payload.items:
        if item.method not in allowed:
            raise RpcMethodNotAllowedError(item.method)
