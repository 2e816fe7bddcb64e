import json
import re
from typing import Annotated, Any

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_ALLOWED_METHODS = (
    "eth_chainId",
    "net_version",
    "eth_blockNumber",
    "eth_call",
    "eth_getBalance",
    "eth_getTransactionReceipt",
    "eth_getTransactionByHash",
    "eth_estimateGas",
    "eth_gasPrice",
)

SEND_RAW_TRANSACTION = "eth_sendRawTransaction"


def _parse_str_list(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []

    # Prefer JSON, but tolerate plain comma/space separated values so a
    # misconfigured deployment does not crash at startup.
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    # Deduplicate while preserving order.
    seen: set[str] = set()
    result: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part or part in seen:
            continue
        seen.add(part)
        result.append(part)
    return result


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Values are read once at process start.
    """

    # Debug mode - enables exception type in 500 responses
    debug: bool = False

    # Upstream provider
    alchemy_api_key: SecretStr = SecretStr("")
    upstream_base_url: str = "https://arb-mainnet.g.alchemy.com/v2"
    upstream_timeout_seconds: float = 12.0

    # Public surface
    rpc_path: str = "/api/rpc"
    service_name: str = "UluwatuSwap RPC proxy"
    chain_label: str = "arbitrum-42161"

    # Body size ceiling (bytes)
    max_body_bytes: int = 200_000

    # Rate limiting settings (fixed window)
    rate_limit_window_seconds: float = 10.0
    rate_limit_max_hits: int = 60
    rate_limit_max_entries: int = 10_000
    rate_limit_cleanup_interval_seconds: float = 60.0
    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when Redis is unavailable
    )

    # Redis settings (optional, shares rate-limit state across instances)
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"

    # CORS: origins ending with a suffix or containing a marker are echoed
    cors_allowed_suffixes: Annotated[list[str], NoDecode] = [".vercel.app"]
    cors_allowed_markers: Annotated[list[str], NoDecode] = ["localhost"]

    # JSON-RPC method whitelist extensions
    rpc_allow_send_raw_transaction: bool = False
    rpc_extra_methods: Annotated[list[str], NoDecode] = []

    # HTTP Client connection pool settings
    httpx_connect_timeout: float = 5.0
    httpx_read_timeout: float = 15.0
    httpx_write_timeout: float = 5.0
    httpx_pool_timeout: float = 5.0
    httpx_keepalive_expiry: float = 30.0
    httpx_max_connections: int = 100
    httpx_max_keepalive_connections: int = 20

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator(
        "cors_allowed_suffixes", "cors_allowed_markers", "rpc_extra_methods",
        mode="before",
    )
    @classmethod
    def decode_str_lists(cls, v: Any) -> list[str]:
        return _parse_str_list(v)

    @field_validator(
        "max_body_bytes",
        "rate_limit_max_hits",
        "rate_limit_max_entries",
        "httpx_max_connections",
        "httpx_max_keepalive_connections",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate count and size limits are positive."""
        if v < 1:
            raise ValueError("limit values must be at least 1")
        return v

    @field_validator(
        "upstream_timeout_seconds",
        "rate_limit_window_seconds",
        "rate_limit_cleanup_interval_seconds",
        "httpx_connect_timeout",
        "httpx_read_timeout",
        "httpx_write_timeout",
        "httpx_pool_timeout",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate durations are positive."""
        if v <= 0:
            raise ValueError("Timeout and window values must be positive")
        return v

    @property
    def upstream_url(self) -> str | None:
        """Keyed upstream endpoint, or None when no API key is configured."""
        key = self.alchemy_api_key.get_secret_value().strip()
        if not key:
            return None
        return f"{self.upstream_base_url.rstrip('/')}/{key}"

    @property
    def allowed_methods(self) -> frozenset[str]:
        """JSON-RPC methods the proxy forwards upstream."""
        methods = set(DEFAULT_ALLOWED_METHODS)
        if self.rpc_allow_send_raw_transaction:
            methods.add(SEND_RAW_TRANSACTION)
        methods.update(self.rpc_extra_methods)
        return frozenset(methods)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
