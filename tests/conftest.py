"""Shared fixtures for the proxy test suite."""

import pytest
from fastapi.testclient import TestClient

from rpcproxy.app.core.config import Settings
from rpcproxy.app.main import create_app

TEST_API_KEY = "test-secret-key-123"
UPSTREAM_BASE = "https://arb-mainnet.g.alchemy.com/v2"
UPSTREAM_URL = f"{UPSTREAM_BASE}/{TEST_API_KEY}"
RPC_PATH = "/api/rpc"


def make_settings(**overrides) -> Settings:
    """Settings isolated from the environment and any .env file."""
    values = {
        "alchemy_api_key": TEST_API_KEY,
        "upstream_base_url": UPSTREAM_BASE,
        "redis_enabled": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def proxy_settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(proxy_settings):
    """TestClient with the lifespan running (shared HTTP client, sweeper)."""
    app = create_app(proxy_settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def unconfigured_client():
    app = create_app(make_settings(alchemy_api_key=""))
    with TestClient(app) as test_client:
        yield test_client
