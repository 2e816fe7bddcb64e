"""Core utilities for the proxy application."""

from rpcproxy.app.core.config import Settings, settings
from rpcproxy.app.core.http_client import create_http_client, init_http_client
from rpcproxy.app.core.logging import get_logger, setup_logging

__all__ = [
    "Settings",
    "settings",
    "create_http_client",
    "init_http_client",
    "get_logger",
    "setup_logging",
]
