"""Logging setup for the proxy.

Three output formats are available through ``LOG_FORMAT``:

- ``text``: plain single-line records
- ``structured``: text plus ``request_id``/``client_key``/``rpc_method``
- ``json``: one JSON object per record, for log shippers

Request context travels as ``extra=`` attributes on the record;
``get_log_context`` builds that mapping and ``ContextFilter`` fills in
whatever a call site left out.
"""

import json
import logging
import logging.config
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rpcproxy.app.core.config import Settings, settings

PACKAGE_LOGGER = "rpcproxy"

# Attributes lifted to the top level of JSON records
CONTEXT_FIELDS = (
    "request_id",
    "client_key",
    "rpc_method",
    "path",
    "method",
    "status_code",
    "duration_ms",
)

# Attributes every LogRecord carries; anything else came in via extra=
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

_TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_STRUCTURED_FORMAT = (
    _TEXT_FORMAT
    + " - request_id=%(request_id)s client_key=%(client_key)s rpc_method=%(rpc_method)s"
)

# Third-party loggers kept quiet; httpx logs request URLs at INFO and the
# upstream URL embeds the API key
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


class JSONFormatter(logging.Formatter):
    """Render a record as a single JSON object.

    Context fields are top-level keys; other ``extra=`` attributes are
    grouped under ``"extra"``.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
            "source": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            },
        }

        extra: Dict[str, Any] = {}
        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS:
                continue
            if key in CONTEXT_FIELDS:
                if value is not None:
                    log_data[key] = value
            else:
                extra[key] = value
        if extra:
            log_data["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = traceback.format_exception(*record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ContextFilter(logging.Filter):
    """Default every context field to None so format strings never fail."""

    def filter(self, record: logging.LogRecord) -> bool:
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, None)
        return True


def get_logging_config(app_settings: Optional[Settings] = None) -> Dict[str, Any]:
    """Build a ``logging.config.dictConfig`` mapping from settings."""
    app_settings = app_settings or settings
    log_format = app_settings.log_format.lower()
    log_level = app_settings.log_level.upper()

    if log_format == "json":
        formatter: Dict[str, Any] = {"()": f"{__name__}.JSONFormatter"}
    elif log_format == "structured":
        formatter = {"format": _STRUCTURED_FORMAT}
    else:
        formatter = {"format": _TEXT_FORMAT}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "filters": {"context": {"()": f"{__name__}.ContextFilter"}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["context"],
                "stream": sys.stdout,
            },
        },
        "loggers": {
            PACKAGE_LOGGER: {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }


def setup_logging(app_settings: Optional[Settings] = None) -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config(app_settings))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = PACKAGE_LOGGER) -> logging.Logger:
    return logging.getLogger(name)


def get_log_context(
    request_id: Optional[str] = None,
    client_key: Optional[str] = None,
    rpc_method: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build an ``extra=`` mapping, dropping fields that are None.

    Example:
        >>> logger.info(
        ...     "Rate limit exceeded",
        ...     extra=get_log_context(request_id="abc123", client_key=key)
        ... )
    """
    context = {
        "request_id": request_id,
        "client_key": client_key,
        "rpc_method": rpc_method,
        **extra,
    }
    return {k: v for k, v in context.items() if v is not None}
