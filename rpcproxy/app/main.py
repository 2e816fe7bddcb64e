from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from rpcproxy.app.api.responses import NoStoreJSONResponse, error_response
from rpcproxy.app.api.rpc import create_router
from rpcproxy.app.core.config import Settings, settings
from rpcproxy.app.core.http_client import init_http_client
from rpcproxy.app.core.logging import get_log_context, get_logger, setup_logging
from rpcproxy.app.exceptions import HttpMethodNotAllowedError, RpcProxyError
from rpcproxy.app.middleware.request_id import RequestIdMiddleware, get_request_id
from rpcproxy.app.middleware.security_headers import SecurityHeadersMiddleware, security_headers
from rpcproxy.app.services.rate_limit import RateLimiter, RateLimitSweeper


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use instead of the environment-loaded
            global instance

    Returns:
        Configured FastAPI application instance
    """
    app_settings = app_settings or settings

    setup_logging(app_settings)
    logger = get_logger(__name__)

    rate_limiter = RateLimiter.from_settings(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Opens the shared upstream HTTP connection pool and the rate-limit
        sweeper on startup and releases both on shutdown.
        """
        async with init_http_client(app_settings) as http_client:
            app.state.http_client = http_client

            sweeper = RateLimitSweeper(
                rate_limiter,
                interval=app_settings.rate_limit_cleanup_interval_seconds,
            )
            await sweeper.start()

            logger.info(
                "Application startup complete",
                extra={
                    "upstream_configured": app_settings.upstream_url is not None,
                    "allowed_methods": sorted(app.state.allowed_methods),
                    "redis_rate_limit": app_settings.redis_enabled,
                },
            )

            try:
                yield
            finally:
                await sweeper.stop()
                await rate_limiter.close()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="RPC Proxy",
        description="JSON-RPC reverse proxy with admission control for a keyed upstream provider",
        version="1.0.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # Computed once; immutable for the process lifetime
    app.state.settings = app_settings
    app.state.allowed_methods = app_settings.allowed_methods
    app.state.rate_limiter = rate_limiter

    # Middleware order: last added = first executed
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        SecurityHeadersMiddleware,
        allowed_suffixes=app_settings.cors_allowed_suffixes,
        allowed_markers=app_settings.cors_allowed_markers,
    )

    app.include_router(create_router(app_settings.rpc_path))

    @app.exception_handler(RpcProxyError)
    async def rpc_proxy_error_handler(request: Request, exc: RpcProxyError) -> JSONResponse:
        """Render gate rejections as ``{"error": message}``."""
        if exc.status_code >= 500:
            logger.warning(
                f"Request failed: {exc.message}",
                extra=get_log_context(request_id=get_request_id(request), status_code=exc.status_code),
            )
        else:
            logger.info(
                f"Request rejected: {exc.message}",
                extra=get_log_context(request_id=get_request_id(request), status_code=exc.status_code),
            )
        return error_response(exc.status_code, exc.message, exc.headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Render routing errors in the same shape as gate rejections."""
        if exc.status_code == 405:
            not_allowed = HttpMethodNotAllowedError()
            return error_response(not_allowed.status_code, not_allowed.message, not_allowed.headers)
        return error_response(exc.status_code, str(exc.detail), exc.headers)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns exception text or a traceback to the client; the
        upstream URL embeds the API key.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        content = {"error": "Internal server error", "request_id": request_id}
        if app_settings.debug:
            content["exception_type"] = type(exc).__name__
        # Starlette renders this response outside the middleware stack
        headers = security_headers(
            request.headers.get("origin", ""),
            app_settings.cors_allowed_suffixes,
            app_settings.cors_allowed_markers,
        )
        headers["Vary"] = "Origin"
        headers["X-Request-ID"] = request_id
        return NoStoreJSONResponse(content, status_code=500, headers=headers)

    return app


# Create the application instance
app = create_app()
