"""Security and CORS response headers.

Applied to every HTTP response, whatever the method or outcome:

- ``X-Content-Type-Options``, ``Referrer-Policy`` and ``Permissions-Policy``
- ``Access-Control-Allow-Origin`` echoing the request Origin when it ends
  with an allowed suffix or contains an allowed marker (e.g. localhost)
- ``Vary: Origin`` so caches keep per-origin variants apart

This is a raw ASGI middleware so it also covers responses produced by
exception handlers. The catch-all ``Exception`` handler runs outside every
user middleware and applies ``security_headers`` itself.
"""

from typing import Dict, Iterable, Sequence

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send


BASELINE_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "same-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


def is_allowed_origin(
    origin: str,
    suffixes: Iterable[str],
    markers: Iterable[str],
) -> bool:
    """Whether ``origin`` may read responses cross-origin."""
    if not origin:
        return False
    return any(origin.endswith(s) for s in suffixes) or any(m in origin for m in markers)


def security_headers(
    origin: str,
    suffixes: Iterable[str],
    markers: Iterable[str],
) -> Dict[str, str]:
    """Baseline headers plus the CORS echo for ``origin`` when allowed.

    ``Vary: Origin`` is left to the caller so it can be merged with an
    existing ``Vary`` value.
    """
    headers = dict(BASELINE_HEADERS)
    if is_allowed_origin(origin, suffixes, markers):
        headers["Access-Control-Allow-Origin"] = origin
    return headers


class SecurityHeadersMiddleware:
    """ASGI middleware adding baseline security headers and CORS echo.

    Usage:
        app.add_middleware(
            SecurityHeadersMiddleware,
            allowed_suffixes=[".vercel.app"],
            allowed_markers=["localhost"],
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        allowed_suffixes: Sequence[str] = (".vercel.app",),
        allowed_markers: Sequence[str] = ("localhost",),
    ):
        self.app = app
        self.allowed_suffixes = tuple(allowed_suffixes)
        self.allowed_markers = tuple(allowed_markers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        extra_headers = security_headers(
            Headers(scope=scope).get("origin", ""),
            self.allowed_suffixes,
            self.allowed_markers,
        )

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                for name, value in extra_headers.items():
                    headers[name] = value
                headers.add_vary_header("Origin")
            await send(message)

        await self.app(scope, receive, send_with_headers)
