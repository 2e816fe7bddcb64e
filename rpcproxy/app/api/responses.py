"""Response helpers shared by the gate routes and exception handlers."""

from typing import Any, Mapping, Optional

from fastapi.responses import JSONResponse


NO_STORE = "no-store, no-cache, must-revalidate"


class NoStoreJSONResponse(JSONResponse):
    """JSON response with an explicit charset and cache prevention."""

    media_type = "application/json; charset=utf-8"

    def __init__(
        self,
        content: Any,
        status_code: int = 200,
        headers: Optional[Mapping[str, str]] = None,
    ):
        merged = {"Cache-Control": NO_STORE}
        if headers:
            merged.update(headers)
        super().__init__(content, status_code=status_code, headers=merged)


def error_response(
    status_code: int,
    message: str,
    headers: Optional[Mapping[str, str]] = None,
) -> NoStoreJSONResponse:
    return NoStoreJSONResponse({"error": message}, status_code=status_code, headers=headers)
