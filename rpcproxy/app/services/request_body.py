"""Request body size enforcement.

The declared Content-Length is checked before anything else touches the
body, so oversized requests are rejected without being read. Bodies that
declare no usable length (chunked transfer encoding) are counted as they
stream in and rejected as soon as the running total passes the ceiling.
"""

from fastapi import Request

from rpcproxy.app.exceptions import PayloadTooLargeError


def declared_content_length(request: Request) -> int | None:
    """Declared Content-Length, or None when absent or unparseable."""
    raw = request.headers.get("content-length")
    if not raw:
        return None
    try:
        size = int(raw)
    except ValueError:
        return None
    return size if size >= 0 else None


def check_declared_length(request: Request, max_bytes: int) -> None:
    """Raise PayloadTooLargeError if the declared length exceeds ``max_bytes``."""
    size = declared_content_length(request)
    if size is not None and size > max_bytes:
        raise PayloadTooLargeError()


async def read_limited_body(request: Request, max_bytes: int) -> bytes:
    """Read the request body, never buffering more than ``max_bytes``.

    Raises:
        PayloadTooLargeError: If the body turns out larger than ``max_bytes``
    """
    chunks: list[bytes] = []
    bytes_read = 0
    async for chunk in request.stream():
        bytes_read += len(chunk)
        if bytes_read > max_bytes:
            raise PayloadTooLargeError()
        chunks.append(chunk)
    return b"".join(chunks)
