"""Request ID middleware.

Forwards a client X-Request-ID when it is safe to log, otherwise generates
one; stores it on scope state and echoes it on the response. Raw ASGI.
"""

import re
import uuid
from typing import Callable

from app.middleware._headers import append_response_header, get_header

REQUEST_ID_MAX_LENGTH = 64
_SAFE_ID = re.compile(r"^[a-zA-Z0-9_-]{1," + str(REQUEST_ID_MAX_LENGTH) + r"}$")


def sanitize_request_id(raw: str | None) -> str:
    """Return raw when it matches the safe pattern; a fresh UUID otherwise (no log injection)."""
    candidate = (raw or "").strip()
    if _SAFE_ID.match(candidate):
        return candidate
    return str(uuid.uuid4())


def RequestIDMiddleware(app: Callable, header_name: str = "X-Request-ID") -> Callable:
    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await app(scope, receive, send)
            return
        request_id = sanitize_request_id(get_header(scope, header_name))
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_wrapper(message: dict) -> None:
            append_response_header(message, header_name, request_id)
            await send(message)

        await app(scope, receive, send_wrapper)

    return asgi_app
