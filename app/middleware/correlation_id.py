"""Correlation ID middleware.

Propagates X-Correlation-ID across services: the client value when given,
else the request ID, else a fresh UUID. Raw ASGI.
"""

import uuid
from typing import Callable

from app.middleware._headers import append_response_header, get_header
from app.middleware.request_id import sanitize_request_id


def CorrelationIDMiddleware(app: Callable, header_name: str = "X-Correlation-ID") -> Callable:
    async def asgi_app(scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await app(scope, receive, send)
            return
        state = scope.setdefault("state", {})
        raw = get_header(scope, header_name)
        correlation_id = (
            sanitize_request_id(raw) if raw else state.get("request_id") or str(uuid.uuid4())
        )
        state["correlation_id"] = correlation_id

        async def send_wrapper(message: dict) -> None:
            append_response_header(message, header_name, correlation_id)
            await send(message)

        await app(scope, receive, send_wrapper)

    return asgi_app
