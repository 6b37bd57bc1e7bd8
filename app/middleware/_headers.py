"""Raw ASGI header helpers shared by the middleware in this package."""

from typing import Any


def get_header(scope: dict[str, Any], name: str) -> str | None:
    """Return the first value of header name (case-insensitive), or None."""
    want = name.lower().encode()
    for key, value in scope.get("headers", []):
        if key.lower() == want:
            return value.decode("utf-8", errors="replace")
    return None


def append_response_header(message: dict[str, Any], name: str, value: str) -> None:
    """Add a header to an http.response.start message in place."""
    if message["type"] != "http.response.start":
        return
    headers = list(message.get("headers", []))
    headers.append((name.encode(), value.encode()))
    message["headers"] = headers
