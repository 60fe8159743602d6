from typing import Any, Optional


def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """Success body shared by every route: {"success": true, "message"?, "data"?}."""
    body = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
