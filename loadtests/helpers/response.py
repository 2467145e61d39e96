"""Reading delivery API error bodies in load test scenarios.

Order errors are ``{"error": code, "message": ..., "detail": {...}, "retryable": bool}``.
Request validation is FastAPI's ``{"detail": [...]}``; protean's domain
validation and not-found responses put a string or field map under ``error``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def _body(response: Response):
    try:
        return response.json()
    except ValueError:
        return None


def error_code(response: Response) -> str | None:
    """The order error code (``quota_exceeded``, ``already_claimed``...), if the body has one."""
    body = _body(response)
    if isinstance(body, dict) and isinstance(body.get("error"), str) and "message" in body:
        return body["error"]
    return None


def extract_error_detail(response: Response) -> str:
    """One line describing the failure, for Locust failure messages."""
    body = _body(response)
    if not isinstance(body, dict):
        return (getattr(response, "text", "") or "(empty response body)")[:300]

    code = error_code(response)
    if code is not None:
        return f"{code}: {body['message']}"

    if isinstance(body.get("detail"), list):
        return " | ".join(
            ".".join(str(part) for part in err.get("loc", [])) + f": {err.get('msg', err)}" for err in body["detail"]
        )

    error = body.get("error", body)
    if isinstance(error, dict):
        return " | ".join(f"{field}: {messages}" for field, messages in error.items())
    return str(error)[:300]
