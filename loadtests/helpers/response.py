"""Failure messages for notification API calls made under load.

Two error bodies come back from the API:

- request validation (422): {"detail": [{"loc": [...], "msg": "..."}]}
- domain errors (400/404/422): {"error": ..., "correlation_id": "..."}, where
  `error` is a message or a field map of message lists, e.g.
  {"status": ["Only notifications being processed can be requeued, not sent"]}
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response

_MAX_LENGTH = 300


def _flatten(messages) -> str:
    if isinstance(messages, list | tuple):
        return "; ".join(str(m) for m in messages)
    return str(messages)


def extract_error_detail(response: Response) -> str:
    """A compact, one-line description of an API error body."""
    try:
        body = response.json()
    except ValueError:
        text = getattr(response, "text", "") or ""
        return text[:_MAX_LENGTH] or "(empty response body)"

    if not isinstance(body, dict):
        return str(body)[:_MAX_LENGTH]

    if isinstance(body.get("detail"), list):
        parts = []
        for err in body["detail"]:
            loc = ".".join(str(p) for p in err.get("loc", []) if p != "body")
            msg = err.get("msg", str(err))
            parts.append(f"{loc}: {msg}" if loc else msg)
        return " | ".join(parts)

    if "error" in body:
        error = body["error"]
        if isinstance(error, dict):
            detail = " | ".join(f"{field}: {_flatten(messages)}" for field, messages in error.items())
        else:
            detail = _flatten(error)
        if body.get("correlation_id"):
            detail = f"{detail} [correlation {body['correlation_id']}]"
        return detail[:_MAX_LENGTH]

    return str(body)[:_MAX_LENGTH]


def failure_message(action: str, response: Response) -> str:
    """Locust failure text for `action`, e.g. "Create failed: 422 (title: required)"."""
    return f"{action} failed: {response.status_code} ({extract_error_detail(response)})"
