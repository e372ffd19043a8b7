"""taskbank_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope, body parsing and method gating used by all
Task Bank Lambda functions. Every response carries the same permissive CORS
header set so the browser client can call the handlers directly.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


def _cors_headers() -> Dict[str, str]:
    return {**CORS_HEADERS, "Content-Type": "application/json"}


def _response(status_code: int, body: Any) -> Dict[str, Any]:
    """Build a standard API Gateway response with CORS headers."""
    return {
        "statusCode": status_code,
        "headers": _cors_headers(),
        "body": json.dumps(body, default=str),
    }


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: Additional fields merged into the response payload.
    """
    payload: Dict[str, Any] = {
        "success": False,
        "error": message,
    }
    if extra:
        payload.update({k: v for k, v in extra.items() if v is not None})
    return _response(status_code, payload)


def _method(event: Dict[str, Any]) -> str:
    """Extract the HTTP method from an API Gateway v1 or v2 event."""
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    return (http.get("method") or event.get("httpMethod") or "GET").upper()


def _json_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON object body of an API Gateway event (handles base64).

    Raises ValueError when the body is not a JSON object.
    """
    raw = event.get("body")
    if raw in (None, ""):
        return {}

    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")

    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ValueError(f"Invalid JSON body: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ValueError("JSON body must be an object")
    return parsed


def _gate_method(
    event: Dict[str, Any], allowed: Iterable[str] = ("POST",)
) -> Optional[Dict[str, Any]]:
    """Answer CORS preflight and reject unsupported methods.

    Returns a finished response for OPTIONS or a disallowed method, or None
    when the handler should go on to process the request.
    """
    method = _method(event)
    if method == "OPTIONS":
        return {"statusCode": 200, "headers": _cors_headers(), "body": ""}
    if method not in {m.upper() for m in allowed}:
        logger.info("Rejecting %s request", method)
        return _error(405, "Method not allowed")
    return None


def _first_present(body: Dict[str, Any], *keys: str) -> Any:
    """Return the first non-empty value among *keys* in *body*."""
    for key in keys:
        value = body.get(key)
        if value not in (None, ""):
            return value
    return None


def _notion_error(exc: Any, label: Optional[str] = None) -> Dict[str, Any]:
    """Forward a NotionAPIError: remote status code, classified message, detail.

    *label* names the failing call ("Tasks API error") for handlers that
    issue more than one query.
    """
    message = f"{label}: {exc.http_status}" if label else exc.friendly_message
    return _error(
        exc.http_status,
        message,
        details=exc.message,
        code=exc.code,
        category=exc.category,
    )


def _unexpected_error(exc: BaseException, message: str = "Internal server error") -> Dict[str, Any]:
    """500 response for anything not raised by the Notion client."""
    return _error(500, message, details=str(exc), code=getattr(exc, "code", None))
