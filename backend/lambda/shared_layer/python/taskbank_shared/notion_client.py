"""taskbank_shared.notion_client — Minimal Notion REST API client.

Every call carries the caller-supplied integration token as a bearer token.
Requests are issued sequentially with urllib; there is no retry or backoff.

Environment variables:
    NOTION_API_BASE         default: https://api.notion.com/v1
    NOTION_VERSION          default: 2022-06-28
    NOTION_TIMEOUT_SECONDS  default: 15
"""

from __future__ import annotations

import json
import logging
import os
import urllib.error
import urllib.request
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

NOTION_API_BASE: str = os.environ.get("NOTION_API_BASE", "https://api.notion.com/v1").rstrip("/")
NOTION_VERSION: str = os.environ.get("NOTION_VERSION", "2022-06-28")
NOTION_TIMEOUT_SECONDS: float = float(os.environ.get("NOTION_TIMEOUT_SECONDS", "15"))

MAX_PAGE_SIZE = 100

# Notion error code -> coarse category used for friendlier client messages.
_CATEGORY_BY_CODE = {
    "object_not_found": "not_found",
    "unauthorized": "unauthorized",
    "restricted_resource": "unauthorized",
    "validation_error": "validation",
    "invalid_json": "validation",
    "invalid_request": "validation",
    "invalid_request_url": "validation",
    "missing_version": "validation",
    "rate_limited": "rate_limited",
}

_CATEGORY_BY_STATUS = {
    400: "validation",
    401: "unauthorized",
    403: "unauthorized",
    404: "not_found",
    429: "rate_limited",
}

_FRIENDLY_MESSAGES = {
    "not_found": "Notion object not found. Check the ID and that the integration has access to it.",
    "unauthorized": "Notion rejected the token. Check that it is valid and has access to this workspace.",
    "validation": "Notion rejected the request as invalid.",
    "rate_limited": "Notion rate limit reached. Try again shortly.",
    "upstream": "Notion API request failed.",
}


class NotionAPIError(Exception):
    """A non-2xx response (or transport failure) from the Notion API."""

    def __init__(
        self,
        status: int,
        message: str,
        code: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message
        self.body = body

    @property
    def category(self) -> str:
        if self.code and self.code in _CATEGORY_BY_CODE:
            return _CATEGORY_BY_CODE[self.code]
        return _CATEGORY_BY_STATUS.get(self.status, "upstream")

    @property
    def friendly_message(self) -> str:
        return _FRIENDLY_MESSAGES[self.category]

    @property
    def http_status(self) -> int:
        """Status code to forward to the caller (500 when no response was received)."""
        return self.status if self.status >= 400 else 500

    def to_details(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "code": self.code,
            "category": self.category,
            "message": self.message,
        }


def _clamp_page_size(page_size: Optional[int]) -> int:
    if page_size is None:
        return MAX_PAGE_SIZE
    return max(1, min(int(page_size), MAX_PAGE_SIZE))


class NotionClient:
    """Thin wrapper over the database query and page endpoints."""

    def __init__(
        self,
        token: str,
        *,
        base_url: Optional[str] = None,
        version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if not token:
            raise ValueError("Notion token is required")
        self.token = token
        self.base_url = (base_url or NOTION_API_BASE).rstrip("/")
        self.version = version or NOTION_VERSION
        self.timeout = timeout if timeout is not None else NOTION_TIMEOUT_SECONDS

    def _request(
        self, method: str, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(
            url,
            method=method,
            data=data,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Notion-Version": self.version,
                "Content-Type": "application/json",
            },
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read() or b"{}")
        except urllib.error.HTTPError as exc:
            text = exc.read().decode("utf-8", errors="replace")
            code = None
            message = text or exc.reason
            try:
                parsed = json.loads(text)
                code = parsed.get("code")
                message = parsed.get("message") or message
            except (json.JSONDecodeError, TypeError, AttributeError):
                pass
            logger.error("Notion %s %s failed: %s %s", method, path, exc.code, text)
            raise NotionAPIError(exc.code, str(message), code=code, body=text) from exc
        except urllib.error.URLError as exc:
            logger.error("Notion %s %s unreachable: %s", method, path, exc.reason)
            raise NotionAPIError(0, f"Notion API unreachable: {exc.reason}") from exc

    # ------------------------------------------------------------------
    # Databases
    # ------------------------------------------------------------------

    def query_database(
        self,
        database_id: str,
        *,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        start_cursor: Optional[str] = None,
        page_size: Optional[int] = MAX_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """POST /databases/{id}/query. Returns the raw list envelope."""
        payload: Dict[str, Any] = {"page_size": _clamp_page_size(page_size)}
        if filter:
            payload["filter"] = filter
        if sorts:
            payload["sorts"] = sorts
        if start_cursor:
            payload["start_cursor"] = start_cursor
        return self._request("POST", f"databases/{database_id}/query", payload)

    def query_all(
        self,
        database_id: str,
        *,
        filter: Optional[Dict[str, Any]] = None,
        sorts: Optional[List[Dict[str, Any]]] = None,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Collect results across pages by following next_cursor.

        Stops after *max_pages* requests when given.
        """
        results: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        pages = 0
        while True:
            resp = self.query_database(
                database_id, filter=filter, sorts=sorts, start_cursor=cursor
            )
            results.extend(resp.get("results") or [])
            pages += 1
            cursor = resp.get("next_cursor")
            if not resp.get("has_more") or not cursor:
                break
            if max_pages is not None and pages >= max_pages:
                logger.warning(
                    "Stopped paging %s after %d page(s); more results exist",
                    database_id, pages,
                )
                break
        return results

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def retrieve_page(self, page_id: str) -> Dict[str, Any]:
        return self._request("GET", f"pages/{page_id}")

    def create_page(
        self, database_id: str, properties: Dict[str, Any]
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "pages",
            {"parent": {"database_id": database_id}, "properties": properties},
        )

    def update_page(self, page_id: str, properties: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"pages/{page_id}", {"properties": properties})
