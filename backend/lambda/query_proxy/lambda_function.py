"""query_proxy/lambda_function.py — Notion database query proxy for Task Bank

Forwards a filtered/sorted query to one Notion database using the caller's
integration token and annotates every returned page with its week number,
current-week flag and computed status.

Routes (via API Gateway proxy):
    POST    /api/notion-proxy   — query a database
    OPTIONS /api/notion-proxy   — CORS preflight

Request body:
    token         Notion integration token (required)
    database_id   database to query (required; alias databaseId)
    filter        Notion filter object (optional)
    sorts         Notion sorts array (optional)
    start_cursor  pagination cursor (optional)
    page_size     1..100, default 100

Environment variables:
    REMOVED_SORT_PROPERTIES  csv of properties no longer in the schema (default: Week)
    NOTION_API_BASE, NOTION_VERSION, NOTION_TIMEOUT_SECONDS
    WEEK_MAPPINGS_*          see taskbank_shared.weeks
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from taskbank_shared.http_utils import (
    _error,
    _first_present,
    _gate_method,
    _json_body,
    _notion_error,
    _response,
    _unexpected_error,
)
from taskbank_shared.notion_client import MAX_PAGE_SIZE, NotionAPIError, NotionClient
from taskbank_shared.status import page_status
from taskbank_shared.weeks import (
    MappingError,
    WeekMappings,
    current_week_number,
    load_week_mappings,
    week_number_for,
)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

REMOVED_SORT_PROPERTIES = tuple(
    p.strip()
    for p in os.environ.get("REMOVED_SORT_PROPERTIES", "Week").split(",")
    if p.strip()
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)


# ---------------------------------------------------------------------------
# Request shaping
# ---------------------------------------------------------------------------


def _parse_page_size(raw: Any) -> int:
    """Clamp page_size to 1..100. Raises ValueError for non-integers."""
    if raw in (None, ""):
        return MAX_PAGE_SIZE
    if isinstance(raw, bool):
        raise ValueError("page_size must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("page_size must be an integer") from exc
    return max(1, min(value, MAX_PAGE_SIZE))


def _strip_removed_sorts(sorts: Any) -> Optional[List[Dict[str, Any]]]:
    """Drop sort entries that reference properties removed from the schema."""
    if not isinstance(sorts, list):
        return None
    kept = []
    for entry in sorts:
        if isinstance(entry, dict) and entry.get("property") in REMOVED_SORT_PROPERTIES:
            logger.info("Dropping sort on removed property %r", entry.get("property"))
            continue
        kept.append(entry)
    return kept or None


def _annotate(
    page: Dict[str, Any], mappings: WeekMappings, current_week: Optional[int]
) -> Dict[str, Any]:
    week_number = week_number_for(page, mappings)
    return {
        **page,
        "weekNumber": week_number,
        "isCurrentWeek": week_number is not None and week_number == current_week,
        "computedStatus": page_status(page),
    }


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def _handle_query(body: Dict[str, Any]) -> Dict[str, Any]:
    token = body.get("token")
    database_id = _first_present(body, "database_id", "databaseId")
    if not token or not database_id:
        return _error(400, "Missing token or database_id")

    try:
        page_size = _parse_page_size(body.get("page_size"))
    except ValueError as exc:
        return _error(400, str(exc))

    filter_ = body.get("filter")
    if filter_ is not None and not isinstance(filter_, dict):
        return _error(400, "filter must be an object")

    mappings = load_week_mappings()
    current_week = current_week_number(mappings)

    client = NotionClient(token)
    logger.info("Querying database %s (page_size=%d)", database_id, page_size)
    data = client.query_database(
        database_id,
        filter=filter_,
        sorts=_strip_removed_sorts(body.get("sorts")),
        start_cursor=body.get("start_cursor"),
        page_size=page_size,
    )

    results = [_annotate(page, mappings, current_week) for page in data.get("results") or []]
    logger.info("Returning %d annotated result(s) from %s", len(results), database_id)
    return _response(200, {**data, "results": results, "currentWeek": current_week})


def lambda_handler(event: Dict, context: Any) -> Dict:
    gated = _gate_method(event, ("POST",))
    if gated:
        return gated

    try:
        body = _json_body(event)
    except ValueError:
        return _error(400, "Invalid JSON body.")

    try:
        return _handle_query(body)
    except NotionAPIError as exc:
        return _notion_error(exc)
    except MappingError as exc:
        logger.error("Week mappings unavailable: %s", exc)
        return _unexpected_error(exc, "Week mappings unavailable")
    except Exception as exc:
        logger.exception("Proxy error")
        return _unexpected_error(exc)
