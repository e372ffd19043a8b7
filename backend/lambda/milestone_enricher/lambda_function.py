"""milestone_enricher/lambda_function.py — Task Bank + Weekly Milestones join

Fetches the Task Bank and Weekly Milestones databases with the caller's
Notion token and annotates each task with the status implied by its linked
milestone.

Routes (via API Gateway proxy):
    POST    /api/notion-proxy-debug  — fetch and enrich tasks
    OPTIONS /api/notion-proxy-debug  — CORS preflight

Request body:
    token           Notion integration token (required)
    tasksDbId       Task Bank database id (required; alias tasks_db_id)
    milestonesDbId  Weekly Milestones database id (required; alias milestones_db_id)

Environment variables:
    MAX_PAGES  pages of 100 fetched per database (default: 1)
"""

from __future__ import annotations

import datetime as dt
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
from taskbank_shared.notion_client import NotionAPIError, NotionClient
from taskbank_shared.schema import MilestoneRecord, SchemaError, TaskRecord
from taskbank_shared.status import compute_status, page_status

MAX_PAGES = max(1, int(os.environ.get("MAX_PAGES", "1")))

logger = logging.getLogger()
logger.setLevel(logging.INFO)


def _index_milestones(milestones: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {m["id"]: m for m in milestones if isinstance(m, dict) and m.get("id")}


def _enrich_task(
    task_page: Dict[str, Any], milestones_by_id: Dict[str, Dict[str, Any]]
) -> Dict[str, Any]:
    try:
        task = TaskRecord.from_page(task_page)
    except SchemaError as exc:
        logger.warning("Unmappable task page: %s", exc)
        return {**task_page, "computedStatus": page_status(task_page), "milestoneData": None}

    milestone_page: Optional[Dict[str, Any]] = None
    milestone: Optional[MilestoneRecord] = None
    if task.milestone_id:
        milestone_page = milestones_by_id.get(task.milestone_id)
        if milestone_page is None:
            logger.info(
                "Task %s links milestone %s which was not fetched",
                task.id, task.milestone_id,
            )
        else:
            milestone = MilestoneRecord.from_page(milestone_page)

    return {
        **task_page,
        "computedStatus": compute_status(task, milestone),
        "milestoneData": milestone_page,
    }


def _handle_enrich(body: Dict[str, Any]) -> Dict[str, Any]:
    token = body.get("token")
    tasks_db_id = _first_present(body, "tasksDbId", "tasks_db_id")
    milestones_db_id = _first_present(body, "milestonesDbId", "milestones_db_id")
    if not token or not tasks_db_id or not milestones_db_id:
        return _error(400, "Missing token, tasksDbId, or milestonesDbId")

    client = NotionClient(token)

    logger.info("Fetching Tasks Bank database %s", tasks_db_id)
    try:
        tasks = client.query_all(tasks_db_id, max_pages=MAX_PAGES)
    except NotionAPIError as exc:
        return _notion_error(exc, "Tasks API error")
    logger.info("Fetched %d tasks", len(tasks))

    logger.info("Fetching Weekly Milestones database %s", milestones_db_id)
    try:
        milestones = client.query_all(milestones_db_id, max_pages=MAX_PAGES)
    except NotionAPIError as exc:
        return _notion_error(exc, "Milestones API error")
    logger.info("Fetched %d milestones", len(milestones))

    milestones_by_id = _index_milestones(milestones)
    enriched = [_enrich_task(task, milestones_by_id) for task in tasks]
    with_milestones = sum(1 for t in enriched if t.get("milestoneData"))

    logger.info(
        "Processed %d tasks, %d with milestones", len(enriched), with_milestones
    )

    return _response(200, {
        "results": enriched,
        "milestones": milestones,
        "totalTasks": len(enriched),
        "tasksWithMilestones": with_milestones,
        "debug": {
            "tasksCount": len(tasks),
            "milestonesCount": len(milestones),
            "enrichedTasksCount": len(enriched),
            "timestamp": dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        },
    })


def lambda_handler(event: Dict, context: Any) -> Dict:
    gated = _gate_method(event, ("POST",))
    if gated:
        return gated

    try:
        body = _json_body(event)
    except ValueError:
        return _error(400, "Invalid JSON body.")

    try:
        return _handle_enrich(body)
    except Exception as exc:
        logger.exception("Proxy error")
        return _unexpected_error(exc)
