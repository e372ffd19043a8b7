"""task_automation/lambda_function.py — Task Bank → Weekly Milestones automation

Turns scheduled Task Bank entries into Weekly Milestones and keeps milestone
Scorecard Week links in step with their Week Reference.

Routes (via API Gateway proxy):
    POST    /api/task-automation  — run an action
    OPTIONS /api/task-automation  — CORS preflight

Request body:
    token             Notion integration token (required)
    action            convert_tasks (default) | sync_week_references
    tasksDbId         overrides TASKS_DB_ID
    milestonesDbId    overrides MILESTONES_DB_ID
    check_duplicates  link an existing same-title milestone instead of creating one (default true)
    update_status     move converted tasks to "🔄 In Progress" (default true)
    status            only convert tasks with this Status (optional)

Actions run sequentially, one Notion call at a time. A failure on one task or
milestone is recorded and the batch carries on.

Environment variables:
    TASKS_DB_ID, MILESTONES_DB_ID  default database ids
    SYNC_DELAY_SECONDS             pause after each sync update (default: 0.05)
    WEEK_MAPPINGS_*                see taskbank_shared.weeks
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from taskbank_shared.http_utils import (
    _error,
    _first_present,
    _gate_method,
    _json_body,
    _notion_error,
    _response,
)
from taskbank_shared.notion_client import NotionAPIError, NotionClient
from taskbank_shared.schema import (
    COMPLETED_PROP,
    DEADLINE_TYPE_PROP,
    DUE_DATE_PROP,
    FOCUS_AREA_PROP,
    NOTES_PROP,
    SCORECARD_WEEK_PROP,
    STATUS_PROP,
    TASK_MILESTONE_PROPS,
    TITLE_PROPS,
    UNTITLED,
    WEEK_REFERENCE_PROP,
    WEEK_SELECT_PROP,
    WEEK_START_DATE_PROP,
    MilestoneRecord,
    TaskRecord,
    checkbox_value,
    date_start,
    date_value,
    relation_value,
    rich_text_value,
    select_value,
    title_text,
    title_value,
)
from taskbank_shared.status import STATUS_TASK_IN_PROGRESS, deadline_type_for
from taskbank_shared.weeks import MappingError, WeekMappings, load_week_mappings, same_page_id

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

TASKS_DB_ID = os.environ.get("TASKS_DB_ID", "e1cdae69-6ef0-442f-9777-01c2d7473b66")
MILESTONES_DB_ID = os.environ.get("MILESTONES_DB_ID", "dab40b08-41d9-4457-bb96-471835d466b7")
SYNC_DELAY_SECONDS = float(os.environ.get("SYNC_DELAY_SECONDS", "0.05"))

DUPLICATE_CHECK_PAGE_SIZE = 10
TASK_MILESTONE_PROP = TASK_MILESTONE_PROPS[0]
MILESTONE_TITLE_PROP = TITLE_PROPS[0]
NOTES_PREFIX = "Auto-created from Task Bank"

ACTION_CONVERT_TASKS = "convert_tasks"
ACTION_SYNC_WEEK_REFERENCES = "sync_week_references"
ACTIONS = (ACTION_CONVERT_TASKS, ACTION_SYNC_WEEK_REFERENCES)

# "Week 1 - Aug 4-10, 2025" -> "Week 1"
_RE_WEEK_TITLE = re.compile(r"Week (\d+)")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(logging.INFO)


@dataclass
class TaskOutcome:
    """Result of converting one task. outcome: created | linked_existing | skipped | error."""

    taskId: Optional[str]
    task: str
    outcome: str
    milestoneId: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _bool_flag(body: Dict[str, Any], key: str, default: bool) -> bool:
    value = body.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in {"false", "0", "no", "off", ""}
    return bool(value)


# ---------------------------------------------------------------------------
# convert_tasks
# ---------------------------------------------------------------------------


def _candidate_filter(status: Optional[str]) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = [
        {"property": WEEK_REFERENCE_PROP, "relation": {"is_not_empty": True}},
        {"property": TASK_MILESTONE_PROP, "relation": {"is_empty": True}},
    ]
    if status:
        clauses.append({"property": STATUS_PROP, "select": {"equals": status}})
    return {"and": clauses}


def _find_existing_milestone(
    client: NotionClient, milestones_db_id: str, title: str
) -> Optional[Dict[str, Any]]:
    """First milestone whose title equals *title* exactly, if any."""
    resp = client.query_database(
        milestones_db_id,
        filter={"property": MILESTONE_TITLE_PROP, "title": {"equals": title}},
        page_size=DUPLICATE_CHECK_PAGE_SIZE,
    )
    for page in resp.get("results") or []:
        if title_text(page) == title:
            return page
    return None


def _week_details(client: NotionClient, week_ref_id: str) -> Dict[str, Optional[str]]:
    """Week label and date range from the Week Reference page (best effort)."""
    details: Dict[str, Optional[str]] = {"label": None, "start": None, "end": None}
    try:
        page = client.retrieve_page(week_ref_id)
    except NotionAPIError as exc:
        logger.info("Could not retrieve week details for %s: %s", week_ref_id, exc)
        return details

    match = _RE_WEEK_TITLE.search(title_text(page) or "")
    if match:
        details["label"] = f"Week {match.group(1)}"
    details["start"] = date_start(page, "Start Date")
    details["end"] = date_start(page, "End Date")
    return details


def _milestone_properties(
    task: TaskRecord, mappings: WeekMappings, week: Dict[str, Optional[str]]
) -> Dict[str, Any]:
    notes = f"{NOTES_PREFIX}\n\nOriginal Notes: {task.notes}" if task.notes else NOTES_PREFIX
    props: Dict[str, Any] = {
        MILESTONE_TITLE_PROP: title_value(task.title),
        NOTES_PROP: rich_text_value(notes),
        DEADLINE_TYPE_PROP: select_value(deadline_type_for(task.priority)),
        COMPLETED_PROP: checkbox_value(False),
        WEEK_REFERENCE_PROP: relation_value(task.week_reference_id),
    }
    if task.focus_area:
        props[FOCUS_AREA_PROP] = select_value(task.focus_area)

    scorecard_id = mappings.scorecard_week(task.week_reference_id)
    if scorecard_id:
        props[SCORECARD_WEEK_PROP] = relation_value(scorecard_id)

    if week.get("label"):
        props[WEEK_SELECT_PROP] = select_value(week["label"])
    if week.get("end"):
        props[DUE_DATE_PROP] = date_value(week["end"])
    if week.get("start"):
        props[WEEK_START_DATE_PROP] = date_value(week["start"])
    return props


def _link_task(
    client: NotionClient, task_id: str, milestone_id: str, update_status: bool
) -> None:
    props: Dict[str, Any] = {TASK_MILESTONE_PROP: relation_value(milestone_id)}
    if update_status:
        props[STATUS_PROP] = select_value(STATUS_TASK_IN_PROGRESS)
    client.update_page(task_id, props)


def _convert_task(
    client: NotionClient,
    task: TaskRecord,
    milestones_db_id: str,
    mappings: WeekMappings,
    *,
    check_duplicates: bool,
    update_status: bool,
) -> TaskOutcome:
    logger.info("Processing task: %s", task.title)

    if not task.week_reference_id:
        logger.info('Skipping task "%s" - no week reference', task.title)
        return TaskOutcome(task.id, task.title, "skipped")

    if check_duplicates:
        existing = _find_existing_milestone(client, milestones_db_id, task.title)
        if existing is not None:
            _link_task(client, task.id, existing["id"], update_status)
            logger.info('Linked "%s" to existing milestone %s', task.title, existing["id"])
            return TaskOutcome(task.id, task.title, "linked_existing", milestoneId=existing["id"])

    week = _week_details(client, task.week_reference_id)
    milestone = client.create_page(
        milestones_db_id, _milestone_properties(task, mappings, week)
    )
    logger.info("Created milestone: %s", task.title)

    _link_task(client, task.id, milestone["id"], update_status)
    logger.info("Updated task status and linked milestone")
    return TaskOutcome(task.id, task.title, "created", milestoneId=milestone["id"])


def _handle_convert_tasks(
    client: NotionClient, body: Dict[str, Any], mappings: WeekMappings
) -> Dict[str, Any]:
    tasks_db_id = _first_present(body, "tasksDbId", "tasks_db_id") or TASKS_DB_ID
    milestones_db_id = _first_present(body, "milestonesDbId", "milestones_db_id") or MILESTONES_DB_ID
    check_duplicates = _bool_flag(body, "check_duplicates", True)
    update_status = _bool_flag(body, "update_status", True)

    logger.info("Querying Task Bank %s for tasks awaiting milestones...", tasks_db_id)
    candidates = client.query_all(tasks_db_id, filter=_candidate_filter(body.get("status")))
    logger.info("Found %d candidate tasks", len(candidates))

    if not candidates:
        return _response(200, {
            "success": True,
            "message": "No planned tasks found to process",
            "summary": {
                "tasksProcessed": 0,
                "milestonesCreated": 0,
                "tasksLinked": 0,
                "duplicatesSkipped": 0,
                "skipped": 0,
                "errors": 0,
            },
            "errors": [],
            "results": [],
        })

    outcomes: List[TaskOutcome] = []
    for page in candidates:
        label = title_text(page) or UNTITLED
        try:
            task = TaskRecord.from_page(page)
            outcome = _convert_task(
                client,
                task,
                milestones_db_id,
                mappings,
                check_duplicates=check_duplicates,
                update_status=update_status,
            )
        except Exception as exc:
            logger.error('Error processing task "%s": %s', label, exc)
            task_id = page.get("id") if isinstance(page, dict) else None
            outcome = TaskOutcome(task_id, label, "error", error=str(exc))
        outcomes.append(outcome)

    created = sum(1 for o in outcomes if o.outcome == "created")
    duplicates = sum(1 for o in outcomes if o.outcome == "linked_existing")
    skipped = sum(1 for o in outcomes if o.outcome == "skipped")
    errors = [
        {"task": o.task, "taskId": o.taskId, "error": o.error}
        for o in outcomes
        if o.outcome == "error"
    ]

    return _response(200, {
        "success": True,
        "message": f"Processed {len(candidates)} tasks",
        "summary": {
            "tasksProcessed": len(candidates),
            "milestonesCreated": created,
            "tasksLinked": created + duplicates,
            "duplicatesSkipped": duplicates,
            "skipped": skipped,
            "errors": len(errors),
        },
        "errors": errors,
        "results": [o.to_dict() for o in outcomes],
    })


# ---------------------------------------------------------------------------
# sync_week_references
# ---------------------------------------------------------------------------


def _handle_sync_week_references(
    client: NotionClient, body: Dict[str, Any], mappings: WeekMappings
) -> Dict[str, Any]:
    milestones_db_id = _first_present(body, "milestonesDbId", "milestones_db_id") or MILESTONES_DB_ID

    logger.info("Querying milestones %s for scorecard sync...", milestones_db_id)
    milestones = client.query_all(milestones_db_id)

    synced = 0
    skipped = 0
    errors: List[Dict[str, Any]] = []
    for page in milestones:
        label = title_text(page) or UNTITLED
        try:
            milestone = MilestoneRecord.from_page(page)
            expected = mappings.scorecard_week(milestone.week_reference_id)
            if not expected or same_page_id(expected, milestone.scorecard_week_id):
                skipped += 1
                continue

            client.update_page(milestone.id, {SCORECARD_WEEK_PROP: relation_value(expected)})
            synced += 1
            logger.info('Synced scorecard week for "%s" -> %s', label, expected)
            time.sleep(SYNC_DELAY_SECONDS)
        except Exception as exc:
            logger.error('Error syncing milestone "%s": %s', label, exc)
            errors.append({
                "milestone": label,
                "milestoneId": page.get("id") if isinstance(page, dict) else None,
                "error": str(exc),
            })

    return _response(200, {
        "success": True,
        "message": f"Checked {len(milestones)} milestones",
        "summary": {
            "milestonesChecked": len(milestones),
            "synced": synced,
            "skipped": skipped,
            "errors": len(errors),
        },
        "errors": errors,
    })


# ---------------------------------------------------------------------------
# Handler
# ---------------------------------------------------------------------------


def lambda_handler(event: Dict, context: Any) -> Dict:
    gated = _gate_method(event, ("POST",))
    if gated:
        return gated

    try:
        body = _json_body(event)
    except ValueError:
        return _error(400, "Invalid JSON body.")

    token = body.get("token")
    if not token:
        return _error(400, "Notion token is required")

    action = body.get("action") or ACTION_CONVERT_TASKS
    if action not in ACTIONS:
        return _error(400, f"Unknown action: {action!r}", allowed_actions=list(ACTIONS))

    try:
        mappings = load_week_mappings()
        client = NotionClient(token)
        if action == ACTION_SYNC_WEEK_REFERENCES:
            return _handle_sync_week_references(client, body, mappings)
        return _handle_convert_tasks(client, body, mappings)
    except NotionAPIError as exc:
        return _notion_error(exc)
    except MappingError as exc:
        logger.error("Week mappings unavailable: %s", exc)
        return _error(500, "Automation failed", message=str(exc))
    except Exception as exc:
        logger.exception("Automation error")
        return _error(500, "Automation failed", message=str(exc), code=getattr(exc, "code", None))
