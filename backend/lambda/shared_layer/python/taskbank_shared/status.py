"""taskbank_shared.status — Computed status and deadline-type rules."""

from __future__ import annotations

from typing import Any, Dict, Optional

from taskbank_shared.schema import (
    COMPLETED_PROP,
    STATUS_PROP,
    TASK_MILESTONE_PROPS,
    MilestoneRecord,
    TaskRecord,
    checkbox,
    relation_ids,
    select_name,
)

STATUS_PLANNED = "📅 Planned"
STATUS_TASK_IN_PROGRESS = "🔄 In Progress"
STATUS_IN_PROGRESS = "🚀 In Progress"
STATUS_COMPLETED = "✅ Completed"
STATUS_DRAFT = "📝 Draft"

DEADLINE_CRITICAL = "Critical (Fixed)"
DEADLINE_TARGET = "Target"
DEADLINE_FLEXIBLE = "Flexible"

_DEADLINE_BY_PRIORITY = {
    "high": DEADLINE_CRITICAL,
    "p1": DEADLINE_CRITICAL,
    "medium": DEADLINE_TARGET,
    "p2": DEADLINE_TARGET,
    "low": DEADLINE_FLEXIBLE,
    "p3": DEADLINE_FLEXIBLE,
}


def compute_status(task: TaskRecord, milestone: Optional[MilestoneRecord] = None) -> str:
    """Status of a task given its resolved milestone (None when unresolved).

    A completed milestone wins over anything on the task itself.
    """
    if milestone is not None and milestone.completed:
        return STATUS_COMPLETED
    if task.milestone_ids:
        return STATUS_IN_PROGRESS
    return task.status or STATUS_DRAFT


def page_status(page: Dict[str, Any]) -> str:
    """Status derived from a page's own properties only.

    Used where no milestone lookup is available: a page carrying its own
    Completed checkbox (a milestone) reports completion directly.
    """
    if checkbox(page, COMPLETED_PROP):
        return STATUS_COMPLETED
    if relation_ids(page, TASK_MILESTONE_PROPS):
        return STATUS_IN_PROGRESS
    return select_name(page, STATUS_PROP) or STATUS_DRAFT


def deadline_type_for(priority: Optional[str]) -> str:
    if not priority:
        return DEADLINE_TARGET
    return _DEADLINE_BY_PRIORITY.get(priority.strip().lower(), DEADLINE_TARGET)
