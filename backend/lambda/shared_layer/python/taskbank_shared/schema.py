"""taskbank_shared.schema — Page property readers and typed document records.

Notion pages expose typed properties (title, select, checkbox, relation,
date, rich_text) under ``page["properties"]``. The readers here never raise on
missing or malformed properties; they return None / empty values instead.
Property names that changed over time are resolved through candidate lists,
first match wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

UNTITLED = "Untitled Task"

TITLE_PROPS = ("Task", "Name")
STATUS_PROP = "Status"
FOCUS_AREA_PROP = "Focus Area"
PRIORITY_PROP = "Priority"
NOTES_PROP = "Notes"
WEEK_REFERENCE_PROP = "Week Reference"
SCORECARD_WEEK_PROP = "Scorecard Week"
COMPLETED_PROP = "Completed"
DUE_DATE_PROP = "Due Date"
WEEK_START_DATE_PROP = "Week Start Date"
WEEK_SELECT_PROP = "Week"
DEADLINE_TYPE_PROP = "Deadline Type"
# Automation writes "Milestone"; older task banks link through the long name.
TASK_MILESTONE_PROPS = ("Milestone", "Linked to Weekly Milestone")

Names = Union[str, Sequence[str]]


class SchemaError(ValueError):
    """A page cannot be mapped to a record."""


class MissingFieldError(SchemaError):
    def __init__(self, field_name: str, page_id: Optional[str] = None) -> None:
        where = f" on page {page_id}" if page_id else ""
        super().__init__(f"Missing required field '{field_name}'{where}")
        self.field_name = field_name
        self.page_id = page_id


def _props(page: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not isinstance(page, dict):
        return {}
    props = page.get("properties")
    return props if isinstance(props, dict) else {}


def _prop(page: Optional[Dict[str, Any]], names: Names) -> Optional[Dict[str, Any]]:
    props = _props(page)
    if isinstance(names, str):
        names = (names,)
    for name in names:
        value = props.get(name)
        if isinstance(value, dict):
            return value
    return None


def _plain_text(fragments: Any) -> Optional[str]:
    if not isinstance(fragments, list) or not fragments:
        return None
    parts = []
    for frag in fragments:
        if not isinstance(frag, dict):
            continue
        text = frag.get("plain_text")
        if text is None:
            text = (frag.get("text") or {}).get("content")
        if text:
            parts.append(text)
    return "".join(parts) or None


def title_text(page: Optional[Dict[str, Any]], names: Names = TITLE_PROPS) -> Optional[str]:
    prop = _prop(page, names)
    return _plain_text(prop.get("title")) if prop else None


def rich_text(page: Optional[Dict[str, Any]], names: Names) -> Optional[str]:
    prop = _prop(page, names)
    return _plain_text(prop.get("rich_text")) if prop else None


def select_name(page: Optional[Dict[str, Any]], names: Names) -> Optional[str]:
    prop = _prop(page, names)
    if not prop:
        return None
    select = prop.get("select") or prop.get("status")
    if not isinstance(select, dict):
        return None
    return select.get("name") or None


def checkbox(page: Optional[Dict[str, Any]], names: Names) -> bool:
    prop = _prop(page, names)
    return bool(prop) and prop.get("checkbox") is True


def relation_ids(page: Optional[Dict[str, Any]], names: Names) -> List[str]:
    """All related page ids, in order, from the first matching relation property."""
    props = _props(page)
    if isinstance(names, str):
        names = (names,)
    for name in names:
        prop = props.get(name)
        if not isinstance(prop, dict) or not isinstance(prop.get("relation"), list):
            continue
        ids = [
            rel["id"]
            for rel in prop["relation"]
            if isinstance(rel, dict) and rel.get("id")
        ]
        if ids:
            return ids
    return []


def first_relation_id(page: Optional[Dict[str, Any]], names: Names) -> Optional[str]:
    ids = relation_ids(page, names)
    return ids[0] if ids else None


def date_start(page: Optional[Dict[str, Any]], names: Names) -> Optional[str]:
    prop = _prop(page, names)
    if not prop or not isinstance(prop.get("date"), dict):
        return None
    return prop["date"].get("start") or None


def _page_id(page: Any) -> str:
    page_id = page.get("id") if isinstance(page, dict) else None
    if not page_id:
        raise MissingFieldError("id")
    return page_id


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class TaskRecord:
    id: str
    title: str = UNTITLED
    status: Optional[str] = None
    focus_area: Optional[str] = None
    priority: Optional[str] = None
    notes: Optional[str] = None
    week_reference_id: Optional[str] = None
    milestone_ids: List[str] = field(default_factory=list)

    @property
    def milestone_id(self) -> Optional[str]:
        return self.milestone_ids[0] if self.milestone_ids else None

    @classmethod
    def from_page(cls, page: Dict[str, Any]) -> "TaskRecord":
        return cls(
            id=_page_id(page),
            title=title_text(page) or UNTITLED,
            status=select_name(page, STATUS_PROP),
            focus_area=select_name(page, FOCUS_AREA_PROP),
            priority=select_name(page, PRIORITY_PROP),
            notes=rich_text(page, NOTES_PROP),
            week_reference_id=first_relation_id(page, WEEK_REFERENCE_PROP),
            milestone_ids=relation_ids(page, TASK_MILESTONE_PROPS),
        )


@dataclass
class MilestoneRecord:
    id: str
    title: str = UNTITLED
    focus_area: Optional[str] = None
    completed: bool = False
    due_date: Optional[str] = None
    week_reference_id: Optional[str] = None
    scorecard_week_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_page(cls, page: Dict[str, Any]) -> "MilestoneRecord":
        return cls(
            id=_page_id(page),
            title=title_text(page) or UNTITLED,
            focus_area=select_name(page, FOCUS_AREA_PROP),
            completed=checkbox(page, COMPLETED_PROP),
            due_date=date_start(page, DUE_DATE_PROP),
            week_reference_id=first_relation_id(page, WEEK_REFERENCE_PROP),
            scorecard_week_id=first_relation_id(page, SCORECARD_WEEK_PROP),
            notes=rich_text(page, NOTES_PROP),
        )


# ---------------------------------------------------------------------------
# Property writers
# ---------------------------------------------------------------------------


def title_value(text: str) -> Dict[str, Any]:
    return {"title": [{"text": {"content": text}}]}


def rich_text_value(text: str) -> Dict[str, Any]:
    return {"rich_text": [{"text": {"content": text}}]}


def select_value(name: str) -> Dict[str, Any]:
    return {"select": {"name": name}}


def relation_value(*page_ids: str) -> Dict[str, Any]:
    return {"relation": [{"id": pid} for pid in page_ids]}


def date_value(start: str) -> Dict[str, Any]:
    return {"date": {"start": start}}


def checkbox_value(checked: bool) -> Dict[str, Any]:
    return {"checkbox": bool(checked)}
