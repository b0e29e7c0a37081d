"""Decoding of Remember The Milk JSON payloads into models.

The service's JSON is a mechanical translation of its XML format, so:
- a collection with one element may arrive as an object instead of an array,
- empty collections arrive as ``[]`` or are omitted,
- flags are the strings ``"0"``/``"1"``,
- missing dates are empty strings,
- element text is stored under ``"$t"``.

The helpers here normalize all of that.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from .exceptions import ServiceError
from .models import (
    Credential,
    Note,
    Perms,
    Priority,
    RRule,
    Task,
    TaskChange,
    TaskList,
    Transaction,
    User,
)
from .transport import MALFORMED_RESPONSE

logger = logging.getLogger(__name__)


# =============================================================================
# Primitive helpers
# =============================================================================


def as_list(value: Any) -> list[Any]:
    """Normalize a one-or-many element into a list."""
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; empty values become None."""
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Ignoring unparseable timestamp %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_flag(value: Any) -> bool:
    """Parse a ``"0"``/``"1"`` flag."""
    if isinstance(value, bool):
        return value
    return str(value).strip() == "1"


def _require(payload: dict[str, Any], key: str, method: str) -> Any:
    if key not in payload:
        raise ServiceError(
            MALFORMED_RESPONSE,
            f"Response is missing '{key}'",
            method=method,
        )
    return payload[key]


# =============================================================================
# Auth payloads
# =============================================================================


def parse_user(data: dict[str, Any]) -> User:
    return User(
        id=str(data.get("id", "")),
        username=data.get("username", ""),
        fullname=data.get("fullname", ""),
    )


def parse_credential(rsp: dict[str, Any], method: str = "rtm.auth.getToken") -> Credential:
    """Build a Credential from an ``auth`` response."""
    auth = _require(rsp, "auth", method)
    try:
        perms = Perms(auth.get("perms", "read"))
    except ValueError:
        perms = Perms.READ
    return Credential(
        token=_require(auth, "token", method),
        perms=perms,
        user=parse_user(auth.get("user") or {}),
    )


# =============================================================================
# Lists
# =============================================================================


def parse_task_list(data: dict[str, Any]) -> TaskList:
    position = data.get("position", 0)
    try:
        position = int(position)
    except (TypeError, ValueError):
        position = 0
    filter_text = data.get("filter", "")
    if isinstance(filter_text, dict):
        filter_text = filter_text.get("$t", "")
    return TaskList(
        id=str(data["id"]),
        name=data.get("name", ""),
        smart=parse_flag(data.get("smart", "0")),
        archived=parse_flag(data.get("archived", "0")),
        deleted=parse_flag(data.get("deleted", "0")),
        locked=parse_flag(data.get("locked", "0")),
        position=position,
        filter=filter_text or "",
    )


def parse_lists(rsp: dict[str, Any]) -> list[TaskList]:
    """Decode an ``rtm.lists.getList`` response."""
    lists = _require(rsp, "lists", "rtm.lists.getList")
    return [parse_task_list(item) for item in as_list((lists or {}).get("list"))]


# =============================================================================
# Tasks
# =============================================================================


def parse_tags(value: Any) -> list[str]:
    if isinstance(value, dict):
        return [str(tag) for tag in as_list(value.get("tag"))]
    return []


def parse_notes(value: Any) -> list[Note]:
    if not isinstance(value, dict):
        return []
    return [
        Note(
            id=str(note.get("id", "")),
            text=note.get("$t", ""),
            title=note.get("title", ""),
            created=parse_datetime(note.get("created")),
            modified=parse_datetime(note.get("modified")),
        )
        for note in as_list(value.get("note"))
    ]


def parse_rrule(value: Any) -> RRule | None:
    if not isinstance(value, dict) or "$t" not in value:
        return None
    return RRule(every=parse_flag(value.get("every", "0")), rule=value["$t"])


def parse_priority(value: Any) -> Priority:
    try:
        return Priority(str(value))
    except ValueError:
        return Priority.NONE


def parse_taskseries(list_id: str, series: dict[str, Any]) -> list[Task]:
    """Flatten a task series into one Task per task instance."""
    parent = series.get("parent_task_id") or None
    tags = parse_tags(series.get("tags"))
    notes = parse_notes(series.get("notes"))
    repeat = parse_rrule(series.get("rrule"))
    tasks = []
    for instance in as_list(series.get("task")):
        tasks.append(
            Task(
                list_id=str(list_id),
                taskseries_id=str(series["id"]),
                id=str(instance["id"]),
                name=series.get("name", ""),
                due=parse_datetime(instance.get("due")),
                has_due_time=parse_flag(instance.get("has_due_time", "0")),
                added=parse_datetime(instance.get("added")),
                completed=parse_datetime(instance.get("completed")),
                deleted=parse_datetime(instance.get("deleted")),
                priority=parse_priority(instance.get("priority", "N")),
                created=parse_datetime(series.get("created")),
                modified=parse_datetime(series.get("modified")),
                tags=list(tags),
                notes=list(notes),
                url=series.get("url", "") or "",
                source=series.get("source", "") or "",
                parent_task_id=parent,
                repeat=repeat,
            )
        )
    return tasks


def parse_list_tasks(list_data: dict[str, Any]) -> list[Task]:
    """Decode the task series of one list element."""
    list_id = str(list_data["id"])
    tasks: list[Task] = []
    for series in as_list(list_data.get("taskseries")):
        tasks.extend(parse_taskseries(list_id, series))
    return tasks


def parse_tasks_by_list(rsp: dict[str, Any]) -> dict[str, list[Task]]:
    """Decode an ``rtm.tasks.getList`` response, grouped by list id.

    Lists with no matching tasks may be absent from the result.
    """
    tasks = _require(rsp, "tasks", "rtm.tasks.getList")
    result: dict[str, list[Task]] = {}
    for list_data in as_list((tasks or {}).get("list")):
        result.setdefault(str(list_data["id"]), []).extend(parse_list_tasks(list_data))
    return result


# =============================================================================
# Write results
# =============================================================================


def parse_transaction(rsp: dict[str, Any]) -> Transaction | None:
    data = rsp.get("transaction")
    if not isinstance(data, dict) or "id" not in data:
        return None
    return Transaction(id=str(data["id"]), undoable=parse_flag(data.get("undoable", "0")))


def parse_task_change(
    rsp: dict[str, Any],
    method: str,
    timeline: str | None = None,
    *,
    task_id: str | None = None,
) -> TaskChange:
    """Decode the response of a task write (add, complete, tag...).

    Completing a repeating task also returns the next occurrence, so when
    ``task_id`` is given the matching instance is picked.
    """
    list_data = _require(rsp, "list", method)
    tasks = parse_list_tasks(list_data)
    task = tasks[0] if tasks else None
    if task_id is not None:
        task = next((t for t in tasks if t.id == task_id), task)
    return TaskChange(
        task=task,
        transaction=parse_transaction(rsp),
        timeline=timeline,
    )
