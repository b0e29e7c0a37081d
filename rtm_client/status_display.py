"""Shared display constants and formatting helpers.

This module centralizes the icons and colors used to display:
- Task completion state (incomplete, pending, complete)
- Task priority
- Time left until a task is due

Used by both the TUI widgets and the plain CLI output.
"""

from __future__ import annotations

from rich.cells import cell_len
from rich.text import Text

from rtm_client.models import Priority, Task, TimeLeft, TimeLeftKind

# Task state display
TASK_INCOMPLETE_ICON = "○"
TASK_COMPLETE_ICON = "✓"
TASK_PENDING_ICON = "⧖"

LIST_EXPANDED_ICON = "▼"
LIST_COLLAPSED_ICON = "▶"

PRIORITY_COLORS: dict[Priority, str] = {
    Priority.HIGH: "bold red",
    Priority.MEDIUM: "bold blue",
    Priority.LOW: "cyan",
    Priority.NONE: "default",
}

# Remaining time under this many seconds is shown as urgent
URGENT_SECONDS = 60 * 60

DETAIL_HEADING_STYLE = "bold"
TAG_STYLE = "bold green"
REPEAT_STYLE = "bold blue"

ELLIPSIS = "…"

_DAY = 24 * 60 * 60
_HOUR = 60 * 60
_MINUTE = 60


def get_priority_color(priority: Priority) -> str:
    return PRIORITY_COLORS.get(priority, "default")


def format_human_time(secs: int) -> str:
    """Format a duration using its largest whole unit.

    Examples:
        >>> format_human_time(3 * 24 * 60 * 60 + 5)
        '3 days'
        >>> format_human_time(90)
        '1 minute'
    """
    if secs > _DAY:
        value, unit = secs // _DAY, "day"
    elif secs > _HOUR:
        value, unit = secs // _HOUR, "hour"
    elif secs > _MINUTE:
        value, unit = secs // _MINUTE, "minute"
    else:
        value, unit = secs, "sec"
    return f"{value} {unit}{'s' if value > 1 else ''}"


def format_time_left(time_left: TimeLeft) -> Text:
    """Render a TimeLeft as styled text ("3 days", "2 hours ago")."""
    if time_left.kind == TimeLeftKind.REMAINING:
        style = "red" if time_left.seconds < URGENT_SECONDS else "yellow"
        return Text(format_human_time(time_left.seconds), style=style)
    if time_left.kind == TimeLeftKind.OVERDUE:
        return Text(f"{format_human_time(time_left.seconds)} ago", style="on red")
    if time_left.kind == TimeLeftKind.COMPLETED:
        return Text("done", style="green")
    return Text("")


def format_due(task: Task) -> str:
    """Due date for display; the time is omitted for date-only tasks."""
    if task.due is None:
        return ""
    if task.has_due_time:
        return task.due.astimezone().strftime("%a %d %b %Y %H:%M")
    return task.due.date().isoformat()


def tail_end(text: str, width: int) -> str:
    """Fit ``text`` into ``width`` terminal cells, dropping characters from
    the start and marking the cut with an ellipsis.

    Used for input prompts, where the end of the text (the cursor) must stay
    visible.
    """
    if cell_len(text) <= width:
        return text
    if width <= cell_len(ELLIPSIS):
        return ELLIPSIS[:width] if width > 0 else ""

    space_needed = cell_len(text) - (width - cell_len(ELLIPSIS))
    removed = 0
    start = 0
    for index, char in enumerate(text):
        removed += cell_len(char)
        start = index + 1
        if removed >= space_needed:
            break
    return ELLIPSIS + text[start:]
