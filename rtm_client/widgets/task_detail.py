"""Detail panel for the selected task."""

from __future__ import annotations

from typing import Any

from rich.text import Text
from textual.widgets import Static

from rtm_client.models import Task
from rtm_client.status_display import (
    DETAIL_HEADING_STYLE,
    REPEAT_STYLE,
    TAG_STYLE,
    format_due,
)


class TaskDetailWidget(Static):
    """Shows name, tags, recurrence, dates, links and notes of one task."""

    DEFAULT_CSS = """
    TaskDetailWidget {
        height: auto;
        max-height: 12;
        padding: 0 1;
        border-top: solid $primary;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._shown: Task | None = None

    @property
    def shown_task(self) -> Task | None:
        return self._shown

    def show_task(self, task: Task | None) -> None:
        self._shown = task
        self.update(self._render_task())

    def _render_task(self) -> Text:
        task = self._shown
        if task is None:
            return Text("Select a task to see its details", style="dim italic")

        lines = [Text(task.name, style="bold")]

        if task.tags:
            line = Text("Tags: ")
            for tag in task.tags:
                line.append(tag, style=TAG_STYLE)
                line.append(" ")
            lines.append(line)

        if task.repeat is not None:
            line = Text("Repeat: ")
            line.append("every " if task.repeat.every else "after ")
            line.append(task.repeat.rule, style=REPEAT_STYLE)
            lines.append(line)

        if task.due is not None:
            lines.append(_field("Due: ", format_due(task), "bold yellow"))
        if task.completed is not None:
            lines.append(_field("Completed: ", f"{task.completed:%c}", "bold magenta"))
        if task.deleted is not None:
            lines.append(_field("Deleted: ", f"{task.deleted:%c}", "bold red"))
        if task.url:
            lines.append(_field("URL: ", task.url, "bold yellow"))
        if task.source:
            lines.append(_field("Source: ", task.source, "bold yellow"))

        if task.notes:
            lines.append(Text("Notes:", style=DETAIL_HEADING_STYLE))
            for note in task.notes:
                if note.title:
                    lines.append(_field("  ", note.title, "bold"))
                lines.append(Text(f"  {note.text}"))

        return Text("\n").join(lines)


def _field(heading: str, value: str, style: str) -> Text:
    text = Text(heading)
    text.append(value, style=style)
    return text
