"""Task tree widget.

Draws the rows produced by ``TaskTree.nodes()``: lists with their task
counts, and the tasks of expanded lists with completion state, priority and
time left.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from rich.text import Text
from textual.widgets import Static

from rtm_client.status_display import (
    LIST_COLLAPSED_ICON,
    LIST_EXPANDED_ICON,
    TASK_COMPLETE_ICON,
    TASK_INCOMPLETE_ICON,
    TASK_PENDING_ICON,
    format_time_left,
    get_priority_color,
)
from rtm_client.tree import NodeKind, TreeNode


class TaskTreeWidget(Static):
    """Displays lists and tasks with the selected row highlighted.

    Example display:
        ▼ Inbox [2]
            ○ Buy milk                    5 hours
            ⧖ Call Bob              2 days ago
        ▶ Work [7]
        ▶ Someday
    """

    DEFAULT_CSS = """
    TaskTreeWidget {
        height: auto;
        min-height: 3;
        padding: 0 1;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rows: list[TreeNode] = []
        self._selected_row = 0

    @property
    def rows(self) -> list[TreeNode]:
        return self._rows

    @property
    def selected_row(self) -> int:
        return self._selected_row

    def show_nodes(self, nodes: list[TreeNode], selected: int) -> None:
        """Replace the displayed rows."""
        self._rows = nodes
        self._selected_row = selected
        self.update(self._render_tree())

    def _render_list(self, node: TreeNode) -> Text:
        icon = LIST_EXPANDED_ICON if node.expanded else LIST_COLLAPSED_ICON
        text = Text()
        text.append(f"{icon} ", style="bold")
        if node.task_count is None:
            text.append(node.label)
        elif node.task_count:
            text.append(node.label, style="bold yellow")
            text.append(f" [{node.task_count}]", style="dim")
        else:
            text.append(node.label, style="dim")
        return text

    def _render_task(self, node: TreeNode, now: datetime) -> Text:
        task = node.task
        indent = "  " * node.depth
        if node.pending:
            icon, icon_style = TASK_PENDING_ICON, "yellow"
        elif node.completed:
            icon, icon_style = TASK_COMPLETE_ICON, "green"
        else:
            icon, icon_style = TASK_INCOMPLETE_ICON, "white"

        text = Text(indent)
        text.append(f"{icon} ", style=icon_style)
        name_style = "dim strike" if node.completed else ""
        if task is not None and not node.completed:
            name_style = get_priority_color(task.priority)
        text.append(node.label, style=name_style)

        if task is not None:
            time_left = format_time_left(task.time_left(now))
            if time_left.plain:
                text.append("  ")
                text.append_text(time_left)
        return text

    def _render_row(self, node: TreeNode, now: datetime) -> Text:
        if node.kind == NodeKind.LIST:
            return self._render_list(node)
        if node.kind == NodeKind.TASK:
            return self._render_task(node, now)
        return Text("  " * node.depth + node.label, style="dim italic")

    def _render_tree(self) -> Text:
        if not self._rows:
            return Text("No lists", style="dim italic")

        now = datetime.now(timezone.utc)
        result = Text()
        for i, node in enumerate(self._rows):
            if i > 0:
                result.append("\n")
            line = self._render_row(node, now)
            if i == self._selected_row:
                line.stylize("reverse")
            result.append_text(line)
        return result
