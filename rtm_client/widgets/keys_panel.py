"""Keyboard shortcut panel, toggled with '?'."""

from __future__ import annotations

from typing import Any

from rich.text import Text
from textual.widgets import Static

SHORTCUTS = {
    "Navigation": [
        ("j/k or ↑/↓", "Move selection"),
        ("h/l or ←/→", "Collapse/expand list"),
        ("space", "Toggle list"),
        ("g/G", "First/last row"),
        ("enter", "Show task details"),
    ],
    "Tasks": [
        ("c", "Mark task complete"),
        ("u", "Undo last completion"),
        ("A", "Add task to selected list"),
        ("f", "Change filter"),
        ("r", "Refresh"),
    ],
    "Application": [
        ("a", "Authorize with Remember The Milk"),
        ("?", "Show/hide keys"),
        ("q", "Quit"),
    ],
}


class KeysPanel(Static):
    """Lists the keyboard shortcuts by section."""

    DEFAULT_CSS = """
    KeysPanel {
        height: auto;
        padding: 0 1;
        border-top: solid $primary;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(self._render_shortcuts(), **kwargs)

    @staticmethod
    def _render_shortcuts() -> Text:
        lines: list[Text] = []
        for section_name, shortcuts in SHORTCUTS.items():
            lines.append(Text(section_name, style="bold"))
            for key, description in shortcuts:
                line = Text("  ")
                line.append(f"{key:<12}", style="bold cyan")
                line.append(description)
                lines.append(line)
        return Text("\n").join(lines)
