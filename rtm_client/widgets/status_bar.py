"""One-line status bar: filter, undo depth, activity and the latest notice."""

from __future__ import annotations

from typing import Any

from rich.text import Text
from textual.widgets import Static

from rtm_client.interaction import Notice

NOTICE_STYLES = {
    "information": "default",
    "warning": "yellow",
    "error": "bold red",
}


class StatusBar(Static):
    """Summarizes loop state below the tree."""

    DEFAULT_CSS = """
    StatusBar {
        dock: bottom;
        height: 1;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._status = Text()

    @property
    def status(self) -> Text:
        return self._status

    def show_status(
        self,
        *,
        filter: str,
        undo_depth: int,
        busy: bool,
        notice: Notice | None = None,
    ) -> None:
        text = Text()
        if busy:
            text.append("⟳ ", style="yellow")
        text.append("filter: ", style="dim")
        text.append(filter or "(all tasks)")
        text.append(f"  undo: {undo_depth}", style="dim")
        if notice is not None:
            text.append("  ")
            text.append(notice.message, style=NOTICE_STYLES.get(notice.severity, "default"))
        self._status = text
        self.update(text)
