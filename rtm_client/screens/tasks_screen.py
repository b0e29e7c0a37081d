"""Main screen: the task tree with its detail, keys and status panels.

The screen holds no task state of its own. Key presses are posted to the
interaction loop as actions, and every render model the loop publishes is
drawn with ``apply()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical, VerticalScroll
from textual.screen import Screen
from textual.widgets import Footer, Header

from rtm_client.auth import AuthState
from rtm_client.events import (
    Action,
    AddTask,
    CancelAuth,
    Collapse,
    CompleteSelected,
    ConfirmAuth,
    Expand,
    MoveSelection,
    Refresh,
    SelectFirst,
    SelectLast,
    SetFilter,
    StartAuth,
    ToggleDetails,
    ToggleExpand,
    ToggleHelp,
    Undo,
)
from rtm_client.interaction import RenderModel
from rtm_client.screens.modals import AuthorizeModal, TextPromptModal
from rtm_client.widgets import KeysPanel, StatusBar, TaskDetailWidget, TaskTreeWidget

if TYPE_CHECKING:
    from rtm_client.app import RtmApp


class TasksScreen(Screen):
    """Lists and tasks as a navigable tree."""

    BINDINGS = [
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("down", "cursor_down", "Down", show=False),
        Binding("up", "cursor_up", "Up", show=False),
        Binding("h", "collapse", "Collapse", show=False),
        Binding("l", "expand", "Expand", show=False),
        Binding("left", "collapse", "Collapse", show=False),
        Binding("right", "expand", "Expand", show=False),
        Binding("space", "toggle_list", "Toggle", show=False),
        Binding("g", "first", "First", show=False),
        Binding("G", "last", "Last", show=False),
        Binding("enter", "toggle_details", "Details"),
        Binding("c", "complete", "Complete"),
        Binding("u", "undo", "Undo"),
        Binding("A", "add_task", "Add"),
        Binding("f", "filter", "Filter"),
        Binding("r", "refresh", "Refresh"),
        Binding("a", "authorize", "Authorize"),
        Binding("?", "toggle_keys", "Keys"),
    ]

    DEFAULT_CSS = """
    TasksScreen {
        layout: vertical;
    }

    TasksScreen #main {
        height: 1fr;
    }

    TasksScreen #tree-scroll {
        height: 1fr;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._last_notice_id = 0
        self._auth_modal_open = False
        self._last_model: RenderModel | None = None

    @property
    def last_model(self) -> RenderModel | None:
        return self._last_model

    def compose(self) -> ComposeResult:
        """Compose the screen layout."""
        yield Header()
        yield Vertical(
            VerticalScroll(TaskTreeWidget(id="task-tree"), id="tree-scroll"),
            TaskDetailWidget(id="task-detail"),
            KeysPanel(id="keys-panel"),
            id="main",
        )
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.query_one("#task-detail", TaskDetailWidget).display = False
        self.query_one("#keys-panel", KeysPanel).display = False
        app: RtmApp = self.app  # type: ignore[assignment]
        model = app.last_render
        if model is not None:
            self.apply(model)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def apply(self, model: RenderModel) -> None:
        """Draw a render model published by the interaction loop."""
        self._last_model = model
        self.title = model.title

        tree = self.query_one("#task-tree", TaskTreeWidget)
        tree.show_nodes(model.nodes, model.selected)
        self._scroll_to_selection(model.selected)

        detail = self.query_one("#task-detail", TaskDetailWidget)
        detail.display = model.show_details
        if model.show_details:
            detail.show_task(model.detail_task)

        self.query_one("#keys-panel", KeysPanel).display = model.show_help

        for notice in model.notices:
            if notice.id > self._last_notice_id:
                self.notify(notice.message, severity=notice.severity)  # type: ignore[arg-type]
                self._last_notice_id = notice.id

        self.query_one("#status-bar", StatusBar).show_status(
            filter=model.filter,
            undo_depth=model.undo_depth,
            busy=model.busy,
            notice=model.notices[-1] if model.notices else None,
        )

        if (
            model.auth_url
            and model.auth_state == AuthState.AWAITING_USER_AUTHORIZATION
            and not self._auth_modal_open
        ):
            self._auth_modal_open = True
            self.app.push_screen(AuthorizeModal(model.auth_url), self._on_authorize_dismiss)

    def _scroll_to_selection(self, selected: int) -> None:
        scroll = self.query_one("#tree-scroll", VerticalScroll)
        height = scroll.size.height
        if height <= 0:
            return
        if selected < scroll.scroll_y:
            scroll.scroll_to(y=selected, animate=False)
        elif selected >= scroll.scroll_y + height:
            scroll.scroll_to(y=selected - height + 1, animate=False)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _post(self, action: Action) -> None:
        app: RtmApp = self.app  # type: ignore[assignment]
        app.interaction.post(action)

    def action_cursor_down(self) -> None:
        self._post(MoveSelection(1))

    def action_cursor_up(self) -> None:
        self._post(MoveSelection(-1))

    def action_collapse(self) -> None:
        self._post(Collapse())

    def action_expand(self) -> None:
        self._post(Expand())

    def action_toggle_list(self) -> None:
        self._post(ToggleExpand())

    def action_first(self) -> None:
        self._post(SelectFirst())

    def action_last(self) -> None:
        self._post(SelectLast())

    def action_toggle_details(self) -> None:
        self._post(ToggleDetails())

    def action_toggle_keys(self) -> None:
        self._post(ToggleHelp())

    def action_complete(self) -> None:
        self._post(CompleteSelected())

    def action_undo(self) -> None:
        self._post(Undo())

    def action_refresh(self) -> None:
        self._post(Refresh())

    def action_authorize(self) -> None:
        self._post(StartAuth())

    def action_add_task(self) -> None:
        self.app.push_screen(
            TextPromptModal(
                "Add task",
                placeholder="Buy milk tomorrow !1 #shopping",
                confirm_label="Add",
            ),
            self._on_add_task_dismiss,
        )

    def action_filter(self) -> None:
        current = self._last_model.filter if self._last_model else ""
        self.app.push_screen(
            TextPromptModal(
                "Filter tasks",
                value=current,
                placeholder="status:incomplete",
                confirm_label="Apply",
                allow_empty=True,
            ),
            self._on_filter_dismiss,
        )

    def _on_add_task_dismiss(self, text: str | None) -> None:
        if text:
            self._post(AddTask(text))

    def _on_filter_dismiss(self, text: str | None) -> None:
        if text is not None:
            self._post(SetFilter(text))

    def _on_authorize_dismiss(self, confirmed: bool | None) -> None:
        self._auth_modal_open = False
        self._post(ConfirmAuth() if confirmed else CancelAuth())
