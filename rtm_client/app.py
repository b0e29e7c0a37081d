"""Main Textual app class.

This module provides the Remember The Milk TUI application. The app owns
the interaction loop and runs it as a worker; the screen only forwards key
presses to it and draws what it publishes.
"""

from __future__ import annotations

import logging

from textual.app import App
from textual.binding import Binding

from rtm_client.client import RtmClient
from rtm_client.events import Quit
from rtm_client.interaction import InteractionLoop, RenderModel
from rtm_client.models import DEFAULT_FILTER
from rtm_client.screens import TasksScreen
from rtm_client.undo import UndoStack

logger = logging.getLogger(__name__)


class RtmApp(App):
    """Remember The Milk TUI application."""

    TITLE = "Remember The Milk"

    BINDINGS = [
        Binding("q", "request_quit", "Quit"),
        Binding("ctrl+c", "request_quit", "Quit", show=False),
    ]

    def __init__(
        self,
        client: RtmClient,
        *,
        filter: str = DEFAULT_FILTER,
        undo_capacity: int = 20,
        auto_start: bool = True,
    ) -> None:
        """Initialize the application.

        Args:
            client: Authenticated (or not yet authenticated) API client.
            filter: Initial task filter.
            undo_capacity: Number of completions that can be undone.
            auto_start: Queue the initial refresh on mount.
        """
        super().__init__()
        self.client = client
        self.interaction = InteractionLoop(
            client,
            undo=UndoStack(undo_capacity),
            filter=filter,
            on_render=self._on_render,
        )
        self.auto_start = auto_start
        self.tasks_screen = TasksScreen()
        self._last_render: RenderModel | None = None

    @property
    def last_render(self) -> RenderModel | None:
        return self._last_render

    def on_mount(self) -> None:
        """Show the task screen and start the interaction loop."""
        self.push_screen(self.tasks_screen)
        self.run_worker(self.interaction.run(), name="interaction", exclusive=True)
        if self.auto_start:
            self.interaction.start()
        else:
            self.interaction.publish()

    def _on_render(self, model: RenderModel) -> None:
        self._last_render = model
        if self.tasks_screen.is_mounted:
            self.tasks_screen.apply(model)

    async def action_request_quit(self) -> None:
        """Stop the loop, abandon in-flight calls and exit."""
        self.interaction.post(Quit())
        await self.interaction.shutdown()
        await self.client.aclose()
        self.exit()
