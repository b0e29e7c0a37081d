"""Authorization modal.

Shows the signed authorization URL and waits for the user to report that
they approved access in the browser. The handshake itself runs in the
interaction loop, which stays responsive while this modal is open.
"""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Static


class AuthorizeModal(ModalScreen[bool]):
    """Modal presenting the authorization URL.

    Returns True once the user confirms they authorized the application,
    False if they cancel.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("o", "open_browser", "Open browser"),
        Binding("enter", "confirm", "Done", show=False),
    ]

    DEFAULT_CSS = """
    AuthorizeModal {
        align: center middle;
    }

    AuthorizeModal #dialog {
        width: 80;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }

    AuthorizeModal #title {
        text-style: bold;
        padding-bottom: 1;
    }

    AuthorizeModal #auth-url {
        color: $accent;
        margin: 1 0;
    }

    AuthorizeModal #buttons {
        margin-top: 1;
        height: 3;
        align: center middle;
    }

    AuthorizeModal Button {
        margin: 0 1;
    }
    """

    def __init__(self, url: str) -> None:
        super().__init__()
        self.url = url

    def compose(self) -> ComposeResult:
        """Compose the modal layout."""
        yield Vertical(
            Static("Authorize Remember The Milk", id="title"),
            Static("Visit this URL, approve access, then press Done:"),
            Static(self.url, id="auth-url", markup=False),
            Horizontal(
                Button("Cancel", variant="default", id="cancel"),
                Button("Open browser", variant="default", id="open"),
                Button("Done", variant="primary", id="done"),
                id="buttons",
            ),
            id="dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(False)
        elif event.button.id == "open":
            self.action_open_browser()
        elif event.button.id == "done":
            self.dismiss(True)

    def action_open_browser(self) -> None:
        self.app.open_url(self.url)

    def action_confirm(self) -> None:
        self.dismiss(True)

    def action_cancel(self) -> None:
        self.dismiss(False)
