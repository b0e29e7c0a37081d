"""Single-line text prompt modal.

Used to enter a new task (with Smart Add syntax) and to change the filter.
"""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Static

from rtm_client.status_display import tail_end

CURRENT_VALUE_WIDTH = 44


class TextPromptModal(ModalScreen[str | None]):
    """Modal asking for one line of text.

    Returns the entered text if confirmed, or None if cancelled.
    """

    BINDINGS = [
        Binding("escape", "cancel", "Cancel"),
        Binding("ctrl+u", "clear", "Clear", show=False),
    ]

    DEFAULT_CSS = """
    TextPromptModal {
        align: center middle;
    }

    TextPromptModal #dialog {
        width: 50;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }

    TextPromptModal #title {
        text-style: bold;
        padding-bottom: 1;
    }

    TextPromptModal .field-label {
        margin-top: 1;
    }

    TextPromptModal Input {
        width: 100%;
        margin-bottom: 1;
    }

    TextPromptModal #buttons {
        margin-top: 1;
        height: 3;
        align: center middle;
    }

    TextPromptModal Button {
        margin: 0 1;
    }
    """

    def __init__(
        self,
        title: str,
        *,
        value: str = "",
        placeholder: str = "",
        confirm_label: str = "OK",
        allow_empty: bool = False,
    ) -> None:
        """Initialize the modal.

        Args:
            title: Dialog title, e.g. "Add task".
            value: Initial input value.
            placeholder: Hint shown in the empty input.
            confirm_label: Label of the confirm button.
            allow_empty: Whether an empty value may be submitted.
        """
        super().__init__()
        self._title = title
        self._value = value
        self._placeholder = placeholder
        self._confirm_label = confirm_label
        self._allow_empty = allow_empty

    def compose(self) -> ComposeResult:
        """Compose the modal layout."""
        widgets = [Static(self._title, id="title")]
        if self._value:
            widgets.append(Label("Current:", classes="field-label"))
            widgets.append(
                Static(
                    f"  {tail_end(self._value, CURRENT_VALUE_WIDTH)}",
                    id="current-value",
                    markup=False,
                )
            )
        yield Vertical(
            *widgets,
            Input(value=self._value, placeholder=self._placeholder, id="prompt-input"),
            Horizontal(
                Button("Cancel", variant="default", id="cancel"),
                Button(self._confirm_label, variant="primary", id="confirm"),
                id="buttons",
            ),
            id="dialog",
        )

    def on_mount(self) -> None:
        """Focus the input when mounted."""
        self.query_one("#prompt-input", Input).focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "cancel":
            self.dismiss(None)
        elif event.button.id == "confirm":
            self._submit()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "prompt-input":
            self._submit()

    def _submit(self) -> None:
        value = self.query_one("#prompt-input", Input).value.strip()
        if not value and not self._allow_empty:
            self.notify("Please enter a value", severity="warning")
            return
        self.dismiss(value)

    def action_clear(self) -> None:
        self.query_one("#prompt-input", Input).value = ""

    def action_cancel(self) -> None:
        """Cancel and dismiss."""
        self.dismiss(None)
