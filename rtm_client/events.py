"""Events consumed by the interaction loop.

Two families share one queue:

- user actions, posted by the terminal front-end (or tests),
- ``CallCompleted``, posted by background API calls when they finish.

All of them are plain data. The loop's dispatch step is the only code that
acts on them.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Action:
    """Base class for user actions."""


# =============================================================================
# Navigation
# =============================================================================


@dataclass
class MoveSelection(Action):
    delta: int


@dataclass
class SelectFirst(Action):
    pass


@dataclass
class SelectLast(Action):
    pass


@dataclass
class Expand(Action):
    pass


@dataclass
class Collapse(Action):
    pass


@dataclass
class ToggleExpand(Action):
    pass


@dataclass
class ToggleHelp(Action):
    pass


@dataclass
class ToggleDetails(Action):
    pass


# =============================================================================
# Commands that reach the service
# =============================================================================


@dataclass
class Refresh(Action):
    """Re-fetch lists and tasks for the current filter."""


@dataclass
class CompleteSelected(Action):
    """Mark the selected task complete."""


@dataclass
class Undo(Action):
    """Reverse the most recent completion."""


@dataclass
class AddTask(Action):
    """Add a task to the selected list using Smart Add."""

    text: str


@dataclass
class SetFilter(Action):
    """Change the task filter and refresh."""

    text: str


@dataclass
class StartAuth(Action):
    """Begin (or restart) the authorization handshake."""


@dataclass
class ConfirmAuth(Action):
    """The user reports having authorized access in the browser."""


@dataclass
class CancelAuth(Action):
    pass


@dataclass
class Quit(Action):
    pass


# =============================================================================
# Call completions
# =============================================================================


class CallKind(Enum):
    """Background calls the loop can have in flight."""

    LISTS = "lists"
    TASKS = "tasks"
    COMPLETE = "complete"
    UNDO = "undo"
    ADD = "add"
    AUTH_START = "auth_start"
    AUTH_EXCHANGE = "auth_exchange"


@dataclass
class CallCompleted:
    """Outcome of a background call.

    Attributes:
        kind: Which operation finished.
        key: Target of the call (task key, list id, or a fixed name).
        seq: Sequence number the call was issued with. Results whose
            sequence number was superseded are stale.
        generation: Credential generation when the call started.
        result: Return value on success.
        error: Exception on failure.
        call: Factory that reissues the same call.
        retried: Whether this is already a retry.
        idempotent: Whether reissuing the call is safe.
        data: Extra state captured when the call was issued.
    """

    kind: CallKind
    key: str
    seq: int
    generation: int
    result: Any = None
    error: Exception | None = None
    call: Callable[[], Awaitable[Any]] | None = None
    retried: bool = False
    idempotent: bool = True
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None
