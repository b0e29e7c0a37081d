"""Core dataclasses for credentials, lists, tasks, config, and related entities.

Config and credential models are designed for JSON serialization using dacite.
Task and list models are built from service responses by ``rtm_client.parsing``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

import dacite


# =============================================================================
# Authentication Models
# =============================================================================


class Perms(Enum):
    """Permission level requested from (and granted by) the service."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"

    @property
    def level(self) -> int:
        return _PERMS_ORDER.index(self)

    def allows(self, required: Perms) -> bool:
        """Return True if this permission level covers ``required``."""
        return self.level >= required.level


_PERMS_ORDER = [Perms.READ, Perms.WRITE, Perms.DELETE]


@dataclass(frozen=True)
class User:
    """A Remember The Milk user."""

    id: str
    username: str
    fullname: str = ""


@dataclass(frozen=True)
class Credential:
    """An authenticated user token.

    Opaque to everything except the client. Replaced wholesale on
    re-authentication, never mutated.
    """

    token: str
    perms: Perms
    user: User


# =============================================================================
# List and Task Models
# =============================================================================


@dataclass
class TaskList:
    """Metadata for a list of tasks. Tasks themselves live in the TaskTree."""

    id: str
    name: str
    smart: bool = False
    archived: bool = False
    deleted: bool = False
    locked: bool = False
    position: int = 0
    filter: str = ""


class Priority(Enum):
    """Task priority as reported by the service."""

    HIGH = "1"
    MEDIUM = "2"
    LOW = "3"
    NONE = "N"


@dataclass(frozen=True)
class TaskRef:
    """Identifies a task: list, task series, and task instance ids."""

    list_id: str
    taskseries_id: str
    task_id: str


@dataclass
class RRule:
    """Recurrence rule of a repeating task."""

    every: bool
    rule: str


@dataclass
class Note:
    """A note attached to a task series."""

    id: str
    text: str
    title: str = ""
    created: datetime | None = None
    modified: datetime | None = None


class TimeLeftKind(Enum):
    """Classification of a task's due state."""

    REMAINING = "remaining"
    OVERDUE = "overdue"
    COMPLETED = "completed"
    NO_DUE = "no_due"


@dataclass(frozen=True)
class TimeLeft:
    """Time until (or since) a task's due date."""

    kind: TimeLeftKind
    seconds: int = 0


@dataclass
class Task:
    """A single task instance.

    In Remember The Milk a task series holds the name, tags and notes, and
    each (possibly recurring) occurrence is a task with its own due date and
    completion state. One Task here is one occurrence, flattened with its
    series data.
    """

    list_id: str
    taskseries_id: str
    id: str
    name: str

    # Instance state
    due: datetime | None = None
    has_due_time: bool = False
    added: datetime | None = None
    completed: datetime | None = None
    deleted: datetime | None = None
    priority: Priority = Priority.NONE

    # Series data
    created: datetime | None = None
    modified: datetime | None = None
    tags: list[str] = field(default_factory=list)
    notes: list[Note] = field(default_factory=list)
    url: str = ""
    source: str = ""
    parent_task_id: str | None = None
    repeat: RRule | None = None

    @property
    def ref(self) -> TaskRef:
        return TaskRef(self.list_id, self.taskseries_id, self.id)

    @property
    def is_complete(self) -> bool:
        return self.completed is not None

    def time_left(self, now: datetime | None = None) -> TimeLeft:
        """Classify the task relative to ``now`` (UTC).

        A due date without a time counts until the end of that day.
        """
        if self.completed is not None:
            return TimeLeft(TimeLeftKind.COMPLETED)
        if self.due is None:
            return TimeLeft(TimeLeftKind.NO_DUE)
        now = now or datetime.now(timezone.utc)
        deadline = self.due if self.has_due_time else self.due + timedelta(days=1)
        delta = int((deadline - now).total_seconds())
        if delta >= 0:
            return TimeLeft(TimeLeftKind.REMAINING, delta)
        return TimeLeft(TimeLeftKind.OVERDUE, -delta)


@dataclass(frozen=True)
class Transaction:
    """A server-side transaction, undoable within its timeline."""

    id: str
    undoable: bool = False


@dataclass
class TaskChange:
    """Result of a write call: the authoritative task and its transaction."""

    task: Task | None
    transaction: Transaction | None = None
    timeline: str | None = None


# =============================================================================
# Configuration Models
# =============================================================================


DEFAULT_FILTER = "status:incomplete AND (dueBefore:today OR due:today)"


@dataclass
class AuthConfig:
    """Application key/secret and the saved user credential.

    Contains app and user secrets; stored separately from settings.
    """

    api_key: str | None = None
    api_secret: str | None = None
    credential: Credential | None = None

    @property
    def has_app_keys(self) -> bool:
        return bool(self.api_key and self.api_secret)

    def clear_user_data(self) -> None:
        """Forget the saved user credential, keeping the app keys."""
        self.credential = None


@dataclass
class AppSettings:
    """User-editable application settings."""

    default_filter: str = DEFAULT_FILTER
    undo_capacity: int = 20
    request_timeout_seconds: float = 10.0
    max_retries: int = 2
    retry_backoff_seconds: float = 0.5
    perms: Perms = Perms.WRITE


# =============================================================================
# Serialization Helpers
# =============================================================================


def _convert_enums(obj: object) -> object:
    """Recursively convert Enum values to their string values."""
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _convert_enums(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_convert_enums(item) for item in obj]
    return obj


def model_to_dict(obj: object) -> dict:
    """Convert a dataclass model to a dictionary for JSON serialization."""
    data = asdict(obj)  # type: ignore[arg-type]
    return _convert_enums(data)  # type: ignore[return-value]


def model_from_dict(data_class: type, data: dict) -> object:
    """Load a dataclass model from a dictionary."""
    return dacite.from_dict(
        data_class=data_class,
        data=data,
        config=dacite.Config(cast=[Enum, float]),
    )
