"""Single-consumer event loop tying the model to the service and the UI.

User actions and call completions arrive on one ``asyncio.Queue``. Each
event is handled by a synchronous dispatch step, which is the only place
the task tree, the undo stack and the render state change. API calls run
as background tasks that do I/O only and post a ``CallCompleted`` event
when they finish.

After every dispatch the loop builds a ``RenderModel`` and hands it to the
render callback.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .auth import AuthSession, AuthState
from .client import RtmClient
from .events import (
    Action,
    AddTask,
    CallCompleted,
    CallKind,
    CancelAuth,
    Collapse,
    CompleteSelected,
    ConfirmAuth,
    Expand,
    MoveSelection,
    Quit,
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
from .exceptions import (
    ModelInconsistencyError,
    NotAuthenticatedError,
    RtmClientError,
    ServiceError,
    TransportError,
    record_error,
)
from .logging_config import log_exception
from .models import DEFAULT_FILTER, Task, TaskChange, TaskRef
from .tree import TaskTree, TreeNode
from .undo import UndoEntry, UndoKind, UndoStack

logger = logging.getLogger(__name__)

MAX_NOTICES = 5
SHUTDOWN_TIMEOUT = 2.0


@dataclass
class Notice:
    """A message for the user. Severity matches Textual's notify levels."""

    message: str
    severity: str = "information"
    id: int = 0


@dataclass
class RenderModel:
    """Everything the front-end needs to draw one frame."""

    nodes: list[TreeNode]
    selected: int
    title: str
    notices: list[Notice] = field(default_factory=list)
    show_help: bool = False
    show_details: bool = False
    detail_task: Task | None = None
    auth_url: str | None = None
    auth_state: AuthState = AuthState.UNAUTHENTICATED
    busy: bool = False
    undo_depth: int = 0
    filter: str = ""
    authenticated: bool = False


class InteractionLoop:
    """Serializes user actions and call completions against the model.

    Example:
        loop = InteractionLoop(client, on_render=screen.apply)
        loop.post(Refresh())
        await loop.run()
    """

    def __init__(
        self,
        client: RtmClient,
        *,
        tree: TaskTree | None = None,
        undo: UndoStack | None = None,
        auth: AuthSession | None = None,
        filter: str = DEFAULT_FILTER,
        on_render: Callable[[RenderModel], None] | None = None,
    ) -> None:
        self.client = client
        self.tree = tree or TaskTree()
        self.undo = undo or UndoStack()
        self.auth = auth or client.auth
        self.filter = filter
        self.on_render = on_render

        self.queue: asyncio.Queue[Action | CallCompleted] = asyncio.Queue()
        self.show_help = False
        self.show_details = False
        self.auth_url: str | None = None

        self._running = False
        self._in_flight: set[asyncio.Task[None]] = set()
        self._notices: deque[Notice] = deque(maxlen=MAX_NOTICES)
        self._notice_id = 0
        self._refresh_seq = 0
        self._refresh_edit_seq = 0
        self._undo_seq = 0
        self._add_seq = 0
        self._auth_seq = 0
        self._loaded_once = False

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def post(self, event: Action | CallCompleted) -> None:
        """Queue an event for the dispatch step."""
        self.queue.put_nowait(event)

    def start(self) -> None:
        """Queue the initial work: a refresh, or a prompt to authenticate."""
        if self.client.is_authenticated:
            self.post(Refresh())
        else:
            self.notify("Not signed in. Press 'a' to authorize this application.", "warning")
            self.publish()

    async def run(self) -> None:
        """Consume events until a Quit action is dispatched."""
        self._running = True
        logger.debug("Interaction loop started")
        try:
            while self._running:
                event = await self.queue.get()
                self.dispatch(event)
        finally:
            self._running = False
            logger.debug("Interaction loop stopped")

    async def run_until_idle(self) -> None:
        """Consume events until the queue is empty and no call is in flight."""
        while self._in_flight or not self.queue.empty():
            event = await self.queue.get()
            self.dispatch(event)
            if isinstance(event, Quit):
                return

    async def shutdown(self) -> None:
        """Stop the loop and abandon outstanding calls.

        Cancelled calls never post their completion, so the model is left
        as the last dispatch step left it.
        """
        self._running = False
        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks, timeout=SHUTDOWN_TIMEOUT)
        self._in_flight.clear()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, event: Action | CallCompleted) -> None:
        """Apply one event to the model and publish a new render model."""
        try:
            if isinstance(event, CallCompleted):
                self._on_call_completed(event)
            else:
                self._on_action(event)
        except RtmClientError as e:
            record_error(e)
            logger.warning("Event %s failed: %s", type(event).__name__, e)
            self.notify(e.message, "error")
        self.publish()

    def _on_action(self, action: Action) -> None:
        tree = self.tree
        if isinstance(action, MoveSelection):
            tree.move_selection(action.delta)
        elif isinstance(action, SelectFirst):
            tree.select_first()
        elif isinstance(action, SelectLast):
            tree.select_last()
        elif isinstance(action, Expand):
            tree.expand()
        elif isinstance(action, Collapse):
            tree.collapse()
        elif isinstance(action, ToggleExpand):
            tree.toggle_expanded()
        elif isinstance(action, ToggleHelp):
            self.show_help = not self.show_help
        elif isinstance(action, ToggleDetails):
            self.show_details = not self.show_details
        elif isinstance(action, Refresh):
            self._refresh()
        elif isinstance(action, CompleteSelected):
            self._complete_selected()
        elif isinstance(action, Undo):
            self._undo()
        elif isinstance(action, AddTask):
            self._add_task(action.text)
        elif isinstance(action, SetFilter):
            self.filter = action.text.strip()
            self._refresh()
        elif isinstance(action, StartAuth):
            self._start_auth()
        elif isinstance(action, ConfirmAuth):
            self._confirm_auth()
        elif isinstance(action, CancelAuth):
            self._auth_seq += 1
            self.auth.restart()
            self.auth_url = None
        elif isinstance(action, Quit):
            self._running = False
        else:
            logger.warning("Unhandled action %r", action)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _refresh(self) -> None:
        if not self._require_auth():
            return
        self._refresh_seq += 1
        self._refresh_edit_seq = self.tree.last_seq
        self.tree.loading = True
        self._spawn(CallKind.LISTS, "lists", self._refresh_seq, self.client.fetch_lists)

    def _complete_selected(self) -> None:
        node = self.tree.selected_node()
        if node is None or node.ref is None:
            self.notify("Select a task to complete", "warning")
            return
        if not self._require_auth():
            return
        ref = node.ref
        if self.tree.is_completed(ref):
            self.notify(f"'{node.label}' is already complete")
            return
        prior = self.tree.apply_local_complete(ref)
        seq = self.tree.edit_seq(ref)
        assert seq is not None
        self._spawn(
            CallKind.COMPLETE,
            _ref_key(ref),
            seq,
            lambda: self.client.complete_task(ref),
            data={"ref": ref, "prior": prior, "name": node.label},
        )

    def _undo(self) -> None:
        if not self._require_auth():
            return
        try:
            entry = self.undo.begin_undo(self.tree)
        except ModelInconsistencyError as e:
            self.notify(f"Cannot undo: {e.message}", "warning")
            return
        task = self.tree.find(entry.ref)
        self._undo_seq += 1
        self._spawn(
            CallKind.UNDO,
            _ref_key(entry.ref),
            self._undo_seq,
            lambda: self.undo.compensate(entry, self.client),
            idempotent=not entry.uses_transaction,
            data={"entry": entry, "name": task.name if task else ""},
        )

    def _add_task(self, text: str) -> None:
        text = text.strip()
        if not text:
            return
        if not self._require_auth():
            return
        list_id = self.tree.selected_list_id()
        self._add_seq += 1
        self._spawn(
            CallKind.ADD,
            list_id or "inbox",
            self._add_seq,
            lambda: self.client.add_task(list_id, text),
            idempotent=False,
            data={"text": text},
        )

    def _start_auth(self) -> None:
        if self.auth.state != AuthState.UNAUTHENTICATED:
            self.auth.restart()
        self.auth_url = None
        self._auth_seq += 1
        self._spawn(CallKind.AUTH_START, "auth", self._auth_seq, self.auth.start, idempotent=False)

    def _confirm_auth(self) -> None:
        if self.auth.state != AuthState.AWAITING_USER_AUTHORIZATION:
            self.notify("No authorization in progress. Press 'a' to start.", "warning")
            return
        self._auth_seq += 1
        self._spawn(
            CallKind.AUTH_EXCHANGE, "auth", self._auth_seq, self.auth.exchange_token,
            idempotent=False,
        )

    def _require_auth(self) -> bool:
        if self.client.is_authenticated:
            return True
        self.notify("Not signed in. Press 'a' to authorize this application.", "warning")
        return False

    # -------------------------------------------------------------------------
    # Completions
    # -------------------------------------------------------------------------

    def _on_call_completed(self, event: CallCompleted) -> None:
        if event.ok:
            handler = self._success_handlers[event.kind]
            handler(self, event)
            return

        error = event.error
        if isinstance(error, NotAuthenticatedError) and self._retry(event):
            return
        self._failure(event)

    def _retry(self, event: CallCompleted) -> bool:
        """Reissue a call that raced a credential change. At most once."""
        if event.retried or not event.idempotent or event.call is None:
            return False
        if event.generation == self.client.slot.generation:
            return False
        if self.client.slot.credential is None:
            return False
        logger.info("Retrying %s after credential change", event.kind.value)
        self._spawn(
            event.kind,
            event.key,
            event.seq,
            event.call,
            retried=True,
            data=event.data,
        )
        return True

    def _on_lists(self, event: CallCompleted) -> None:
        if event.seq != self._refresh_seq:
            return
        self.tree.set_lists(event.result)
        filter_text = self.filter
        self._spawn(
            CallKind.TASKS,
            "tasks",
            event.seq,
            lambda: self.client.fetch_tasks_filtered(filter_text),
        )

    def _on_tasks(self, event: CallCompleted) -> None:
        if event.seq != self._refresh_seq:
            logger.debug("Dropping superseded refresh %d", event.seq)
            return
        by_list: dict[str, list[Task]] = event.result
        first_load = not self._loaded_once
        invalidated: list[TaskRef] = []
        for task_list in self.tree.lists:
            tasks = by_list.get(task_list.id, [])
            invalidated.extend(self.tree.reconcile(task_list.id, tasks, self._refresh_edit_seq))
            if first_load and tasks:
                self.tree.expand(task_list.id)
        self.undo.invalidate(invalidated)
        self.tree.loading = False
        self._loaded_once = True

    def _on_complete(self, event: CallCompleted) -> None:
        change: TaskChange = event.result
        ref: TaskRef = event.data["ref"]
        if not self.tree.confirm(ref, event.seq, change.task):
            if self.tree.edit_seq(ref) is None:
                # A refresh dropped the edit; its view of the task is kept
                self.notify(
                    f"'{event.data['name']}' changed on the server while completing, "
                    "press 'r' to refresh",
                    "warning",
                )
            return
        self.undo.push(
            UndoEntry(
                kind=UndoKind.COMPLETE_TASK,
                ref=ref,
                prior_completed=event.data["prior"],
                transaction=change.transaction,
                timeline=change.timeline,
            )
        )
        self.notify(f"Completed '{event.data['name']}'")

    def _on_undo(self, event: CallCompleted) -> None:
        entry: UndoEntry = event.data["entry"]
        try:
            self.undo.finish_undo(self.tree, entry)
        except ModelInconsistencyError as e:
            self.notify(f"Undo applied on the server, but {e.message.lower()}", "warning")
            return
        self.notify(f"Restored '{event.data['name']}'")

    def _on_add(self, event: CallCompleted) -> None:
        change: TaskChange = event.result
        if change.task is None:
            self.notify("Task added, refreshing", "warning")
            self._refresh()
            return
        self.notify(f"Added '{change.task.name}'")
        if not self.tree.add_local_task(change.task):
            self._refresh()

    def _on_auth_start(self, event: CallCompleted) -> None:
        if event.seq != self._auth_seq:
            return
        self.auth_url = event.result

    def _on_auth_exchange(self, event: CallCompleted) -> None:
        if event.seq != self._auth_seq:
            return
        self.auth_url = None
        # Transactions belong to the previous credential's timeline
        self.undo.clear()
        credential = event.result
        self.notify(f"Signed in as {credential.user.username}")
        self._refresh()

    _success_handlers: dict[CallKind, Callable[[InteractionLoop, CallCompleted], None]] = {
        CallKind.LISTS: _on_lists,
        CallKind.TASKS: _on_tasks,
        CallKind.COMPLETE: _on_complete,
        CallKind.UNDO: _on_undo,
        CallKind.ADD: _on_add,
        CallKind.AUTH_START: _on_auth_start,
        CallKind.AUTH_EXCHANGE: _on_auth_exchange,
    }

    def _failure(self, event: CallCompleted) -> None:
        error = event.error
        assert error is not None
        kind = event.kind

        if kind is CallKind.COMPLETE:
            if not self.tree.rollback(event.data["ref"], event.seq):
                return
            what = f"Could not complete '{event.data['name']}'"
        elif kind in (CallKind.LISTS, CallKind.TASKS):
            if event.seq != self._refresh_seq:
                return
            self.tree.loading = False
            what = "Refresh failed"
        elif kind is CallKind.UNDO:
            what = f"Could not undo '{event.data['name']}'"
        elif kind is CallKind.ADD:
            what = f"Could not add '{event.data['text']}'"
        else:
            if event.seq != self._auth_seq:
                return
            self.auth_url = None
            what = "Authorization failed"

        self.notify(f"{what}: {describe_error(error)}", _severity(error))

    # -------------------------------------------------------------------------
    # Background calls
    # -------------------------------------------------------------------------

    def _spawn(
        self,
        kind: CallKind,
        key: str,
        seq: int,
        call: Callable[[], Awaitable[Any]],
        *,
        idempotent: bool = True,
        retried: bool = False,
        data: dict[str, Any] | None = None,
    ) -> None:
        generation = self.client.slot.generation

        async def runner() -> None:
            event = CallCompleted(
                kind=kind,
                key=key,
                seq=seq,
                generation=generation,
                call=call,
                retried=retried,
                idempotent=idempotent,
                data=data or {},
            )
            try:
                event.result = await call()
            except RtmClientError as e:
                event.error = e
            except Exception as e:
                log_exception(logger, e, f"Unexpected error in {kind.value} call")
                event.error = e
            # Leave the in-flight set before posting so idle checks see it settled
            self._in_flight.discard(asyncio.current_task())  # type: ignore[arg-type]
            self.post(event)

        task = asyncio.create_task(runner())
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def notify(self, message: str, severity: str = "information") -> None:
        self._notice_id += 1
        self._notices.append(Notice(message, severity, self._notice_id))
        log = logger.warning if severity == "error" else logger.info
        log("Notice: %s", message)

    def render(self) -> RenderModel:
        credential = self.client.slot.credential
        if credential is not None:
            title = f"Remember The Milk: {credential.user.username}"
        else:
            title = "Remember The Milk (not signed in)"
        return RenderModel(
            nodes=self.tree.nodes(),
            selected=self.tree.selected,
            title=title,
            notices=self.notices,
            show_help=self.show_help,
            show_details=self.show_details,
            detail_task=self.tree.selected_task() if self.show_details else None,
            auth_url=self.auth_url,
            auth_state=self.auth.state,
            busy=bool(self._in_flight),
            undo_depth=len(self.undo),
            filter=self.filter,
            authenticated=credential is not None,
        )

    def publish(self) -> None:
        if self.on_render is not None:
            self.on_render(self.render())


def describe_error(error: Exception) -> str:
    """Short user-facing description of a call failure."""
    if isinstance(error, TransportError):
        return f"network error ({error.message})"
    if isinstance(error, ServiceError):
        return error.message
    if isinstance(error, NotAuthenticatedError):
        return "not signed in, press 'a' to authorize"
    if isinstance(error, RtmClientError):
        return error.message
    return str(error) or type(error).__name__


def _severity(error: Exception) -> str:
    if isinstance(error, (TransportError, NotAuthenticatedError)):
        return "warning"
    return "error"


def _ref_key(ref: TaskRef) -> str:
    return f"{ref.list_id}/{ref.taskseries_id}/{ref.task_id}"
