"""In-memory model of lists and tasks with navigation and optimistic edits.

The tree keeps two layers per task:

- the confirmed state, last reported by the service (fetch or write result),
- an optional pending edit, applied locally while a write is in flight.

Each pending edit carries a sequence number. Only the result of the newest
call for a task may confirm or roll back its edit; older results are stale
and ignored.

``nodes()`` projects the model into a flat list of ``TreeNode`` rows for
rendering. Nodes are never the source of truth.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from .exceptions import ModelInconsistencyError
from .models import Task, TaskList, TaskRef

logger = logging.getLogger(__name__)


class NodeKind(Enum):
    """Kind of row in the rendered tree."""

    LIST = "list"
    TASK = "task"
    PLACEHOLDER = "placeholder"


@dataclass
class TreeNode:
    """One visible row of the tree."""

    kind: NodeKind
    key: str
    label: str
    depth: int = 0
    expanded: bool = False
    completed: bool = False
    pending: bool = False
    list_id: str = ""
    ref: TaskRef | None = None
    task: Task | None = None
    task_count: int | None = None


@dataclass
class _PendingEdit:
    seq: int
    completed: bool


class TaskTree:
    """Lists, their tasks, pending edits and the current selection."""

    def __init__(self) -> None:
        self._lists: dict[str, TaskList] = {}
        self._tasks: dict[str, dict[TaskRef, Task]] = {}
        self._pending: dict[TaskRef, _PendingEdit] = {}
        self._expanded: set[str] = set()
        self._seq = 0
        self._selected = 0
        self.loading = False

    # -------------------------------------------------------------------------
    # Lists
    # -------------------------------------------------------------------------

    @property
    def lists(self) -> list[TaskList]:
        return sorted(self._lists.values(), key=lambda tl: (tl.position, tl.name.lower()))

    def get_list(self, list_id: str) -> TaskList | None:
        return self._lists.get(list_id)

    def set_lists(self, lists: list[TaskList]) -> None:
        """Replace list metadata wholesale.

        Tasks, pending edits and expand state of removed lists are dropped.
        """
        selected_key = self._selected_key()
        self._lists = {tl.id: tl for tl in lists if not tl.deleted}
        for list_id in list(self._tasks):
            if list_id not in self._lists:
                self._drop_list_tasks(list_id)
        self._expanded &= set(self._lists)
        self._restore_selection(selected_key)

    def has_tasks(self, list_id: str) -> bool:
        """True once tasks for the list have been loaded."""
        return list_id in self._tasks

    def tasks(self, list_id: str) -> list[Task]:
        """Tasks of a list with pending edits applied."""
        return [self._effective(task) for task in self._tasks.get(list_id, {}).values()]

    # -------------------------------------------------------------------------
    # Task lookup
    # -------------------------------------------------------------------------

    def find(self, ref: TaskRef) -> Task | None:
        """Return the confirmed task for ``ref``, if present."""
        return self._tasks.get(ref.list_id, {}).get(ref)

    def is_completed(self, ref: TaskRef) -> bool:
        """Local completion state: the pending edit if any, else confirmed."""
        task = self._require(ref)
        pending = self._pending.get(ref)
        if pending is not None:
            return pending.completed
        return task.is_complete

    def is_pending(self, ref: TaskRef) -> bool:
        return ref in self._pending

    @property
    def last_seq(self) -> int:
        """Sequence number of the newest edit made so far."""
        return self._seq

    def edit_seq(self, ref: TaskRef) -> int | None:
        """Sequence number of the pending edit on ``ref``."""
        pending = self._pending.get(ref)
        return pending.seq if pending else None

    # -------------------------------------------------------------------------
    # Optimistic edits
    # -------------------------------------------------------------------------

    def apply_local_complete(self, ref: TaskRef, completed: bool = True) -> bool:
        """Set the local completion state of a task ahead of the service.

        Supersedes any earlier pending edit on the same task.

        Returns:
            The completion state before this edit.

        Raises:
            ModelInconsistencyError: The task is not in the tree.
        """
        prior = self.is_completed(ref)
        self._seq += 1
        self._pending[ref] = _PendingEdit(self._seq, completed)
        logger.debug("Pending edit %d on %s: completed=%s", self._seq, ref.task_id, completed)
        return prior

    def confirm(self, ref: TaskRef, seq: int, task: Task | None = None) -> bool:
        """Apply the successful result of the call that made edit ``seq``.

        Args:
            ref: Task the edit targeted.
            seq: Sequence number of the edit.
            task: Authoritative task from the response, if it carried one.

        Returns:
            False if the result is stale (superseded edit or task gone).
        """
        pending = self._pending.get(ref)
        if pending is None or pending.seq != seq:
            logger.debug("Ignoring stale confirmation %d on %s", seq, ref.task_id)
            return False
        del self._pending[ref]
        current = self.find(ref)
        if current is None:
            return False
        if task is None:
            task = _with_completion(current, pending.completed)
        self._tasks[ref.list_id][ref] = task
        return True

    def rollback(self, ref: TaskRef, seq: int) -> bool:
        """Drop the failed edit ``seq``, restoring the confirmed state.

        Returns:
            False if a newer edit superseded it; nothing is changed then.
        """
        pending = self._pending.get(ref)
        if pending is None or pending.seq != seq:
            return False
        del self._pending[ref]
        logger.debug("Rolled back edit %d on %s", seq, ref.task_id)
        return True

    def revert_completion(self, ref: TaskRef, completed: bool) -> None:
        """Set the confirmed completion state after a compensating call."""
        task = self._require(ref)
        self._pending.pop(ref, None)
        self._tasks[ref.list_id][ref] = _with_completion(task, completed)

    def add_local_task(self, task: Task) -> bool:
        """Adopt a task returned by the service, keeping its ids verbatim.

        Returns:
            False if the task's list is not loaded. The task is not added
            then, and the list needs a fetch to show it.
        """
        tasks = self._tasks.get(task.list_id)
        if tasks is None:
            return False
        tasks[task.ref] = task
        if task.list_id in self._lists:
            self._expanded.add(task.list_id)
        self._select_key(_task_key(task.ref))
        return True

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def reconcile(
        self, list_id: str, tasks: list[Task], since_seq: int | None = None
    ) -> list[TaskRef]:
        """Replace a list's tasks with the service's view.

        A pending edit whose task is missing, or whose target state the
        service contradicts, is dropped. The server view wins.

        Args:
            list_id: List the tasks belong to.
            tasks: The service's tasks for the list.
            since_seq: ``last_seq`` when the fetch was issued. Edits made
                after it are newer than the fetched view and are kept.

        Returns:
            Refs whose local state the refresh removed or changed. Undo
            entries for them are no longer valid.
        """
        selected_key = self._selected_key()
        old = self._tasks.get(list_id, {})
        new = {task.ref: task for task in tasks}
        invalidated: list[TaskRef] = []

        def newer(ref: TaskRef) -> bool:
            pending = self._pending.get(ref)
            return pending is not None and since_seq is not None and pending.seq > since_seq

        for ref, task in old.items():
            if newer(ref):
                if ref not in new:
                    new[ref] = task
                continue
            if ref not in new:
                invalidated.append(ref)
                continue
            local = self._pending[ref].completed if ref in self._pending else task.is_complete
            if new[ref].is_complete != local:
                invalidated.append(ref)

        for ref in [r for r in self._pending if r.list_id == list_id]:
            if newer(ref):
                continue
            server = new.get(ref)
            if server is None or server.is_complete != self._pending[ref].completed:
                logger.info("Refresh superseded pending edit on %s", ref.task_id)
                del self._pending[ref]

        self._tasks[list_id] = new
        self._restore_selection(selected_key)
        return invalidated

    def _drop_list_tasks(self, list_id: str) -> None:
        self._tasks.pop(list_id, None)
        for ref in [r for r in self._pending if r.list_id == list_id]:
            del self._pending[ref]

    # -------------------------------------------------------------------------
    # Projection
    # -------------------------------------------------------------------------

    def nodes(self) -> list[TreeNode]:
        """Visible rows: each list, and the tasks of expanded lists."""
        rows: list[TreeNode] = []
        for task_list in self.lists:
            list_id = task_list.id
            loaded = list_id in self._tasks
            expanded = list_id in self._expanded
            rows.append(
                TreeNode(
                    kind=NodeKind.LIST,
                    key=_list_key(list_id),
                    label=task_list.name,
                    expanded=expanded,
                    list_id=list_id,
                    task_count=len(self._tasks[list_id]) if loaded else None,
                )
            )
            if not expanded:
                continue
            if not loaded:
                rows.append(self._placeholder(list_id, "Loading..."))
            elif not self._tasks[list_id]:
                rows.append(self._placeholder(list_id, "[No tasks]"))
            else:
                rows.extend(self._task_rows(list_id))
        if not rows:
            rows.append(
                TreeNode(
                    kind=NodeKind.PLACEHOLDER,
                    key="placeholder:",
                    label="Loading..." if self.loading else "[No lists]",
                )
            )
        return rows

    def _task_rows(self, list_id: str) -> list[TreeNode]:
        tasks = list(self._tasks[list_id].values())
        by_id = {task.id: task for task in tasks}
        children: dict[str, list[Task]] = {}
        roots: list[Task] = []
        for task in tasks:
            if task.parent_task_id and task.parent_task_id in by_id:
                children.setdefault(task.parent_task_id, []).append(task)
            else:
                roots.append(task)

        rows: list[TreeNode] = []

        def add(task: Task, depth: int) -> None:
            rows.append(self._task_node(task, depth))
            for child in children.get(task.id, []):
                add(child, depth + 1)

        for task in roots:
            add(task, 1)
        return rows

    def _task_node(self, task: Task, depth: int) -> TreeNode:
        ref = task.ref
        return TreeNode(
            kind=NodeKind.TASK,
            key=_task_key(ref),
            label=task.name,
            depth=depth,
            # Confirmed state; an in-flight edit only shows as pending
            completed=task.is_complete,
            pending=ref in self._pending,
            list_id=task.list_id,
            ref=ref,
            task=task,
        )

    @staticmethod
    def _placeholder(list_id: str, label: str) -> TreeNode:
        return TreeNode(
            kind=NodeKind.PLACEHOLDER,
            key=f"placeholder:{list_id}",
            label=label,
            depth=1,
            list_id=list_id,
        )

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    @property
    def selected(self) -> int:
        return self._selected

    def select(self, index: int) -> None:
        """Select a row by index, clamped to the visible rows."""
        count = len(self.nodes())
        self._selected = max(0, min(index, count - 1))

    def move_selection(self, delta: int) -> None:
        self.select(self._selected + delta)

    def select_first(self) -> None:
        self.select(0)

    def select_last(self) -> None:
        self.select(len(self.nodes()) - 1)

    def selected_node(self) -> TreeNode | None:
        rows = self.nodes()
        if not rows:
            return None
        return rows[min(self._selected, len(rows) - 1)]

    def selected_task(self) -> Task | None:
        node = self.selected_node()
        if node is None or node.ref is None:
            return None
        return self.find(node.ref)

    def selected_list_id(self) -> str | None:
        node = self.selected_node()
        return node.list_id if node and node.list_id else None

    def is_expanded(self, list_id: str) -> bool:
        return list_id in self._expanded

    def expand(self, list_id: str | None = None) -> None:
        """Expand a list (the selected row's list by default)."""
        list_id = list_id or self.selected_list_id()
        if list_id in self._lists:
            self._expanded.add(list_id)

    def collapse(self, list_id: str | None = None) -> None:
        """Collapse a list, moving the selection onto the list row."""
        list_id = list_id or self.selected_list_id()
        if list_id is None or list_id not in self._expanded:
            return
        self._expanded.discard(list_id)
        self._select_key(_list_key(list_id))

    def toggle_expanded(self) -> None:
        list_id = self.selected_list_id()
        if list_id is None:
            return
        if list_id in self._expanded:
            self.collapse(list_id)
        else:
            self.expand(list_id)

    def _selected_key(self) -> str | None:
        node = self.selected_node()
        return node.key if node else None

    def _select_key(self, key: str) -> bool:
        for index, node in enumerate(self.nodes()):
            if node.key == key:
                self._selected = index
                return True
        return False

    def _restore_selection(self, key: str | None) -> None:
        if key is None or not self._select_key(key):
            self.select(self._selected)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _effective(self, task: Task) -> Task:
        pending = self._pending.get(task.ref)
        if pending is None or pending.completed == task.is_complete:
            return task
        return _with_completion(task, pending.completed)

    def _require(self, ref: TaskRef) -> Task:
        task = self.find(ref)
        if task is None:
            raise ModelInconsistencyError("Task is no longer in the list", ref=ref)
        return task


def _list_key(list_id: str) -> str:
    return f"list:{list_id}"


def _task_key(ref: TaskRef) -> str:
    return f"task:{ref.list_id}/{ref.taskseries_id}/{ref.task_id}"


def _with_completion(task: Task, completed: bool) -> Task:
    if completed == task.is_complete:
        return task
    return replace(task, completed=datetime.now(timezone.utc) if completed else None)
