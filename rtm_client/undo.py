"""Bounded undo history for reversible task edits.

Only task completion is reversible. An entry records the task, its state
before the edit, and the transaction the service returned, which is the
preferred way to revert the edit. Undo never guesses: if the task changed
since the entry was recorded, the undo is refused with
``ModelInconsistencyError`` and the entry is discarded.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import ModelInconsistencyError
from .models import TaskRef, Transaction

if TYPE_CHECKING:
    from .client import RtmClient
    from .tree import TaskTree

logger = logging.getLogger(__name__)


class UndoKind(Enum):
    """Operations that can be undone."""

    COMPLETE_TASK = "complete_task"


@dataclass
class UndoEntry:
    """Enough information to reverse one edit."""

    kind: UndoKind
    ref: TaskRef
    prior_completed: bool
    transaction: Transaction | None = None
    timeline: str | None = None
    invalidated: bool = False

    @property
    def expected_completed(self) -> bool:
        """Completion state the task must still have for the undo to apply."""
        return True

    @property
    def uses_transaction(self) -> bool:
        return bool(self.transaction and self.transaction.undoable and self.timeline)


class UndoStack:
    """Fixed-capacity stack; pushing at capacity evicts the oldest entry."""

    def __init__(self, capacity: int = 20) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: deque[UndoEntry] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[UndoEntry]:
        """Entries from oldest to newest."""
        return list(self._entries)

    def peek(self) -> UndoEntry | None:
        return self._entries[-1] if self._entries else None

    def push(self, entry: UndoEntry) -> None:
        if len(self._entries) == self.capacity:
            logger.debug("Undo stack full, evicting oldest entry")
        self._entries.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    def invalidate(self, refs: Iterable[TaskRef]) -> int:
        """Mark entries for ``refs`` as no longer undoable.

        Returns:
            Number of entries newly invalidated.
        """
        targets = set(refs)
        count = 0
        for entry in self._entries:
            if entry.ref in targets and not entry.invalidated:
                entry.invalidated = True
                count += 1
        if count:
            logger.info("Invalidated %d undo entries after refresh", count)
        return count

    # -------------------------------------------------------------------------
    # Undo
    # -------------------------------------------------------------------------

    def begin_undo(self, tree: TaskTree) -> UndoEntry:
        """Pop the newest entry and check it still applies to ``tree``.

        The entry is removed whether or not validation passes.

        Raises:
            ModelInconsistencyError: Nothing to undo, or the task is gone or
                no longer in the state the edit left it in.
        """
        if not self._entries:
            raise ModelInconsistencyError("Nothing to undo")
        entry = self._entries.pop()

        if entry.invalidated:
            raise ModelInconsistencyError(
                "Task changed on the server since it was completed", ref=entry.ref
            )
        task = tree.find(entry.ref)
        if task is None:
            raise ModelInconsistencyError("Task is no longer in the list", ref=entry.ref)
        if tree.is_pending(entry.ref) or tree.is_completed(entry.ref) != entry.expected_completed:
            raise ModelInconsistencyError(
                f"'{task.name}' is no longer in the state being undone", ref=entry.ref
            )
        return entry

    async def compensate(self, entry: UndoEntry, client: RtmClient) -> None:
        """Issue the call that reverses ``entry`` on the service.

        Uses the service's transaction undo when the transaction allows it,
        otherwise marks the task incomplete again.
        """
        if entry.uses_transaction:
            assert entry.transaction is not None and entry.timeline is not None
            logger.debug("Undoing transaction %s", entry.transaction.id)
            await client.undo_transaction(entry.timeline, entry.transaction.id)
        elif entry.prior_completed:
            await client.complete_task(entry.ref)
        else:
            await client.uncomplete_task(entry.ref)

    def finish_undo(self, tree: TaskTree, entry: UndoEntry) -> None:
        """Restore the local state after a successful compensating call."""
        tree.revert_completion(entry.ref, entry.prior_completed)

    async def pop_and_undo(self, tree: TaskTree, client: RtmClient) -> UndoEntry:
        """Undo the newest entry: validate, call the service, revert locally.

        On any failure the entry stays discarded and the error propagates.
        """
        entry = self.begin_undo(tree)
        await self.compensate(entry, client)
        self.finish_undo(tree, entry)
        return entry
