"""Tests for the undo stack."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import make_list, make_task
from rtm_client.exceptions import ModelInconsistencyError
from rtm_client.models import Transaction
from rtm_client.tree import TaskTree
from rtm_client.undo import UndoEntry, UndoKind, UndoStack


def entry(task_id: str, *, transaction: Transaction | None = None, timeline=None) -> UndoEntry:
    return UndoEntry(
        kind=UndoKind.COMPLETE_TASK,
        ref=make_task(task_id).ref,
        prior_completed=False,
        transaction=transaction,
        timeline=timeline,
    )


def completed_tree(*task_ids: str) -> TaskTree:
    """Tree where the given tasks were completed locally and confirmed."""
    tree = TaskTree()
    tree.set_lists([make_list("L1", "Inbox")])
    tree.reconcile("L1", [make_task("t1"), make_task("t2"), make_task("t3")])
    for task_id in task_ids:
        ref = make_task(task_id).ref
        tree.apply_local_complete(ref)
        tree.confirm(ref, tree.edit_seq(ref))
    return tree


def mock_client() -> MagicMock:
    client = MagicMock()
    client.undo_transaction = AsyncMock()
    client.complete_task = AsyncMock()
    client.uncomplete_task = AsyncMock()
    return client


class TestCapacity:
    """Tests for bounded history."""

    def test_evicts_oldest(self):
        """Capacity 2: pushing A, B, C keeps B and C."""
        stack = UndoStack(capacity=2)
        a, b, c = entry("t1"), entry("t2"), entry("t3")
        stack.push(a)
        stack.push(b)
        stack.push(c)
        assert stack.entries() == [b, c]
        assert len(stack) == 2

    def test_never_exceeds_capacity(self):
        """Length is bounded by capacity."""
        stack = UndoStack(capacity=3)
        for i in range(10):
            stack.push(entry(f"t{i}"))
            assert len(stack) <= 3

    def test_invalid_capacity(self):
        """Capacity must be positive."""
        with pytest.raises(ValueError):
            UndoStack(capacity=0)

    def test_peek_and_clear(self):
        """peek returns the newest entry; clear empties the stack."""
        stack = UndoStack()
        assert stack.peek() is None
        newest = entry("t2")
        stack.push(entry("t1"))
        stack.push(newest)
        assert stack.peek() is newest
        stack.clear()
        assert len(stack) == 0


class TestInvalidate:
    """Tests for invalidation after refresh."""

    def test_marks_matching_entries(self):
        """Only entries for the given refs are invalidated."""
        stack = UndoStack()
        first, second = entry("t1"), entry("t2")
        stack.push(first)
        stack.push(second)
        assert stack.invalidate([make_task("t1").ref]) == 1
        assert first.invalidated
        assert not second.invalidated

    def test_counts_once(self):
        """Invalidating again counts nothing new."""
        stack = UndoStack()
        stack.push(entry("t1"))
        stack.invalidate([make_task("t1").ref])
        assert stack.invalidate([make_task("t1").ref]) == 0


class TestBeginUndo:
    """Tests for validation before undo."""

    def test_empty(self):
        """Nothing to undo."""
        with pytest.raises(ModelInconsistencyError):
            UndoStack().begin_undo(TaskTree())

    def test_valid_entry(self):
        """A completed task can be undone; the entry is popped."""
        stack = UndoStack()
        stack.push(entry("t1"))
        result = stack.begin_undo(completed_tree("t1"))
        assert result.ref == make_task("t1").ref
        assert len(stack) == 0

    def test_invalidated_entry(self):
        """Invalidated entries are refused and discarded."""
        stack = UndoStack()
        stack.push(entry("t1"))
        stack.invalidate([make_task("t1").ref])
        with pytest.raises(ModelInconsistencyError):
            stack.begin_undo(completed_tree("t1"))
        assert len(stack) == 0

    def test_task_gone(self):
        """Entries for tasks no longer in the tree are refused."""
        stack = UndoStack()
        stack.push(entry("t9"))
        with pytest.raises(ModelInconsistencyError):
            stack.begin_undo(completed_tree("t1"))

    def test_task_no_longer_complete(self):
        """Entries whose task is incomplete again are refused."""
        stack = UndoStack()
        stack.push(entry("t1"))
        with pytest.raises(ModelInconsistencyError):
            stack.begin_undo(completed_tree())

    def test_task_pending(self):
        """Entries whose task has an edit in flight are refused."""
        tree = completed_tree("t1")
        ref = make_task("t1").ref
        tree.apply_local_complete(ref, completed=False)
        stack = UndoStack()
        stack.push(entry("t1"))
        with pytest.raises(ModelInconsistencyError):
            stack.begin_undo(tree)

    def test_refresh_contradiction_refuses_undo(self):
        """After a refresh shows the task changed, undo fails and the server state stays."""
        tree = completed_tree("t1")
        stack = UndoStack()
        stack.push(entry("t1"))
        invalidated = tree.reconcile("L1", [make_task("t1"), make_task("t2"), make_task("t3")])
        stack.invalidate(invalidated)

        with pytest.raises(ModelInconsistencyError):
            stack.begin_undo(tree)

        assert not tree.is_completed(make_task("t1").ref)


@pytest.mark.asyncio
class TestCompensate:
    """Tests for the compensating call."""

    async def test_uses_transaction(self):
        """Undoable transactions are reverted with transaction undo."""
        client = mock_client()
        undo_entry = entry("t1", transaction=Transaction("tx1", undoable=True), timeline="tl-1")

        await UndoStack().compensate(undo_entry, client)

        client.undo_transaction.assert_awaited_once_with("tl-1", "tx1")
        client.uncomplete_task.assert_not_awaited()

    async def test_falls_back_to_uncomplete(self):
        """Without an undoable transaction the task is uncompleted."""
        client = mock_client()
        undo_entry = entry("t1", transaction=Transaction("tx1", undoable=False), timeline="tl-1")

        await UndoStack().compensate(undo_entry, client)

        client.uncomplete_task.assert_awaited_once_with(undo_entry.ref)
        client.undo_transaction.assert_not_awaited()

    async def test_pop_and_undo_restores_state(self):
        """Complete then undo returns the task to its prior state."""
        tree = completed_tree("t1")
        stack = UndoStack()
        stack.push(entry("t1"))
        client = mock_client()

        await stack.pop_and_undo(tree, client)

        assert tree.is_completed(make_task("t1").ref) is False
        assert len(stack) == 0

    async def test_pop_and_undo_failure_keeps_state(self):
        """A failed compensating call leaves the tree untouched."""
        tree = completed_tree("t1")
        stack = UndoStack()
        stack.push(entry("t1"))
        client = mock_client()
        client.uncomplete_task.side_effect = ModelInconsistencyError("boom")

        with pytest.raises(ModelInconsistencyError):
            await stack.pop_and_undo(tree, client)

        assert tree.is_completed(make_task("t1").ref) is True
