"""Authenticated API client.

Wraps the transport and the credential slot to perform signed calls against
the list and task endpoints. Every operation either returns parsed models or
raises exactly one of ``ServiceError``, ``TransportError`` or
``NotAuthenticatedError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .auth import AuthSession, CredentialSlot
from .exceptions import NotAuthenticatedError, ServiceError
from .models import Perms, Task, TaskChange, TaskList, TaskRef
from .parsing import parse_lists, parse_task_change, parse_tasks_by_list
from .transport import LOGIN_FAILED, RtmTransport

logger = logging.getLogger(__name__)


class RtmClient:
    """Signed list/task operations for the current credential.

    A call captures the credential generation when it starts. If the
    credential is replaced or cleared before the response is handled, the
    call raises ``NotAuthenticatedError`` and the caller may retry once.
    """

    def __init__(
        self,
        transport: RtmTransport,
        slot: CredentialSlot,
        *,
        auth: AuthSession | None = None,
    ) -> None:
        self.transport = transport
        self.slot = slot
        self.auth = auth or AuthSession(transport, slot)
        self._timeline: tuple[str, int] | None = None
        self._timeline_lock = asyncio.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self.slot.credential is not None

    async def _call(
        self,
        method: str,
        params: dict[str, str] | None = None,
        *,
        idempotent: bool = True,
    ) -> dict[str, Any]:
        credential, generation = self.slot.snapshot()
        if credential is None:
            raise NotAuthenticatedError(method)

        query = dict(params or {})
        query["auth_token"] = credential.token
        try:
            rsp = await self.transport.call(method, query, idempotent=idempotent)
        except ServiceError as e:
            if e.code != LOGIN_FAILED:
                raise
            # Only clear the credential this call was made with
            if self.slot.is_current(generation):
                self.slot.clear()
            raise NotAuthenticatedError(
                method, message="Credential rejected by service", cause=e
            ) from e

        if not self.slot.is_current(generation):
            logger.info("Credential changed during %s, discarding result", method)
            raise NotAuthenticatedError(method, message="Credential changed during call")
        return rsp

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_lists(self) -> list[TaskList]:
        """Return metadata for all lists, without their tasks."""
        rsp = await self._call("rtm.lists.getList")
        return parse_lists(rsp)

    async def fetch_tasks(self, list_id: str, filter: str = "") -> list[Task]:
        """Return the tasks of one list, optionally narrowed by a search filter."""
        params = {"list_id": list_id}
        if filter:
            params["filter"] = filter
        rsp = await self._call("rtm.tasks.getList", params)
        return parse_tasks_by_list(rsp).get(list_id, [])

    async def fetch_tasks_filtered(self, filter: str = "") -> dict[str, list[Task]]:
        """Return tasks of all lists matching ``filter``, keyed by list id."""
        params = {"filter": filter} if filter else {}
        rsp = await self._call("rtm.tasks.getList", params)
        return parse_tasks_by_list(rsp)

    # -------------------------------------------------------------------------
    # Timelines
    # -------------------------------------------------------------------------

    async def create_timeline(self) -> str:
        """Create a new timeline. Writes in one timeline can be undone."""
        rsp = await self._call("rtm.timelines.create")
        timeline = rsp.get("timeline")
        if not timeline:
            raise ServiceError(-1, "Service returned no timeline", method="rtm.timelines.create")
        return str(timeline)

    async def timeline(self) -> str:
        """Return the timeline for the current credential, creating it once."""
        async with self._timeline_lock:
            generation = self.slot.generation
            if self._timeline is not None and self._timeline[1] == generation:
                return self._timeline[0]
            timeline = await self.create_timeline()
            self._timeline = (timeline, generation)
            logger.debug("Created timeline for generation %d", generation)
            return timeline

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def add_task(
        self,
        list_id: str | None,
        text: str,
        *,
        parse: bool = True,
        parent_task_id: str | None = None,
        external_id: str | None = None,
    ) -> TaskChange:
        """Create a task.

        With ``parse`` the service applies Smart Add to ``text`` and may infer
        a due date, priority, tags or list. The returned task carries the
        server-assigned ids and is authoritative.
        """
        timeline = await self.timeline()
        params = {"timeline": timeline, "name": text}
        if list_id:
            params["list_id"] = list_id
        if parse:
            params["parse"] = "1"
        if parent_task_id:
            params["parent_task_id"] = parent_task_id
        if external_id:
            params["external_id"] = external_id
        rsp = await self._call("rtm.tasks.add", params, idempotent=False)
        return parse_task_change(rsp, "rtm.tasks.add", timeline)

    async def complete_task(self, ref: TaskRef) -> TaskChange:
        """Mark a task complete. The transaction in the result enables undo."""
        return await self._task_write("rtm.tasks.complete", ref)

    async def uncomplete_task(self, ref: TaskRef) -> TaskChange:
        """Mark a task incomplete."""
        return await self._task_write("rtm.tasks.uncomplete", ref)

    async def add_tags(self, ref: TaskRef, tags: list[str]) -> TaskChange:
        """Add tags to a task series."""
        return await self._task_write(
            "rtm.tasks.addTags", ref, {"tags": ",".join(tags)}, idempotent=False
        )

    async def undo_transaction(self, timeline: str, transaction_id: str) -> None:
        """Revert a transaction recorded in ``timeline``."""
        await self._call(
            "rtm.transactions.undo",
            {"timeline": timeline, "transaction_id": transaction_id},
            idempotent=False,
        )

    async def _task_write(
        self,
        method: str,
        ref: TaskRef,
        extra: dict[str, str] | None = None,
        *,
        idempotent: bool = True,
    ) -> TaskChange:
        timeline = await self.timeline()
        params = {
            "timeline": timeline,
            "list_id": ref.list_id,
            "taskseries_id": ref.taskseries_id,
            "task_id": ref.task_id,
        }
        if extra:
            params.update(extra)
        rsp = await self._call(method, params, idempotent=idempotent)
        return parse_task_change(rsp, method, timeline, task_id=ref.task_id)

    # -------------------------------------------------------------------------
    # Auth
    # -------------------------------------------------------------------------

    async def check_token(self, required: Perms = Perms.READ) -> bool:
        """Check that the saved credential is valid and grants ``required``."""
        return await self.auth.check_token(required)

    async def aclose(self) -> None:
        await self.transport.aclose()


def external_id_filter(external_id: str) -> str:
    """Search filter matching tasks added with ``external_id``."""
    if any(ch.isspace() for ch in external_id):
        return f'externalId:"{external_id}"'
    return f"externalId:{external_id}"
