"""Shared fixtures: a fake Remember The Milk endpoint on httpx.MockTransport."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

from rtm_client.auth import AuthSession, CredentialSlot
from rtm_client.client import RtmClient
from rtm_client.models import Credential, Perms, Task, TaskList, User
from rtm_client.transport import RtmTransport

API_KEY = "abc123"
API_SECRET = "BANANAS"


# =============================================================================
# Response builders
# =============================================================================


def ok(**payload: Any) -> dict[str, Any]:
    return {"stat": "ok", **payload}


def fail(code: int, msg: str) -> dict[str, Any]:
    return {"stat": "fail", "err": {"code": str(code), "msg": msg}}


def list_json(list_id: str, name: str, *, position: int = 0, deleted: str = "0") -> dict:
    return {
        "id": list_id,
        "name": name,
        "deleted": deleted,
        "locked": "0",
        "archived": "0",
        "position": str(position),
        "smart": "0",
    }


def lists_rsp(*lists: dict) -> dict[str, Any]:
    return ok(lists={"list": list(lists)})


def series_json(
    series_id: str,
    task_id: str,
    name: str,
    *,
    completed: str = "",
    due: str = "",
    has_due_time: str = "0",
    priority: str = "N",
    tags: list[str] | None = None,
    parent: str = "",
) -> dict[str, Any]:
    return {
        "id": series_id,
        "created": "2024-01-01T10:00:00Z",
        "modified": "2024-01-02T10:00:00Z",
        "name": name,
        "source": "api",
        "url": "",
        "location_id": "",
        "parent_task_id": parent,
        "tags": {"tag": tags} if tags else [],
        "participants": [],
        "notes": [],
        "task": [
            {
                "id": task_id,
                "due": due,
                "has_due_time": has_due_time,
                "added": "2024-01-01T10:00:00Z",
                "completed": completed,
                "deleted": "",
                "priority": priority,
                "postponed": "0",
                "estimate": "",
            }
        ],
    }


def tasks_rsp(by_list: dict[str, list[dict]]) -> dict[str, Any]:
    return ok(
        tasks={
            "rev": "rev1",
            "list": [
                {"id": list_id, "taskseries": series} for list_id, series in by_list.items()
            ],
        }
    )


def change_rsp(
    list_id: str,
    series: dict,
    *,
    transaction_id: str = "tx1",
    undoable: str = "1",
) -> dict[str, Any]:
    return ok(
        transaction={"id": transaction_id, "undoable": undoable},
        list={"id": list_id, "taskseries": [series]},
    )


def auth_rsp(token: str = "tok-new", perms: str = "delete", username: str = "bob") -> dict:
    return ok(
        auth={
            "token": token,
            "perms": perms,
            "user": {"id": "987", "username": username, "fullname": "Bob T. Monkey"},
        }
    )


# =============================================================================
# Model builders
# =============================================================================


def make_credential(
    token: str = "tok-1", perms: Perms = Perms.DELETE, username: str = "bob"
) -> Credential:
    return Credential(token=token, perms=perms, user=User(id="987", username=username))


def make_task(
    task_id: str,
    name: str = "",
    *,
    list_id: str = "L1",
    series_id: str | None = None,
    completed: bool = False,
    parent: str | None = None,
) -> Task:
    from datetime import datetime, timezone

    return Task(
        list_id=list_id,
        taskseries_id=series_id or f"s{task_id}",
        id=task_id,
        name=name or f"Task {task_id}",
        completed=datetime(2024, 1, 3, tzinfo=timezone.utc) if completed else None,
        parent_task_id=parent,
    )


def make_list(list_id: str, name: str, position: int = 0) -> TaskList:
    return TaskList(id=list_id, name=name, position=position)


# =============================================================================
# Fake endpoint
# =============================================================================


Responder = Any


class FakeRtm:
    """Answers REST calls by method name and records every request.

    A responder is an ``rsp`` dict, an ``httpx.Response``, an exception to
    raise, or a callable receiving the query params and returning any of
    those. A list of responders is consumed one per call, the last one
    repeating.
    """

    def __init__(self) -> None:
        self.responders: dict[str, Responder | list[Responder]] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.gates: dict[str, asyncio.Event] = {}

    def on(self, method: str, *responders: Responder) -> None:
        self.responders[method] = list(responders) if len(responders) > 1 else responders[0]

    def hold(self, method: str) -> asyncio.Event:
        """Block responses to ``method`` until the returned event is set."""
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def methods(self) -> list[str]:
        return [method for method, _ in self.calls]

    def params(self, method: str) -> list[dict[str, str]]:
        return [params for name, params in self.calls if name == method]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        method = params.get("method", "")
        self.calls.append((method, params))

        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()

        responder = self.responders.get(method)
        if isinstance(responder, list):
            responder = responder.pop(0) if len(responder) > 1 else responder[0]
        if responder is None:
            responder = fail(112, f'Method "{method}" not found')
        if callable(responder) and not isinstance(responder, (dict, httpx.Response)):
            responder = responder(params)
        if isinstance(responder, Exception):
            raise responder
        if isinstance(responder, httpx.Response):
            return responder
        return httpx.Response(200, json={"rsp": responder})

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def transport(self, **kwargs: Any) -> RtmTransport:
        kwargs.setdefault("retry_backoff", 0)
        return RtmTransport(API_KEY, API_SECRET, client=self.http_client(), **kwargs)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake() -> FakeRtm:
    """Fake endpoint answering timelines.create by default."""
    server = FakeRtm()
    server.on("rtm.timelines.create", ok(timeline="tl-1"))
    return server


@pytest.fixture
def slot() -> CredentialSlot:
    return CredentialSlot(make_credential())


@pytest.fixture
def client(fake: FakeRtm, slot: CredentialSlot) -> RtmClient:
    transport = fake.transport()
    return RtmClient(transport, slot, auth=AuthSession(transport, slot, perms=Perms.WRITE))
