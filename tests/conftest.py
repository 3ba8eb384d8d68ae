"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.application.exceptions import TransportError, UpstreamError
from chat_mirror.domain.entities.conversation import Conversation, LastActivity, Member
from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.entities.user import UserIdentity

BASE_TS = 1_700_000_000


def make_message(
    message_id: str = "m1",
    *,
    group_id: str = "g1",
    created_at: int = BASE_TS,
    text: str = "hello",
    source_guid: str | None = None,
    user_id: str = "u1",
    system: bool = False,
) -> Message:
    return Message(
        id=message_id,
        group_id=group_id,
        source_guid=source_guid or f"guid-{message_id}",
        user_id=user_id,
        name="Alice",
        text=text,
        created_at=created_at,
        system=system,
    )


def message_payload(
    message_id: str = "m1",
    *,
    group_id: str = "g1",
    created_at: int = BASE_TS,
    text: str = "hello",
) -> dict[str, Any]:
    """GroupMe-shaped message JSON."""
    return {
        "id": message_id,
        "source_guid": f"guid-{message_id}",
        "created_at": created_at,
        "user_id": "u1",
        "group_id": group_id,
        "name": "Alice",
        "avatar_url": None,
        "text": text,
        "system": False,
        "favorited_by": [],
        "attachments": [],
    }


def make_conversation(
    group_id: str = "g1",
    *,
    name: str = "Weekend plans",
    members: tuple[Member, ...] = (),
    last_message_id: str | None = None,
) -> Conversation:
    return Conversation(
        id=group_id,
        name=name,
        description=None,
        image_url=None,
        creator_user_id="u1",
        created_at=BASE_TS - 86_400,
        updated_at=BASE_TS,
        members=members,
        last_activity=LastActivity(count=0, last_message_id=last_message_id),
    )


@dataclass
class FakeGateway:
    """In-memory GroupAdminGateway."""

    groups: dict[str, Conversation] = field(default_factory=dict)
    messages: dict[str, list[Message]] = field(default_factory=dict)
    user: UserIdentity = field(default_factory=lambda: UserIdentity(id="u1", name="Alice"))
    fail_reads: bool = False
    fail_posts: bool = False
    connected: bool = True
    posted: list[tuple[str, str, str]] = field(default_factory=list)
    removed: list[tuple[str, str]] = field(default_factory=list)
    fetch_calls: int = 0
    _next_id: int = 1000

    def _check_reads(self) -> None:
        if self.fail_reads:
            raise UpstreamError("GroupMe API error: 503 unavailable", status_code=503)

    async def fetch_groups(self) -> list[Conversation]:
        self._check_reads()
        return list(self.groups.values())

    async def fetch_group(self, group_id: str) -> Conversation:
        self._check_reads()
        if group_id not in self.groups:
            raise UpstreamError("GroupMe API error: 404", status_code=404)
        return self.groups[group_id]

    async def fetch_messages(
        self,
        group_id: str,
        before_id: str | None = None,
        limit: int = 20,
    ) -> list[Message]:
        self.fetch_calls += 1
        self._check_reads()
        newest_first = sorted(
            self.messages.get(group_id, []), key=lambda m: m.sort_key, reverse=True,
        )
        if before_id is not None:
            ids = [m.id for m in newest_first]
            if before_id in ids:
                newest_first = newest_first[ids.index(before_id) + 1:]
        return newest_first[:limit]

    async def post_message(self, group_id: str, text: str, source_guid: str) -> Message:
        if self.fail_posts:
            raise UpstreamError("GroupMe API error: 500 boom", status_code=500)
        self._next_id += 1
        msg = make_message(
            str(self._next_id),
            group_id=group_id,
            created_at=BASE_TS + self._next_id,
            text=text,
            source_guid=source_guid,
        )
        self.messages.setdefault(group_id, []).append(msg)
        self.posted.append((group_id, text, source_guid))
        return msg

    async def fetch_current_user(self) -> UserIdentity:
        self._check_reads()
        return self.user

    async def check_status(self) -> StatusDTO:
        if self.connected:
            return StatusDTO(connected=True, message="ok")
        return StatusDTO(connected=False, message="token rejected")

    async def create_group(
        self,
        name: str,
        description: str | None = None,
        share: bool = False,
    ) -> Conversation:
        self._next_id += 1
        group = make_conversation(f"g{self._next_id}", name=name)
        self.groups[group.id] = group
        return group

    async def add_member(self, group_id: str, user_id: str, nickname: str, guid: str) -> Member:
        return Member(id=guid, user_id=user_id, nickname=nickname)

    async def remove_member(self, group_id: str, membership_id: str) -> None:
        self.removed.append((group_id, membership_id))


@dataclass
class FakeConnection:
    """Relay-side connection handle that records frames."""

    fail: bool = False
    sent: list[str] = field(default_factory=list)

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    @property
    def frames(self) -> list[dict[str, Any]]:
        return [json.loads(s) for s in self.sent]


class FakeTransport:
    """Client-side push transport driven by the test."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self._inbox: asyncio.Queue[str | None] = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.closed:
            raise TransportError("send on closed transport")
        self.sent.append(data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(None)

    def feed(self, data: str | dict[str, Any]) -> None:
        self._inbox.put_nowait(data if isinstance(data, str) else json.dumps(data))

    def drop(self) -> None:
        """Simulate the peer closing the connection."""
        self.closed = True
        self._inbox.put_nowait(None)

    def __aiter__(self) -> FakeTransport:
        return self

    async def __anext__(self) -> str:
        item = await self._inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeTransportFactory:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.attempts = 0
        self.opened: list[FakeTransport] = []

    async def __call__(self) -> FakeTransport:
        self.attempts += 1
        if self.fail:
            raise TransportError("connection refused")
        transport = FakeTransport()
        self.opened.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.opened[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def gateway() -> FakeGateway:
    gw = FakeGateway()
    gw.groups["g1"] = make_conversation("g1")
    gw.groups["g2"] = make_conversation("g2", name="Work")
    return gw
