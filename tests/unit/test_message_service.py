from __future__ import annotations

import pytest

from chat_mirror.application.exceptions import UpstreamWriteFailure, ValidationError
from chat_mirror.infrastructure.ws.emitter import BroadcastEmitter
from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter
from chat_mirror.services import message_service
from tests.conftest import FakeConnection, make_message


@pytest.fixture
def router():
    return SubscriptionRouter()


@pytest.fixture
def emitter(router):
    return BroadcastEmitter(router)


@pytest.mark.asyncio
async def test_send_message_returns_canonical_echo_and_broadcasts(gateway, router, emitter):
    conn = FakeConnection()
    await router.on_connect("c1", conn)
    await router.on_join("c1", "g1")

    msg = await message_service.send_message("g1", "t1", "guid-1", gateway, emitter)
    await emitter.drain()

    assert msg.text == "t1"
    assert msg.source_guid == "guid-1"
    assert gateway.posted == [("g1", "t1", "guid-1")]
    [frame] = conn.frames
    assert frame["type"] == "new_message"
    assert frame["message"]["id"] == msg.id


@pytest.mark.asyncio
async def test_send_message_failure_is_not_retried_or_broadcast(gateway, router, emitter):
    conn = FakeConnection()
    await router.on_connect("c1", conn)
    await router.on_join("c1", "g1")
    gateway.fail_posts = True

    with pytest.raises(UpstreamWriteFailure) as exc_info:
        await message_service.send_message("g1", "t1", "guid-1", gateway, emitter)
    await emitter.drain()

    assert exc_info.value.status_code == 500
    assert gateway.posted == []
    assert conn.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("text,guid", [("   ", "guid-1"), ("hi", "")])
async def test_send_message_validates_input(gateway, emitter, text, guid):
    with pytest.raises(ValidationError):
        await message_service.send_message("g1", text, guid, gateway, emitter)
    assert gateway.posted == []


@pytest.mark.asyncio
async def test_list_messages_passes_paging(gateway):
    gateway.messages["g1"] = [
        make_message(f"m{i}", created_at=1_700_000_000 + i) for i in range(5)
    ]

    newest = await message_service.list_messages("g1", None, 2, gateway)
    older = await message_service.list_messages("g1", "m3", 10, gateway)

    assert [m.id for m in newest] == ["m4", "m3"]
    assert [m.id for m in older] == ["m2", "m1", "m0"]
