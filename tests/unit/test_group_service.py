from __future__ import annotations

import pytest

from chat_mirror.application.exceptions import NotFoundError, UpstreamError, ValidationError
from chat_mirror.domain.entities.conversation import Member
from chat_mirror.infrastructure.ws.emitter import BroadcastEmitter
from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter
from chat_mirror.services import group_service
from tests.conftest import FakeConnection, make_conversation


@pytest.fixture
def router():
    return SubscriptionRouter()


@pytest.fixture
def emitter(router):
    return BroadcastEmitter(router)


async def _watch(router: SubscriptionRouter, group_id: str | None) -> FakeConnection:
    conn = FakeConnection()
    cid = f"c{await router.connection_count()}"
    await router.on_connect(cid, conn)
    if group_id:
        await router.on_join(cid, group_id)
    return conn


@pytest.mark.asyncio
async def test_list_groups(gateway):
    groups = await group_service.list_groups(gateway)
    assert {g.id for g in groups} == {"g1", "g2"}


@pytest.mark.asyncio
async def test_get_group_maps_upstream_404(gateway):
    with pytest.raises(NotFoundError):
        await group_service.get_group("missing", gateway)


@pytest.mark.asyncio
async def test_get_group_propagates_other_upstream_errors(gateway):
    gateway.fail_reads = True
    with pytest.raises(UpstreamError) as exc_info:
        await group_service.get_group("g1", gateway)
    assert not isinstance(exc_info.value, NotFoundError)


@pytest.mark.asyncio
async def test_create_group_broadcasts_to_everyone(gateway, router, emitter):
    watching = await _watch(router, "g1")
    idle = await _watch(router, None)

    group = await group_service.create_group("Trip", None, False, gateway, emitter)
    await emitter.drain()

    assert gateway.groups[group.id].name == "Trip"
    assert watching.frames[0]["group"]["id"] == group.id
    assert idle.frames[0]["type"] == "group_created"


@pytest.mark.asyncio
async def test_create_group_requires_name(gateway, emitter):
    with pytest.raises(ValidationError):
        await group_service.create_group("  ", None, False, gateway, emitter)


@pytest.mark.asyncio
async def test_add_member_broadcasts_member_joined(gateway, router, emitter):
    watching = await _watch(router, "g1")
    other = await _watch(router, "g2")

    member = await group_service.add_member("g1", "u9", "Zed", gateway, emitter)
    await emitter.drain()

    assert member.user_id == "u9"
    assert watching.frames[0]["type"] == "member_joined"
    assert watching.frames[0]["member"]["nickname"] == "Zed"
    assert other.sent == []


@pytest.mark.asyncio
async def test_remove_member_broadcasts_user_id(gateway, router, emitter):
    gateway.groups["g1"] = make_conversation(
        "g1", members=(Member(id="mb7", user_id="u7", nickname="Sam"),),
    )
    watching = await _watch(router, "g1")

    await group_service.remove_member("g1", "mb7", gateway, emitter)
    await emitter.drain()

    assert gateway.removed == [("g1", "mb7")]
    assert watching.frames == [{"type": "member_left", "groupId": "g1", "userId": "u7"}]


@pytest.mark.asyncio
async def test_remove_unknown_membership(gateway, emitter):
    with pytest.raises(NotFoundError):
        await group_service.remove_member("g1", "nope", gateway, emitter)
    assert gateway.removed == []
