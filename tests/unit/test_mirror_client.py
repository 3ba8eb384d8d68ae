from __future__ import annotations

import pytest

from chat_mirror.client.mirror import MirrorClient
from chat_mirror.domain.entities.conversation import Member
from chat_mirror.domain.events.group_created import GroupCreated
from chat_mirror.domain.events.member_joined import MemberJoined
from chat_mirror.domain.events.member_left import MemberLeft
from tests.conftest import FakeTransportFactory, make_conversation, make_message, wait_until

SAM = Member(id="mb7", user_id="u7", nickname="Sam")
ZED = Member(id="mb9", user_id="u9", nickname="Zed")


def _user_ids(mirror: MirrorClient, group_id: str = "g1") -> list[str]:
    return [m.user_id for m in mirror.members(group_id)]


@pytest.mark.asyncio
async def test_viewports_share_one_cache(gateway):
    gateway.messages["g1"] = [make_message("m1")]
    mirror = MirrorClient(gateway, FakeTransportFactory(), status_interval=0.01)
    await mirror.start()

    first = await mirror.open_viewport("g1")
    second = await mirror.open_viewport("g1")
    await wait_until(lambda: [m.id for m in second.messages] == ["m1"])
    await wait_until(lambda: mirror.status.connected)

    await mirror.close_viewport(first)
    assert mirror.cache.is_tracked("g1")
    assert mirror.viewports == (second,)

    await mirror.aclose()
    assert not mirror.cache.is_tracked("g1")
    assert mirror.viewports == ()


@pytest.mark.asyncio
async def test_refresh_syncs_stale_viewports(gateway):
    gateway.messages["g1"] = [make_message("m1")]
    mirror = MirrorClient(gateway, FakeTransportFactory())
    viewport = await mirror.open_viewport("g1")
    await wait_until(lambda: len(viewport.messages) == 1)

    gateway.messages["g1"].append(make_message("m2", created_at=1_700_000_050))
    gateway.groups["g1"] = make_conversation("g1", last_message_id="m2")

    assert await mirror.refresh() == 1
    assert [m.id for m in viewport.messages] == ["m1", "m2"]
    await mirror.aclose()


@pytest.mark.asyncio
async def test_group_created_adds_group_once(gateway):
    mirror = MirrorClient(gateway, FakeTransportFactory())
    await mirror.refresh()
    event = GroupCreated(group=make_conversation("g9", name="Trip"))

    mirror.apply_event(event)
    mirror.apply_event(event)

    assert [g.id for g in mirror.groups] == ["g9", "g1", "g2"]
    assert mirror.group("g9").name == "Trip"


@pytest.mark.asyncio
async def test_member_joined_and_left_update_roster(gateway):
    gateway.groups["g1"] = make_conversation("g1", members=(SAM,))
    mirror = MirrorClient(gateway, FakeTransportFactory())
    await mirror.refresh()

    mirror.apply_event(MemberJoined(group_id="g1", member=ZED))
    mirror.apply_event(MemberJoined(group_id="g1", member=ZED))
    assert _user_ids(mirror) == ["u7", "u9"]

    mirror.apply_event(MemberLeft(group_id="g1", user_id="u7"))
    mirror.apply_event(MemberLeft(group_id="g1", user_id="u7"))
    assert _user_ids(mirror) == ["u9"]


@pytest.mark.asyncio
async def test_member_event_for_unknown_group_is_ignored(gateway):
    mirror = MirrorClient(gateway, FakeTransportFactory())

    mirror.apply_event(MemberJoined(group_id="g404", member=ZED))

    assert mirror.groups == ()
    assert mirror.members("g404") == ()


@pytest.mark.asyncio
async def test_pushed_group_events_reach_the_group_view(gateway):
    gateway.groups["g1"] = make_conversation("g1", members=(SAM,))
    factory = FakeTransportFactory()
    mirror = MirrorClient(gateway, factory)
    await mirror.refresh()
    viewport = await mirror.open_viewport("g1")
    await wait_until(lambda: viewport.connected)

    factory.last.feed(
        {"type": "member_joined", "groupId": "g1",
         "member": {"id": "mb9", "user_id": "u9", "nickname": "Zed"}},
    )
    factory.last.feed({"type": "member_left", "groupId": "g1", "userId": "u7"})
    factory.last.feed(
        {"type": "group_created", "group": {"id": "g9", "name": "Trip", "created_at": 1}},
    )
    await wait_until(lambda: mirror.group("g9") is not None)

    assert _user_ids(mirror) == ["u9"]
    await mirror.aclose()


@pytest.mark.asyncio
async def test_periodic_refresh_keeps_group_view_current(gateway):
    mirror = MirrorClient(
        gateway,
        FakeTransportFactory(),
        status_interval=3600,
        group_list_interval=0.01,
        group_detail_interval=0.01,
    )
    await mirror.start()
    await wait_until(lambda: {g.id for g in mirror.groups} == {"g1", "g2"})

    gateway.groups["g3"] = make_conversation("g3")
    await wait_until(lambda: mirror.group("g3") is not None)

    await mirror.open_viewport("g1")
    gateway.groups["g1"] = make_conversation("g1", members=(ZED,))
    await wait_until(lambda: _user_ids(mirror) == ["u9"])
    await mirror.aclose()


@pytest.mark.asyncio
async def test_open_group_refresh_survives_upstream_errors(gateway):
    mirror = MirrorClient(gateway, FakeTransportFactory())
    await mirror.refresh()
    await mirror.open_viewport("g1")
    gateway.fail_reads = True

    assert await mirror.refresh_open_groups() == 0
    assert mirror.group("g1") is not None
    await mirror.aclose()


@pytest.mark.asyncio
async def test_refresh_tolerates_viewport_closed_mid_sync(gateway):
    gateway.messages["g1"] = [make_message("m1")]
    gateway.messages["g2"] = [make_message("n1", group_id="g2")]
    mirror = MirrorClient(gateway, FakeTransportFactory())
    first = await mirror.open_viewport("g1")
    second = await mirror.open_viewport("g2")
    await wait_until(lambda: len(first.messages) == 1 and len(second.messages) == 1)

    gateway.messages["g1"].append(make_message("m2", created_at=1_700_000_050))
    gateway.messages["g2"].append(make_message("n2", group_id="g2", created_at=1_700_000_050))
    gateway.groups["g1"] = make_conversation("g1", last_message_id="m2")
    gateway.groups["g2"] = make_conversation("g2", last_message_id="n2")

    fetched = []
    fetch_messages = gateway.fetch_messages

    async def fetch_and_close(group_id, before_id=None, limit=20):
        fetched.append(group_id)
        if group_id == "g1" and first.mounted:
            await mirror.close_viewport(first)
        return await fetch_messages(group_id, before_id, limit)

    gateway.fetch_messages = fetch_and_close
    await mirror.refresh()

    assert fetched == ["g1", "g2"]
    assert [m.id for m in second.messages] == ["n1", "n2"]
    assert mirror.viewports == (second,)
    await mirror.aclose()
