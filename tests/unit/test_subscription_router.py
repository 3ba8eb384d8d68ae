from __future__ import annotations

import pytest

from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter
from tests.conftest import FakeConnection


@pytest.mark.asyncio
async def test_route_returns_only_subscribers_of_conversation():
    router = SubscriptionRouter()
    a, b, c = FakeConnection(), FakeConnection(), FakeConnection()
    await router.on_connect("a", a)
    await router.on_connect("b", b)
    await router.on_connect("c", c)
    await router.on_join("a", "g1")
    await router.on_join("b", "g2")

    assert await router.route("g1") == [("a", a)]
    assert await router.route("g2") == [("b", b)]
    assert await router.route("g3") == []
    assert await router.connection_count() == 3


@pytest.mark.asyncio
async def test_latest_join_wins():
    router = SubscriptionRouter()
    await router.on_connect("a", FakeConnection())
    await router.on_join("a", "g1")
    await router.on_join("a", "g2")

    assert await router.subscription_of("a") == "g2"
    assert await router.subscriber_count("g1") == 0
    assert await router.subscriber_count("g2") == 1


@pytest.mark.asyncio
async def test_join_for_unknown_connection_is_refused():
    router = SubscriptionRouter()
    assert await router.on_join("ghost", "g1") is False
    assert await router.route("g1") == []


@pytest.mark.asyncio
async def test_disconnect_removes_connection():
    router = SubscriptionRouter()
    await router.on_connect("a", FakeConnection())
    await router.on_join("a", "g1")

    await router.on_disconnect("a")
    await router.on_disconnect("a")

    assert await router.route("g1") == []
    assert await router.subscription_of("a") is None
    assert await router.connection_count() == 0


@pytest.mark.asyncio
async def test_unjoined_connection_is_only_in_route_all():
    router = SubscriptionRouter()
    a, b = FakeConnection(), FakeConnection()
    await router.on_connect("a", a)
    await router.on_connect("b", b)
    await router.on_join("b", "g1")

    assert await router.subscription_of("a") is None
    assert sorted(cid for cid, _ in await router.route_all()) == ["a", "b"]


@pytest.mark.asyncio
async def test_route_result_is_a_snapshot():
    router = SubscriptionRouter()
    await router.on_connect("a", FakeConnection())
    await router.on_join("a", "g1")

    targets = await router.route("g1")
    await router.on_disconnect("a")

    assert [cid for cid, _ in targets] == ["a"]
    assert await router.route("g1") == []
