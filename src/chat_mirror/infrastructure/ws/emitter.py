"""Fire-and-forget fan-out of push events to subscribed connections."""
from __future__ import annotations

import asyncio
import logging

from chat_mirror.application.exceptions import RouteMissError
from chat_mirror.application.ports.bus import EventPublisher
from chat_mirror.application.ports.connection import Connection
from chat_mirror.domain.value_objects.enums import EventKind
from chat_mirror.infrastructure.ws.protocol import PushEvent, encode_event
from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter

logger = logging.getLogger(__name__)


class BroadcastEmitter:
    """Builds frames for write-path events and hands them to the router.

    With a publisher bound, events go out over the bus first and every
    process delivers them locally from its subscriber callback.
    """

    def __init__(
        self,
        subscriptions: SubscriptionRouter,
        *,
        group_created_to_all: bool = True,
    ) -> None:
        self._subscriptions = subscriptions
        self._group_created_to_all = group_created_to_all
        self._publisher: EventPublisher | None = None
        self._channel: str | None = None
        self._pending: set[asyncio.Task[None]] = set()

    def bind_publisher(self, publisher: EventPublisher, channel: str) -> None:
        self._publisher = publisher
        self._channel = channel

    def emit(self, event: PushEvent) -> asyncio.Task[None]:
        """Schedule delivery and return immediately."""
        task = asyncio.create_task(self._dispatch(event), name=f"broadcast-{event.kind}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled broadcast to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _dispatch(self, event: PushEvent) -> None:
        try:
            if self._publisher is not None and self._channel is not None:
                await self._publisher.publish(self._channel, encode_event(event))
            else:
                await self.deliver(event)
        except Exception:
            logger.exception("Broadcast of %s failed", event.kind)

    async def _targets(self, event: PushEvent) -> list[tuple[str, Connection]]:
        if event.kind == EventKind.GROUP_CREATED and self._group_created_to_all:
            return await self._subscriptions.route_all()
        group_id = event.group_id
        if not group_id:
            return []
        return await self._subscriptions.route(group_id)

    async def deliver(self, event: PushEvent) -> int:
        """Send ``event`` to each matching local connection.

        Returns the number of successful sends. A failed send is logged as a
        route miss and does not stop delivery to the others.
        """
        targets = await self._targets(event)
        raw = encode_event(event)
        delivered = 0
        for connection_id, handle in targets:
            try:
                await handle.send_text(raw)
            except Exception as exc:
                miss = RouteMissError(f"connection {connection_id} unavailable: {exc}")
                logger.warning("Route miss for %s: %s", event.kind, miss.detail)
                continue
            delivered += 1
        logger.debug("Delivered %s to %d/%d connection(s)", event.kind, delivered, len(targets))
        return delivered
