"""Client composition root: one bridge client, one shared cache, many viewports.

Besides message caches, the client keeps a view of the group list and each
group's roster. Pushed ``group_created`` / ``member_joined`` /
``member_left`` events update it at once; periodic refreshes (the whole list
every 30 s, open groups every 10 s) correct anything a missed event left
stale.
"""
from __future__ import annotations

import dataclasses
import logging

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.application.exceptions import UpstreamError
from chat_mirror.application.ports.gateway import ChatGateway
from chat_mirror.client.api_client import BridgeClient
from chat_mirror.client.merge_cache import MergeCache
from chat_mirror.client.poller import RefreshTask, StatusMonitor
from chat_mirror.client.transport import TransportFactory, websocket_transport_factory
from chat_mirror.client.viewport import ConversationViewport
from chat_mirror.config import settings
from chat_mirror.domain.entities.conversation import Conversation, Member
from chat_mirror.domain.value_objects.enums import EventKind
from chat_mirror.infrastructure.ws.protocol import PushEvent

logger = logging.getLogger(__name__)


class MirrorClient:
    def __init__(
        self,
        gateway: ChatGateway,
        transport_factory: TransportFactory,
        *,
        status_interval: float = settings.STATUS_POLL_INTERVAL,
        group_list_interval: float = settings.GROUP_LIST_POLL_INTERVAL,
        group_detail_interval: float = settings.GROUP_DETAIL_POLL_INTERVAL,
    ) -> None:
        self.gateway = gateway
        self.cache = MergeCache()
        self._transport_factory = transport_factory
        self._groups: dict[str, Conversation] = {}
        self._viewports: list[ConversationViewport] = []
        self._status = StatusMonitor(gateway, interval=status_interval)
        self._group_list_task = RefreshTask(
            "group-list-refresh", self.refresh, interval=group_list_interval,
        )
        self._group_detail_task = RefreshTask(
            "group-detail-refresh", self.refresh_open_groups, interval=group_detail_interval,
        )

    @classmethod
    def from_settings(cls) -> MirrorClient:
        return cls(
            BridgeClient.from_url(settings.BRIDGE_BASE_URL),
            websocket_transport_factory(settings.BRIDGE_WS_URL),
        )

    @property
    def status(self) -> StatusDTO:
        return self._status.last_status

    @property
    def viewports(self) -> tuple[ConversationViewport, ...]:
        return tuple(self._viewports)

    @property
    def groups(self) -> tuple[Conversation, ...]:
        return tuple(self._groups.values())

    def group(self, group_id: str) -> Conversation | None:
        return self._groups.get(group_id)

    def members(self, group_id: str) -> tuple[Member, ...]:
        group = self._groups.get(group_id)
        return group.members if group else ()

    async def start(self) -> None:
        await self._status.start()
        await self._group_list_task.start()
        await self._group_detail_task.start()

    async def list_groups(self) -> list[Conversation]:
        return await self.gateway.fetch_groups()

    async def open_viewport(self, conversation_id: str) -> ConversationViewport:
        viewport = ConversationViewport(
            conversation_id,
            gateway=self.gateway,
            cache=self.cache,
            transport_factory=self._transport_factory,
            on_group_event=self.apply_event,
        )
        await viewport.mount()
        self._viewports.append(viewport)
        return viewport

    async def close_viewport(self, viewport: ConversationViewport) -> None:
        await viewport.unmount()
        if viewport in self._viewports:
            self._viewports.remove(viewport)

    async def refresh(self) -> int:
        """Replace the group list and re-sync every mounted viewport."""
        groups = await self.gateway.fetch_groups()
        self._groups = {g.id: g for g in groups}
        logger.debug("Group list refreshed (%d group(s))", len(groups))
        return await self._sync_viewports(self._groups)

    async def refresh_open_groups(self) -> int:
        """Refetch details (roster, last activity) of every group with a viewport."""
        fresh: dict[str, Conversation] = {}
        for group_id in dict.fromkeys(v.conversation_id for v in tuple(self._viewports)):
            try:
                fresh[group_id] = await self.gateway.fetch_group(group_id)
            except UpstreamError as exc:
                logger.warning("Refreshing group %s failed: %s", group_id, exc.detail)
        self._groups.update(fresh)
        return await self._sync_viewports(fresh)

    async def _sync_viewports(self, groups: dict[str, Conversation]) -> int:
        added = 0
        for viewport in tuple(self._viewports):
            group = groups.get(viewport.conversation_id)
            if group is not None:
                added += await viewport.sync(group)
        return added

    def apply_event(self, event: PushEvent) -> None:
        """Fold a pushed group or membership event into the group view.

        Every viewport forwards what it receives, so one event may arrive
        several times; applying it again changes nothing.
        """
        if event.kind == EventKind.GROUP_CREATED:
            if event.group_id not in self._groups:
                self._groups = {event.group_id: event.group, **self._groups}
                logger.info("Group %s added to the list", event.group_id)
            return

        group = self._groups.get(event.group_id or "")
        if group is None:
            logger.debug("%s for unknown group %s ignored", event.kind, event.group_id)
            return

        if event.kind == EventKind.MEMBER_JOINED:
            if any(m.user_id == event.member.user_id for m in group.members):
                return
            members = group.members + (event.member,)
        elif event.kind == EventKind.MEMBER_LEFT:
            members = tuple(m for m in group.members if m.user_id != event.user_id)
            if len(members) == len(group.members):
                return
        else:
            return
        self._groups[group.id] = dataclasses.replace(group, members=members)
        logger.info("Roster of group %s now has %d member(s)", group.id, len(members))

    async def aclose(self) -> None:
        await self._group_detail_task.stop()
        await self._group_list_task.stop()
        for viewport in list(self._viewports):
            await self.close_viewport(viewport)
        await self._status.stop()
        aclose = getattr(self.gateway, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Mirror client closed")
