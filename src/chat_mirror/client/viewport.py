"""One UI viewport onto one conversation.

Owns a ``ConnectionSession`` and a ``SnapshotPoller`` and holds a reference
on the shared ``MergeCache`` entry while mounted.
"""
from __future__ import annotations

import logging
from typing import Callable, Sequence

from chat_mirror.application.ports.gateway import ChatGateway
from chat_mirror.client.api_client import new_source_guid
from chat_mirror.client.merge_cache import MergeCache
from chat_mirror.client.poller import SnapshotPoller
from chat_mirror.client.session import ConnectionSession
from chat_mirror.client.transport import TransportFactory
from chat_mirror.config import settings
from chat_mirror.domain.entities.conversation import Conversation
from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.value_objects.enums import EventKind, SessionState
from chat_mirror.infrastructure.ws.protocol import PushEvent

logger = logging.getLogger(__name__)

GroupEventCallback = Callable[[PushEvent], None]


class ConversationViewport:
    def __init__(
        self,
        conversation_id: str,
        *,
        gateway: ChatGateway,
        cache: MergeCache,
        transport_factory: TransportFactory,
        poll_interval: float = settings.MESSAGE_POLL_INTERVAL,
        page_limit: int = settings.MESSAGE_PAGE_LIMIT,
        base_delay: float = settings.RECONNECT_BASE_DELAY,
        max_retries: int = settings.RECONNECT_MAX_RETRIES,
        max_delay_factor: int = settings.RECONNECT_MAX_DELAY_FACTOR,
        on_group_event: GroupEventCallback | None = None,
    ) -> None:
        self._conversation_id = conversation_id
        self._gateway = gateway
        self._cache = cache
        self._poll_interval = poll_interval
        self._page_limit = page_limit
        self._mounted = False
        self._on_group_event = on_group_event
        self.session = ConnectionSession(
            transport_factory,
            conversation_id=conversation_id,
            on_event=self._on_event,
            base_delay=base_delay,
            max_retries=max_retries,
            max_delay_factor=max_delay_factor,
        )
        self._poller = self._make_poller(conversation_id)

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def messages(self) -> Sequence[Message]:
        return self._cache.view(self._conversation_id)

    @property
    def connected(self) -> bool:
        return self.session.state is SessionState.OPEN

    @property
    def polling(self) -> bool:
        return self._poller.running

    def _make_poller(self, conversation_id: str) -> SnapshotPoller:
        return SnapshotPoller(
            self._gateway,
            self._cache,
            conversation_id,
            interval=self._poll_interval,
            limit=self._page_limit,
        )

    async def mount(self) -> None:
        if self._mounted:
            return
        self._cache.acquire(self._conversation_id)
        self._mounted = True
        await self.session.connect()
        await self._poller.start()
        logger.info("Viewport mounted on conversation %s", self._conversation_id)

    async def unmount(self) -> None:
        if not self._mounted:
            return
        self._mounted = False
        await self._poller.stop()
        await self.session.disconnect()
        self._cache.release(self._conversation_id)
        logger.info("Viewport unmounted from conversation %s", self._conversation_id)

    async def switch_to(self, conversation_id: str) -> None:
        """Point this viewport at another conversation, reusing the session."""
        if conversation_id == self._conversation_id:
            return
        if not self._mounted:
            self._conversation_id = conversation_id
            self._poller = self._make_poller(conversation_id)
            await self.session.set_conversation(conversation_id)
            return

        await self._poller.stop()
        previous = self._conversation_id
        self._cache.acquire(conversation_id)
        self._conversation_id = conversation_id
        await self.session.set_conversation(conversation_id)
        self._cache.release(previous)
        self._poller = self._make_poller(conversation_id)
        await self._poller.start()
        logger.info("Viewport switched from %s to %s", previous, conversation_id)

    async def send(self, text: str) -> Message:
        """Post through the gateway and merge the canonical echo at once.

        ``UpstreamWriteFailure`` propagates to the caller unchanged.
        """
        message = await self._gateway.post_message(
            self._conversation_id, text, new_source_guid(),
        )
        self._cache.apply_delta(self._conversation_id, message)
        return message

    async def load_older(self, limit: int | None = None) -> int:
        """Fetch the page before the oldest held message."""
        oldest = self.messages[0] if self.messages else None
        page = await self._gateway.fetch_messages(
            self._conversation_id,
            before_id=oldest.id if oldest else None,
            limit=limit or self._page_limit,
        )
        return self._cache.apply_snapshot(self._conversation_id, page)

    async def sync(self, conversation: Conversation) -> int:
        """Poll now unless the conversation's last activity is already held."""
        if conversation.id != self._conversation_id or not self._mounted:
            return 0
        if self._cache.is_caught_up(conversation.id, conversation.last_activity):
            return 0
        return await self._poller.poll_once()

    def _on_event(self, event: PushEvent) -> None:
        if event.kind == EventKind.NEW_MESSAGE:
            if event.group_id != self._conversation_id:
                logger.debug("Ignoring message for %s", event.group_id)
                return
            self._cache.apply_delta(event.group_id, event.message)
        elif event.kind in (EventKind.MEMBER_JOINED, EventKind.MEMBER_LEFT, EventKind.GROUP_CREATED):
            logger.info("Group event %s for %s", event.kind, event.group_id)
            if self._on_group_event is not None:
                self._on_group_event(event)
        else:
            logger.debug("Ignoring unknown event type %r", event.type)
