"""Connection registry and per-conversation subscription routing."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from chat_mirror.application.ports.connection import Connection

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    handle: Connection
    conversation_id: str | None = None


class SubscriptionRouter:
    """Tracks live connections and the single conversation each one watches.

    All access is serialized through one asyncio lock. ``route`` returns a
    snapshot list, so callers may await sends while connections come and go.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[str, _Entry] = {}

    async def on_connect(self, connection_id: str, handle: Connection) -> None:
        async with self._lock:
            self._entries[connection_id] = _Entry(handle=handle)
            total = len(self._entries)
        logger.info("Client connected: %s (total=%d)", connection_id, total)

    async def on_join(self, connection_id: str, conversation_id: str) -> bool:
        """Point a connection at a conversation; the latest join wins.

        Returns False if the connection is not registered.
        """
        async with self._lock:
            entry = self._entries.get(connection_id)
            if entry is None:
                return False
            previous = entry.conversation_id
            entry.conversation_id = conversation_id
        if previous and previous != conversation_id:
            logger.info(
                "Client %s moved from group %s to %s", connection_id, previous, conversation_id,
            )
        else:
            logger.info("Client %s subscribed to group %s", connection_id, conversation_id)
        return True

    async def on_disconnect(self, connection_id: str) -> None:
        async with self._lock:
            removed = self._entries.pop(connection_id, None)
            total = len(self._entries)
        if removed is not None:
            logger.info("Client disconnected: %s (total=%d)", connection_id, total)

    async def route(self, conversation_id: str) -> list[tuple[str, Connection]]:
        async with self._lock:
            return [
                (cid, entry.handle)
                for cid, entry in self._entries.items()
                if entry.conversation_id == conversation_id
            ]

    async def route_all(self) -> list[tuple[str, Connection]]:
        async with self._lock:
            return [(cid, entry.handle) for cid, entry in self._entries.items()]

    async def subscription_of(self, connection_id: str) -> str | None:
        async with self._lock:
            entry = self._entries.get(connection_id)
            return entry.conversation_id if entry else None

    async def subscriber_count(self, conversation_id: str) -> int:
        return len(await self.route(conversation_id))

    async def connection_count(self) -> int:
        async with self._lock:
            return len(self._entries)
