"""Background polling: message snapshots, relay status and group refreshes."""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.application.exceptions import UpstreamError
from chat_mirror.application.ports.gateway import ChatGateway
from chat_mirror.client.merge_cache import MergeCache

logger = logging.getLogger(__name__)


class PeriodicTask(ABC):
    """Runs ``tick()`` immediately and then every ``interval`` seconds."""

    name = "periodic"

    def __init__(self, interval: float) -> None:
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    @abstractmethod
    async def tick(self) -> None: ...

    async def _loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except UpstreamError as exc:
                logger.warning("%s failed: %s", self.name, exc.detail)
            except Exception:
                logger.exception("%s loop error", self.name)
            await asyncio.sleep(self._interval)


class SnapshotPoller(PeriodicTask):
    """Feeds the newest page of one conversation into the merge cache."""

    def __init__(
        self,
        gateway: ChatGateway,
        cache: MergeCache,
        conversation_id: str,
        *,
        interval: float = 5.0,
        limit: int = 20,
    ) -> None:
        super().__init__(interval)
        self._gateway = gateway
        self._cache = cache
        self.conversation_id = conversation_id
        self._limit = limit
        self.name = f"snapshot-poller-{conversation_id}"

    async def tick(self) -> None:
        await self.poll_once()

    async def poll_once(self) -> int:
        if not self._cache.is_tracked(self.conversation_id):
            return 0
        messages = await self._gateway.fetch_messages(self.conversation_id, limit=self._limit)
        return self._cache.apply_snapshot(self.conversation_id, messages)


class StatusMonitor(PeriodicTask):
    """Keeps the latest upstream connectivity status for the UI indicator."""

    name = "status-monitor"

    def __init__(self, gateway: ChatGateway, *, interval: float = 10.0) -> None:
        super().__init__(interval)
        self._gateway = gateway
        self.last_status = StatusDTO(connected=False, message="unknown")

    async def tick(self) -> None:
        status = await self._gateway.check_status()
        if status.connected != self.last_status.connected:
            logger.info("Upstream connectivity: %s (%s)", status.connected, status.message)
        self.last_status = status


class RefreshTask(PeriodicTask):
    """Runs an async refresh callback on a fixed interval."""

    def __init__(
        self,
        name: str,
        refresh: Callable[[], Awaitable[object]],
        *,
        interval: float,
    ) -> None:
        super().__init__(interval)
        self.name = name
        self._refresh = refresh

    async def tick(self) -> None:
        await self._refresh()
