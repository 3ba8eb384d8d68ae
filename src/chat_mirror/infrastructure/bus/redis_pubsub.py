"""Redis Pub/Sub fan-out of push events across relay processes.

Every relay process publishes its write events to one channel and delivers
whatever arrives on that channel to its own local connections.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from chat_mirror.application.exceptions import MalformedPayloadError
from chat_mirror.infrastructure.ws.protocol import PushEvent, decode_event

logger = logging.getLogger(__name__)

DeliverCallback = Callable[[PushEvent], Awaitable[Any]]

RESUBSCRIBE_BASE_DELAY = 0.5
RESUBSCRIBE_MAX_DELAY = 15.0


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher over ``PUBLISH``."""

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, payload: str) -> None:
        receivers = await self._redis.publish(channel, payload)
        logger.debug("Published fan-out frame to %s (%s receiver(s))", channel, receivers)


class RedisPubSubSubscriber:
    """Feeds frames from the fan-out channel into a local delivery callback.

    Any failure of the subscription (lost connection, timeout, server error)
    is logged and retried with capped exponential backoff; the relay keeps
    serving HTTP meanwhile.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        deliver: DeliverCallback,
        *,
        base_delay: float = RESUBSCRIBE_BASE_DELAY,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._deliver = deliver
        self._base_delay = base_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"fanout-{self._channel}")
        logger.info("Fan-out subscriber listening on %s", self._channel)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Fan-out subscriber on %s stopped", self._channel)

    async def handle(self, raw: str | bytes) -> None:
        """Decode one channel frame and deliver it locally."""
        try:
            event = decode_event(raw)
        except MalformedPayloadError as exc:
            logger.warning("Dropping malformed fan-out frame: %s", exc.detail)
            return
        await self._deliver(event)

    def _backoff(self, failures: int) -> float:
        return min(self._base_delay * (2 ** failures), RESUBSCRIBE_MAX_DELAY)

    async def _run(self) -> None:
        failures = 0
        while True:
            try:
                await self._consume()
                failures = 0
                logger.info("Fan-out channel %s closed; resubscribing", self._channel)
                await asyncio.sleep(self._base_delay)
                continue
            except asyncio.CancelledError:
                raise
            except RedisError as exc:
                logger.warning("Fan-out channel %s lost: %s", self._channel, exc)
            except Exception:
                logger.exception("Fan-out subscriber on %s failed", self._channel)
            delay = self._backoff(failures)
            failures += 1
            logger.info("Resubscribing to %s in %.1fs", self._channel, delay)
            await asyncio.sleep(delay)

    async def _consume(self) -> None:
        pubsub = self._redis.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(self._channel)
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    await self.handle(message["data"])
                except Exception:
                    logger.exception("Fan-out delivery failed on %s", self._channel)
        finally:
            await pubsub.aclose()
