"""Client-side push connection with an explicit reconnect state machine.

States::

    DISCONNECTED -> CONNECTING -> OPEN -> CLOSING -> DISCONNECTED
    DISCONNECTED -> FAILED            (retries exhausted)
    FAILED       -> CONNECTING        (manual connect())

A closure the owner did not request schedules a retry after
``base_delay * 2 ** retry_count`` seconds, capped at
``base_delay * max_delay_factor``. ``retry_count`` grows only when a
scheduled retry actually fires and resets once a transport opens.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Callable

from chat_mirror.application.exceptions import (
    ExhaustedRetriesError,
    MalformedPayloadError,
    TransportError,
)
from chat_mirror.client.transport import PushTransport, TransportFactory
from chat_mirror.domain.value_objects.enums import SessionState
from chat_mirror.infrastructure.ws.protocol import PushEvent, decode_event, join_group_frame

logger = logging.getLogger(__name__)

EventCallback = Callable[[PushEvent], None]

EVENT_BUFFER_SIZE = 256

_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.DISCONNECTED: frozenset({SessionState.CONNECTING, SessionState.FAILED}),
    SessionState.CONNECTING: frozenset(
        {SessionState.OPEN, SessionState.CLOSING, SessionState.DISCONNECTED}
    ),
    SessionState.OPEN: frozenset({SessionState.CLOSING, SessionState.DISCONNECTED}),
    SessionState.CLOSING: frozenset({SessionState.DISCONNECTED}),
    SessionState.FAILED: frozenset({SessionState.CONNECTING}),
}


class IllegalTransitionError(RuntimeError):
    pass


class ConnectionSession:
    def __init__(
        self,
        transport_factory: TransportFactory,
        *,
        conversation_id: str | None = None,
        on_event: EventCallback | None = None,
        base_delay: float = 1.0,
        max_retries: int = 5,
        max_delay_factor: int = 32,
    ) -> None:
        self._transport_factory = transport_factory
        self._conversation_id = conversation_id
        self._on_event = on_event
        self._base_delay = base_delay
        self._max_retries = max_retries
        self._max_delay_factor = max_delay_factor

        self._state = SessionState.DISCONNECTED
        self._retry_count = 0
        self._retry_handle: asyncio.TimerHandle | None = None
        self._owner_closed = False
        self._transport: PushTransport | None = None
        self._task: asyncio.Task[None] | None = None
        self._listeners: set[asyncio.Queue[PushEvent]] = set()
        self.last_error: TransportError | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.OPEN

    def backoff_delay(self, retry_count: int) -> float:
        factor = min(2 ** retry_count, self._max_delay_factor)
        return self._base_delay * factor

    # -- public contract ---------------------------------------------------

    async def connect(self) -> None:
        if self._state in (SessionState.CONNECTING, SessionState.OPEN):
            return
        if self._state is SessionState.CLOSING:
            logger.debug("connect() ignored while closing")
            return
        if self._state is SessionState.FAILED:
            self._retry_count = 0
        self._owner_closed = False
        self._cancel_retry()
        self._open()

    async def disconnect(self) -> None:
        """Tear down for good: no retry follows this closure."""
        self._owner_closed = True
        self._cancel_retry()

        task = self._task
        if self._state in (SessionState.CONNECTING, SessionState.OPEN):
            self._transition(SessionState.CLOSING)
            if self._transport is not None:
                try:
                    await self._transport.close()
                except Exception as exc:
                    logger.debug("Error while closing transport: %s", exc)
            elif task is not None:
                task.cancel()

        if task is not None and task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._state is SessionState.CLOSING:
            self._transition(SessionState.DISCONNECTED)
        self._task = None
        logger.info("Session closed by owner (conversation=%s)", self._conversation_id)

    async def set_conversation(self, conversation_id: str | None) -> None:
        self._conversation_id = conversation_id
        if self._state is SessionState.OPEN and conversation_id:
            await self._send_join()

    async def events(self, maxsize: int = EVENT_BUFFER_SIZE) -> AsyncIterator[PushEvent]:
        """Yield inbound events received while the iterator is active.

        At most ``maxsize`` unread events are buffered; a slow reader loses
        the oldest ones first.
        """
        queue: asyncio.Queue[PushEvent] = asyncio.Queue(maxsize)
        self._listeners.add(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._listeners.discard(queue)

    # -- transitions -------------------------------------------------------

    def _transition(self, new: SessionState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise IllegalTransitionError(f"{self._state} -> {new}")
        logger.debug("Session %s -> %s", self._state, new)
        self._state = new

    def _open(self) -> None:
        self._transition(SessionState.CONNECTING)
        logger.info(
            "Connecting (conversation=%s, attempt=%d)",
            self._conversation_id,
            self._retry_count + 1,
        )
        self._task = asyncio.create_task(self._run(), name="push-session")

    def _on_established(self, transport: PushTransport) -> None:
        self._transport = transport
        self._transition(SessionState.OPEN)
        self._retry_count = 0
        self._cancel_retry()
        self.last_error = None
        logger.info("Connection established (conversation=%s)", self._conversation_id)

    def _on_closed(self) -> None:
        self._transport = None
        self._task = None
        if self._state in (SessionState.DISCONNECTED, SessionState.FAILED):
            return
        self._transition(SessionState.DISCONNECTED)

        if self._owner_closed:
            return
        if self._retry_count >= self._max_retries:
            self._transition(SessionState.FAILED)
            self.last_error = ExhaustedRetriesError(
                f"gave up after {self._retry_count} reconnect attempt(s)"
            )
            logger.error(
                "Max reconnection attempts reached (conversation=%s)", self._conversation_id,
            )
            return

        delay = self.backoff_delay(self._retry_count)
        logger.info(
            "Reconnecting (attempt %d) in %.2fs", self._retry_count + 1, delay,
        )
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._fire_retry)

    def _fire_retry(self) -> None:
        self._retry_handle = None
        if self._owner_closed or self._state is not SessionState.DISCONNECTED:
            return
        self._retry_count += 1
        self._open()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    # -- I/O ---------------------------------------------------------------

    async def _run(self) -> None:
        transport: PushTransport | None = None
        try:
            transport = await self._transport_factory()
            if self._state is not SessionState.CONNECTING:
                return
            self._on_established(transport)
            if self._conversation_id:
                await self._send_join()
            async for raw in transport:
                self._dispatch(raw)
        except asyncio.CancelledError:
            pass
        except TransportError as exc:
            self.last_error = exc
            logger.warning("Transport error: %s", exc.detail)
        except Exception as exc:
            self.last_error = TransportError(str(exc))
            logger.warning("Transport failed: %s", exc)
        finally:
            if transport is not None:
                with contextlib.suppress(Exception):
                    await transport.close()
            self._on_closed()

    async def _send_join(self) -> None:
        transport = self._transport
        if transport is None or self._conversation_id is None:
            return
        logger.info("Sending join_group for %s", self._conversation_id)
        try:
            await transport.send(join_group_frame(self._conversation_id))
        except TransportError as exc:
            logger.warning("join_group not delivered: %s", exc.detail)

    def _dispatch(self, raw: str) -> None:
        try:
            event = decode_event(raw)
        except MalformedPayloadError as exc:
            logger.warning("Dropping malformed push frame: %s", exc.detail)
            return
        if self._on_event is not None:
            try:
                self._on_event(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.kind)
        for queue in self._listeners:
            if queue.full():
                queue.get_nowait()
                logger.warning("Event listener is behind; dropped oldest event")
            queue.put_nowait(event)
