"""Push transport abstraction and its websockets implementation."""
from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from chat_mirror.application.exceptions import TransportError

logger = logging.getLogger(__name__)


class PushTransport(Protocol):
    """One open bidirectional text channel.

    Iteration yields inbound frames and ends when the channel closes.
    """

    async def send(self, data: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str]: ...


TransportFactory = Callable[[], Awaitable[PushTransport]]


class WebSocketTransport:
    def __init__(self, connection: websockets.ClientConnection) -> None:
        self._connection = connection

    @classmethod
    async def open(cls, url: str, *, open_timeout: float = 10.0) -> WebSocketTransport:
        try:
            connection = await websockets.connect(url, open_timeout=open_timeout)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise TransportError(f"could not open {url}: {exc}") from exc
        return cls(connection)

    async def send(self, data: str) -> None:
        try:
            await self._connection.send(data)
        except (ConnectionClosed, OSError) as exc:
            raise TransportError(f"send failed: {exc}") from exc

    async def close(self) -> None:
        await self._connection.close()

    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for frame in self._connection:
                yield frame if isinstance(frame, str) else frame.decode("utf-8", "replace")
        except ConnectionClosed as exc:
            logger.debug("WebSocket closed: %s", exc)


def websocket_transport_factory(url: str) -> TransportFactory:
    async def _open() -> PushTransport:
        return await WebSocketTransport.open(url)

    return _open
