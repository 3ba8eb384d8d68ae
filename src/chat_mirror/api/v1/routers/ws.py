from __future__ import annotations

import asyncio
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chat_mirror.application.exceptions import MalformedPayloadError
from chat_mirror.config import settings
from chat_mirror.domain.value_objects.enums import ClientFrameType
from chat_mirror.infrastructure.ws.protocol import WsOutbound, decode_client_frame
from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def ws_relay(websocket: WebSocket) -> None:
    subscriptions: SubscriptionRouter = websocket.app.state.subscriptions

    await websocket.accept()
    connection_id = uuid.uuid4().hex[:12]
    await subscriptions.on_connect(connection_id, websocket)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{connection_id}",
    )
    try:
        await _read_loop(websocket, connection_id, subscriptions)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", connection_id)
    finally:
        heartbeat_task.cancel()
        await subscriptions.on_disconnect(connection_id)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(WsOutbound(type="heartbeat").model_dump_json())
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


async def _read_loop(
    ws: WebSocket,
    connection_id: str,
    subscriptions: SubscriptionRouter,
) -> None:
    while True:
        message = await ws.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000))
        raw = message.get("text")
        if raw is None:
            logger.warning("Non-text frame from %s dropped", connection_id)
            continue
        try:
            frame = decode_client_frame(raw)
        except MalformedPayloadError as exc:
            logger.warning("Malformed frame from %s dropped: %s", connection_id, exc.detail)
            continue

        if frame.type == ClientFrameType.JOIN_GROUP:
            if not frame.groupId:
                logger.warning("join_group from %s without groupId", connection_id)
                continue
            await subscriptions.on_join(connection_id, frame.groupId)

        elif frame.type == ClientFrameType.PING:
            await ws.send_text(WsOutbound(type="pong").model_dump_json())

        else:
            logger.debug("Ignoring %r frame from %s", frame.type, connection_id)
