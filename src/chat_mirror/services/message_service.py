from __future__ import annotations

import logging

from chat_mirror.application.exceptions import (
    UpstreamError,
    UpstreamWriteFailure,
    ValidationError,
)
from chat_mirror.application.ports.gateway import ChatGateway
from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.events.new_message import NewMessage
from chat_mirror.infrastructure.ws.emitter import BroadcastEmitter

logger = logging.getLogger(__name__)


async def send_message(
    group_id: str,
    text: str,
    source_guid: str,
    gateway: ChatGateway,
    emitter: BroadcastEmitter,
) -> Message:
    """Post a message upstream and broadcast its canonical echo.

    Upstream failures surface as ``UpstreamWriteFailure`` and are not
    retried here: without a stable origin token a retry could duplicate
    the message. The broadcast is scheduled, never awaited.
    """
    if not text.strip():
        raise ValidationError("Text is required")
    if not source_guid:
        raise ValidationError("source_guid is required")

    try:
        msg = await gateway.post_message(group_id, text, source_guid)
    except UpstreamError as exc:
        logger.warning("Posting to group %s failed: %s", group_id, exc.detail)
        raise UpstreamWriteFailure(exc.detail, status_code=exc.status_code) from exc

    logger.info("Message sent to group %s (id=%s, source_guid=%s)", group_id, msg.id, source_guid)
    emitter.emit(NewMessage(group_id=group_id, message=msg))
    return msg


async def list_messages(
    group_id: str,
    before_id: str | None,
    limit: int,
    gateway: ChatGateway,
) -> list[Message]:
    messages = await gateway.fetch_messages(group_id, before_id=before_id, limit=limit)
    logger.debug("Fetched %d message(s) for group %s", len(messages), group_id)
    return messages
