from __future__ import annotations

from fastapi import APIRouter, Query

from chat_mirror.api.deps import EmitterDep, GatewayDep
from chat_mirror.api.v1.schemas.message import MessageResponse, SendMessageRequest
from chat_mirror.infrastructure.groupme.mappers import message_to_dict
from chat_mirror.services import message_service

router = APIRouter(prefix="/api/v1/groups", tags=["messages"])


@router.get("/{group_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    group_id: str,
    gateway: GatewayDep,
    before_id: str | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
) -> list[MessageResponse]:
    messages = await message_service.list_messages(group_id, before_id, limit, gateway)
    return [MessageResponse.model_validate(message_to_dict(m)) for m in messages]


@router.post("/{group_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    group_id: str,
    body: SendMessageRequest,
    gateway: GatewayDep,
    emitter: EmitterDep,
) -> MessageResponse:
    msg = await message_service.send_message(
        group_id, body.text, body.source_guid, gateway, emitter,
    )
    return MessageResponse.model_validate(message_to_dict(msg))
