from __future__ import annotations

from fastapi import APIRouter

from chat_mirror.api.deps import EmitterDep, GatewayDep
from chat_mirror.api.v1.schemas.conversation import (
    AddMemberRequest,
    ConversationResponse,
    CreateGroupRequest,
    MemberResponse,
)
from chat_mirror.infrastructure.groupme.mappers import conversation_to_dict, member_to_dict
from chat_mirror.services import group_service

router = APIRouter(prefix="/api/v1/groups", tags=["groups"])


@router.get("", response_model=list[ConversationResponse])
async def list_groups(gateway: GatewayDep) -> list[ConversationResponse]:
    groups = await group_service.list_groups(gateway)
    return [ConversationResponse.model_validate(conversation_to_dict(g)) for g in groups]


@router.post("", response_model=ConversationResponse, status_code=201)
async def create_group(
    body: CreateGroupRequest,
    gateway: GatewayDep,
    emitter: EmitterDep,
) -> ConversationResponse:
    group = await group_service.create_group(
        body.name, body.description, body.share, gateway, emitter,
    )
    return ConversationResponse.model_validate(conversation_to_dict(group))


@router.get("/{group_id}", response_model=ConversationResponse)
async def get_group(group_id: str, gateway: GatewayDep) -> ConversationResponse:
    group = await group_service.get_group(group_id, gateway)
    return ConversationResponse.model_validate(conversation_to_dict(group))


@router.post("/{group_id}/members", response_model=MemberResponse, status_code=202)
async def add_member(
    group_id: str,
    body: AddMemberRequest,
    gateway: GatewayDep,
    emitter: EmitterDep,
) -> MemberResponse:
    member = await group_service.add_member(
        group_id, body.user_id, body.nickname, gateway, emitter,
    )
    return MemberResponse.model_validate(member_to_dict(member))


@router.delete("/{group_id}/members/{membership_id}", status_code=204)
async def remove_member(
    group_id: str,
    membership_id: str,
    gateway: GatewayDep,
    emitter: EmitterDep,
) -> None:
    await group_service.remove_member(group_id, membership_id, gateway, emitter)
