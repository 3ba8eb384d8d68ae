from __future__ import annotations

import logging
import uuid

from chat_mirror.application.exceptions import NotFoundError, UpstreamError, ValidationError
from chat_mirror.application.ports.gateway import ChatGateway, GroupAdminGateway
from chat_mirror.domain.entities.conversation import Conversation, Member
from chat_mirror.domain.events.group_created import GroupCreated
from chat_mirror.domain.events.member_joined import MemberJoined
from chat_mirror.domain.events.member_left import MemberLeft
from chat_mirror.infrastructure.ws.emitter import BroadcastEmitter

logger = logging.getLogger(__name__)


async def list_groups(gateway: ChatGateway) -> list[Conversation]:
    groups = await gateway.fetch_groups()
    logger.debug("Fetched %d group(s)", len(groups))
    return groups


async def get_group(group_id: str, gateway: ChatGateway) -> Conversation:
    try:
        return await gateway.fetch_group(group_id)
    except UpstreamError as exc:
        if exc.status_code == 404:
            raise NotFoundError(f"Group {group_id} not found") from exc
        raise


async def create_group(
    name: str,
    description: str | None,
    share: bool,
    gateway: GroupAdminGateway,
    emitter: BroadcastEmitter,
) -> Conversation:
    if not name.strip():
        raise ValidationError("Group name is required")
    group = await gateway.create_group(name, description=description, share=share)
    logger.info("Group %s created (%s)", group.id, group.name)
    emitter.emit(GroupCreated(group=group))
    return group


async def add_member(
    group_id: str,
    user_id: str,
    nickname: str,
    gateway: GroupAdminGateway,
    emitter: BroadcastEmitter,
) -> Member:
    if not user_id or not nickname.strip():
        raise ValidationError("user_id and nickname are required")
    member = await gateway.add_member(group_id, user_id, nickname, guid=uuid.uuid4().hex)
    emitter.emit(MemberJoined(group_id=group_id, member=member))
    return member


async def remove_member(
    group_id: str,
    membership_id: str,
    gateway: GroupAdminGateway,
    emitter: BroadcastEmitter,
) -> None:
    """Remove a membership and broadcast which user left.

    The membership id is resolved to a user id from the current roster
    before the removal call, since the upstream reply carries neither.
    """
    group = await get_group(group_id, gateway)
    member = group.find_member(membership_id)
    if member is None:
        raise NotFoundError(f"Membership {membership_id} not found in group {group_id}")

    await gateway.remove_member(group_id, membership_id)
    logger.info("User %s removed from group %s", member.user_id, group_id)
    emitter.emit(MemberLeft(group_id=group_id, user_id=member.user_id))
