"""WebSocket frame models and the push event codec."""
from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from chat_mirror.application.exceptions import MalformedPayloadError
from chat_mirror.domain.events.group_created import GroupCreated
from chat_mirror.domain.events.member_joined import MemberJoined
from chat_mirror.domain.events.member_left import MemberLeft
from chat_mirror.domain.events.new_message import NewMessage
from chat_mirror.domain.events.unknown import UnknownEvent
from chat_mirror.domain.value_objects.enums import EventKind
from chat_mirror.infrastructure.groupme.mappers import (
    conversation_to_dict,
    member_to_dict,
    message_to_dict,
    to_conversation,
    to_member,
    to_message,
)


PushEvent = NewMessage | GroupCreated | MemberJoined | MemberLeft | UnknownEvent


class WsInbound(BaseModel):
    """Client → Server envelope."""

    type: str  # join_group | ping
    groupId: str | None = None


class JoinGroupFrame(BaseModel):
    type: Literal["join_group"] = "join_group"
    groupId: str = Field(min_length=1)


class WsOutbound(BaseModel):
    """Server → Client control frame."""

    type: str  # pong | heartbeat


def decode_client_frame(raw: str) -> WsInbound:
    try:
        return WsInbound.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise MalformedPayloadError(f"invalid client frame: {exc.error_count()} error(s)") from exc


def join_group_frame(group_id: str) -> str:
    return JoinGroupFrame(groupId=group_id).model_dump_json()


def encode_event(event: PushEvent) -> str:
    if event.kind == EventKind.NEW_MESSAGE:
        payload: dict[str, Any] = {
            "type": event.kind.value,
            "groupId": event.group_id,
            "message": message_to_dict(event.message),
        }
    elif event.kind == EventKind.GROUP_CREATED:
        payload = {"type": event.kind.value, "group": conversation_to_dict(event.group)}
    elif event.kind == EventKind.MEMBER_JOINED:
        payload = {
            "type": event.kind.value,
            "groupId": event.group_id,
            "member": member_to_dict(event.member),
        }
    elif event.kind == EventKind.MEMBER_LEFT:
        payload = {"type": event.kind.value, "groupId": event.group_id, "userId": event.user_id}
    else:
        payload = {**event.payload, "type": event.type}
    return json.dumps(payload)


def _group_id(data: dict[str, Any]) -> str:
    value = data.get("groupId")
    if not isinstance(value, str) or not value:
        raise MalformedPayloadError(f"{data.get('type')} frame is missing 'groupId'")
    return value


def decode_event(raw: str | bytes) -> PushEvent:
    """Parse a server → client frame.

    Raises ``MalformedPayloadError`` for non-JSON, non-object or incomplete
    frames. Unrecognised ``type`` values decode to ``UnknownEvent``.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedPayloadError("frame is not valid JSON") from exc
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise MalformedPayloadError("frame has no string 'type'")

    event_type = data["type"]
    if event_type == EventKind.NEW_MESSAGE:
        group_id = _group_id(data)
        return NewMessage(group_id=group_id, message=to_message(data.get("message"), group_id))
    if event_type == EventKind.GROUP_CREATED:
        return GroupCreated(group=to_conversation(data.get("group")))
    if event_type == EventKind.MEMBER_JOINED:
        return MemberJoined(group_id=_group_id(data), member=to_member(data.get("member")))
    if event_type == EventKind.MEMBER_LEFT:
        user_id = data.get("userId")
        if user_id in (None, ""):
            raise MalformedPayloadError("member_left frame is missing 'userId'")
        return MemberLeft(group_id=_group_id(data), user_id=str(user_id))

    payload = {k: v for k, v in data.items() if k != "type"}
    return UnknownEvent(type=event_type, payload=payload)
