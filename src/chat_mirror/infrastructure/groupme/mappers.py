"""GroupMe-shaped JSON <-> domain entities.

The relay speaks the upstream shape end to end, so the same mappers decode
upstream responses, HTTP snapshots and pushed deltas.
"""
from __future__ import annotations

from typing import Any, Mapping

from chat_mirror.application.exceptions import MalformedPayloadError
from chat_mirror.domain.entities.conversation import Conversation, LastActivity, Member
from chat_mirror.domain.entities.message import Attachment, Message
from chat_mirror.domain.entities.user import UserIdentity


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise MalformedPayloadError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _require_id(data: Mapping[str, Any], key: str, what: str) -> str:
    value = data.get(key)
    if value is None or value == "":
        raise MalformedPayloadError(f"{what} is missing '{key}'")
    return str(value)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def _timestamp(data: Mapping[str, Any], key: str, what: str) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        raise MalformedPayloadError(f"{what} has a non-numeric '{key}'")
    if isinstance(value, float) and not value.is_integer():
        raise MalformedPayloadError(f"{what} has a fractional '{key}'")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MalformedPayloadError(f"{what} is missing a valid '{key}'") from None


def _loose_int(value: Any) -> int | None:
    """Best-effort integer for display metadata; never raises."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_attachment(data: Any) -> Attachment:
    data = _require_mapping(data, "attachment")
    return Attachment(
        type=str(data.get("type") or "unknown"),
        url=_optional_str(data.get("url")),
        preview_url=_optional_str(data.get("preview_url")),
        name=_optional_str(data.get("name")),
    )


def to_message(data: Any, group_id: str | None = None) -> Message:
    data = _require_mapping(data, "message")
    message_id = _require_id(data, "id", "message")
    created_at = _timestamp(data, "created_at", f"message {message_id}")
    resolved_group = data.get("group_id") or group_id
    if not resolved_group:
        raise MalformedPayloadError(f"message {message_id} is missing 'group_id'")
    return Message(
        id=message_id,
        group_id=str(resolved_group),
        source_guid=_optional_str(data.get("source_guid")),
        user_id=_optional_str(data.get("user_id")),
        name=str(data.get("name") or ""),
        text=_optional_str(data.get("text")),
        created_at=created_at,
        system=bool(data.get("system", False)),
        avatar_url=_optional_str(data.get("avatar_url")),
        attachments=tuple(to_attachment(a) for a in data.get("attachments") or ()),
        favorited_by=tuple(str(u) for u in data.get("favorited_by") or ()),
    )


def message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "source_guid": message.source_guid,
        "created_at": message.created_at,
        "user_id": message.user_id,
        "group_id": message.group_id,
        "name": message.name,
        "avatar_url": message.avatar_url,
        "text": message.text,
        "system": message.system,
        "favorited_by": list(message.favorited_by),
        "attachments": [attachment_to_dict(a) for a in message.attachments],
    }


def attachment_to_dict(attachment: Attachment) -> dict[str, Any]:
    data: dict[str, Any] = {"type": attachment.type}
    if attachment.url is not None:
        data["url"] = attachment.url
    if attachment.preview_url is not None:
        data["preview_url"] = attachment.preview_url
    if attachment.name is not None:
        data["name"] = attachment.name
    return data


def to_member(data: Any) -> Member:
    data = _require_mapping(data, "member")
    user_id = _require_id(data, "user_id", "member")
    return Member(
        id=str(data.get("id") or user_id),
        user_id=user_id,
        nickname=str(data.get("nickname") or ""),
        image_url=_optional_str(data.get("image_url")),
        muted=bool(data.get("muted", False)),
    )


def member_to_dict(member: Member) -> dict[str, Any]:
    return {
        "id": member.id,
        "user_id": member.user_id,
        "nickname": member.nickname,
        "image_url": member.image_url,
        "muted": member.muted,
    }


def _to_last_activity(data: Any) -> LastActivity:
    if not isinstance(data, Mapping):
        return LastActivity()
    preview = data.get("preview") if isinstance(data.get("preview"), Mapping) else {}
    return LastActivity(
        count=_loose_int(data.get("count")) or 0,
        last_message_id=_optional_str(data.get("last_message_id")),
        last_message_created_at=_loose_int(data.get("last_message_created_at")),
        preview_nickname=_optional_str(preview.get("nickname")),
        preview_text=_optional_str(preview.get("text")),
    )


def to_conversation(data: Any) -> Conversation:
    data = _require_mapping(data, "group")
    group_id = _require_id(data, "id", "group")
    return Conversation(
        id=group_id,
        name=str(data.get("name") or ""),
        description=_optional_str(data.get("description")),
        image_url=_optional_str(data.get("image_url")),
        creator_user_id=_optional_str(data.get("creator_user_id")),
        created_at=_loose_int(data.get("created_at")) or 0,
        updated_at=_loose_int(data.get("updated_at")) or 0,
        members=tuple(to_member(m) for m in data.get("members") or ()),
        last_activity=_to_last_activity(data.get("messages")),
    )


def conversation_to_dict(conversation: Conversation) -> dict[str, Any]:
    activity = conversation.last_activity
    return {
        "id": conversation.id,
        "name": conversation.name,
        "description": conversation.description,
        "image_url": conversation.image_url,
        "creator_user_id": conversation.creator_user_id,
        "created_at": conversation.created_at,
        "updated_at": conversation.updated_at,
        "members": [member_to_dict(m) for m in conversation.members],
        "messages": {
            "count": activity.count,
            "last_message_id": activity.last_message_id,
            "last_message_created_at": activity.last_message_created_at,
            "preview": {
                "nickname": activity.preview_nickname,
                "text": activity.preview_text,
            },
        },
    }


def to_user(data: Any) -> UserIdentity:
    data = _require_mapping(data, "user")
    return UserIdentity(
        id=_require_id(data, "id", "user"),
        name=str(data.get("name") or ""),
        email=_optional_str(data.get("email")),
        phone_number=_optional_str(data.get("phone_number")),
        image_url=_optional_str(data.get("image_url")),
        created_at=_loose_int(data.get("created_at")),
        updated_at=_loose_int(data.get("updated_at")),
    )


def user_to_dict(user: UserIdentity) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "phone_number": user.phone_number,
        "image_url": user.image_url,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }
