from __future__ import annotations

from enum import StrEnum


class SessionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    FAILED = "failed"


class EventKind(StrEnum):
    """Server → client push event tags."""

    NEW_MESSAGE = "new_message"
    GROUP_CREATED = "group_created"
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    UNKNOWN = "unknown"


class ClientFrameType(StrEnum):
    """Client → server frame tags."""

    JOIN_GROUP = "join_group"
    PING = "ping"
