from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Member:
    id: str  # membership id, distinct from user_id
    user_id: str
    nickname: str
    image_url: str | None = None
    muted: bool = False


@dataclass(frozen=True, slots=True)
class LastActivity:
    """Pointer to the newest message of a conversation."""

    count: int = 0
    last_message_id: str | None = None
    last_message_created_at: int | None = None
    preview_nickname: str | None = None
    preview_text: str | None = None


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    name: str
    description: str | None
    image_url: str | None
    creator_user_id: str | None
    created_at: int
    updated_at: int
    members: tuple[Member, ...] = ()
    last_activity: LastActivity = LastActivity()

    def find_member(self, membership_id: str) -> Member | None:
        for member in self.members:
            if member.id == membership_id:
                return member
        return None
