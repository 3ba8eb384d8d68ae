from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Attachment:
    type: str
    url: str | None = None
    preview_url: str | None = None
    name: str | None = None


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    group_id: str
    source_guid: str | None
    user_id: str | None
    name: str
    text: str | None
    created_at: int  # epoch seconds, as delivered upstream
    system: bool = False
    avatar_url: str | None = None
    attachments: tuple[Attachment, ...] = ()
    favorited_by: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple[int, str]:
        return self.created_at, self.id
