from __future__ import annotations

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
    text: str = Field(min_length=1)
    source_guid: str = Field(min_length=1)


class AttachmentResponse(BaseModel):
    type: str
    url: str | None = None
    preview_url: str | None = None
    name: str | None = None


class MessageResponse(BaseModel):
    id: str
    source_guid: str | None
    created_at: int
    user_id: str | None
    group_id: str
    name: str
    avatar_url: str | None
    text: str | None
    system: bool
    favorited_by: list[str]
    attachments: list[AttachmentResponse]
