from __future__ import annotations

from pydantic import BaseModel, Field


class MemberResponse(BaseModel):
    id: str
    user_id: str
    nickname: str
    image_url: str | None
    muted: bool


class PreviewResponse(BaseModel):
    nickname: str | None = None
    text: str | None = None


class ActivityResponse(BaseModel):
    count: int
    last_message_id: str | None
    last_message_created_at: int | None
    preview: PreviewResponse


class ConversationResponse(BaseModel):
    id: str
    name: str
    description: str | None
    image_url: str | None
    creator_user_id: str | None
    created_at: int
    updated_at: int
    members: list[MemberResponse]
    messages: ActivityResponse


class CreateGroupRequest(BaseModel):
    name: str = Field(min_length=1, max_length=140)
    description: str | None = None
    share: bool = False


class AddMemberRequest(BaseModel):
    user_id: str = Field(min_length=1)
    nickname: str = Field(min_length=1)
