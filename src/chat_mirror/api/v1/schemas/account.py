from __future__ import annotations

from pydantic import BaseModel


class UserResponse(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone_number: str | None = None
    image_url: str | None = None
    created_at: int | None = None
    updated_at: int | None = None


class StatusResponse(BaseModel):
    connected: bool
    message: str = ""
