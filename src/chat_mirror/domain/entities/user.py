from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class UserIdentity:
    id: str
    name: str
    email: str | None = None
    phone_number: str | None = None
    image_url: str | None = None
    created_at: int | None = None
    updated_at: int | None = None
