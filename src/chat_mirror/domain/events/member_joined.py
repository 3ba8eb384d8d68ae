from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from chat_mirror.domain.entities.conversation import Member
from chat_mirror.domain.value_objects.enums import EventKind


@dataclass(frozen=True, slots=True)
class MemberJoined:
    kind: ClassVar[EventKind] = EventKind.MEMBER_JOINED

    group_id: str
    member: Member
