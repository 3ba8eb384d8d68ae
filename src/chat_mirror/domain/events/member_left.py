from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from chat_mirror.domain.value_objects.enums import EventKind


@dataclass(frozen=True, slots=True)
class MemberLeft:
    kind: ClassVar[EventKind] = EventKind.MEMBER_LEFT

    group_id: str
    user_id: str
