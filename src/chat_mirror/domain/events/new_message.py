from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.value_objects.enums import EventKind


@dataclass(frozen=True, slots=True)
class NewMessage:
    kind: ClassVar[EventKind] = EventKind.NEW_MESSAGE

    group_id: str
    message: Message
