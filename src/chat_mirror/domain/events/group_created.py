from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from chat_mirror.domain.entities.conversation import Conversation
from chat_mirror.domain.value_objects.enums import EventKind


@dataclass(frozen=True, slots=True)
class GroupCreated:
    kind: ClassVar[EventKind] = EventKind.GROUP_CREATED

    group: Conversation

    @property
    def group_id(self) -> str:
        return self.group.id
