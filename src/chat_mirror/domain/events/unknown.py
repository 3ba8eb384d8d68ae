from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from chat_mirror.domain.value_objects.enums import EventKind


@dataclass(frozen=True, slots=True)
class UnknownEvent:
    """A well-formed frame whose ``type`` this client does not handle."""

    kind: ClassVar[EventKind] = EventKind.UNKNOWN

    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def group_id(self) -> str | None:
        value = self.payload.get("groupId")
        return value if isinstance(value, str) else None
