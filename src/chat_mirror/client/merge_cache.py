"""Per-conversation ordered, deduplicated message store.

Snapshots (polling) and deltas (push) land here. Every insert runs
synchronously, so the duplicate check and the insert happen in the same
event-loop turn and two near-simultaneous deliveries of one id cannot
both pass.
"""
from __future__ import annotations

import bisect
import logging
from typing import Any, Iterable, Mapping, Sequence

from chat_mirror.application.exceptions import MalformedPayloadError
from chat_mirror.domain.entities.conversation import LastActivity
from chat_mirror.domain.entities.message import Message
from chat_mirror.infrastructure.groupme.mappers import to_message

logger = logging.getLogger(__name__)

MessageInput = Message | Mapping[str, Any]


class MessageLog:
    """Messages of one conversation, sorted by (created_at, id)."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self._messages: list[Message] = []
        self._keys: list[tuple[int, str]] = []
        self._ids: set[str] = set()

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def newest(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    @property
    def oldest(self) -> Message | None:
        return self._messages[0] if self._messages else None

    def add(self, message: Message) -> bool:
        """Insert unless the id is already known. First insertion wins."""
        if message.id in self._ids:
            return False
        key = message.sort_key
        index = bisect.bisect_right(self._keys, key)
        self._keys.insert(index, key)
        self._messages.insert(index, message)
        self._ids.add(message.id)
        return True


class MergeCache:
    """Reference-counted set of ``MessageLog`` entries.

    A log exists while at least one viewer holds it; deliveries for
    conversations nobody holds are dropped.
    """

    def __init__(self) -> None:
        self._logs: dict[str, MessageLog] = {}
        self._refs: dict[str, int] = {}

    def acquire(self, conversation_id: str) -> MessageLog:
        log = self._logs.get(conversation_id)
        if log is None:
            log = self._logs[conversation_id] = MessageLog(conversation_id)
        self._refs[conversation_id] = self._refs.get(conversation_id, 0) + 1
        return log

    def release(self, conversation_id: str) -> None:
        refs = self._refs.get(conversation_id, 0) - 1
        if refs > 0:
            self._refs[conversation_id] = refs
            return
        self._refs.pop(conversation_id, None)
        if self._logs.pop(conversation_id, None) is not None:
            logger.debug("Discarded cache for conversation %s", conversation_id)

    def is_tracked(self, conversation_id: str) -> bool:
        return conversation_id in self._logs

    def view(self, conversation_id: str) -> Sequence[Message]:
        log = self._logs.get(conversation_id)
        return log.messages if log else ()

    def is_caught_up(self, conversation_id: str, activity: LastActivity) -> bool:
        """True when the conversation's newest known message is already held."""
        log = self._logs.get(conversation_id)
        if log is None or activity.last_message_id is None:
            return False
        return activity.last_message_id in log

    def apply_snapshot(
        self,
        conversation_id: str,
        messages: Iterable[MessageInput],
    ) -> int:
        """Merge a polled page. Never removes entries.

        The whole snapshot is validated first and rejected if any entry is
        malformed. Returns the number of newly inserted messages.
        """
        log = self._logs.get(conversation_id)
        if log is None:
            logger.debug("Snapshot for untracked conversation %s dropped", conversation_id)
            return 0
        try:
            decoded = [self._decode(conversation_id, m) for m in messages]
        except MalformedPayloadError as exc:
            logger.warning(
                "Rejected snapshot for conversation %s: %s", conversation_id, exc.detail,
            )
            return 0
        inserted = sum(1 for m in decoded if log.add(m))
        if inserted:
            logger.debug(
                "Snapshot added %d message(s) to conversation %s", inserted, conversation_id,
            )
        return inserted

    def apply_delta(self, conversation_id: str, message: MessageInput) -> bool:
        """Merge one pushed message. Returns True if it was new."""
        log = self._logs.get(conversation_id)
        if log is None:
            logger.debug("Delta for untracked conversation %s dropped", conversation_id)
            return False
        try:
            decoded = self._decode(conversation_id, message)
        except MalformedPayloadError as exc:
            logger.warning(
                "Rejected delta for conversation %s: %s", conversation_id, exc.detail,
            )
            return False
        return log.add(decoded)

    @staticmethod
    def _decode(conversation_id: str, message: MessageInput) -> Message:
        if isinstance(message, Message):
            decoded = message
            if not decoded.id:
                raise MalformedPayloadError("message is missing 'id'")
            if not isinstance(decoded.created_at, int) or isinstance(decoded.created_at, bool):
                raise MalformedPayloadError(f"message {decoded.id} is missing 'created_at'")
        else:
            decoded = to_message(message, conversation_id)
        if decoded.group_id != conversation_id:
            raise MalformedPayloadError(
                f"message {decoded.id} belongs to {decoded.group_id}, not {conversation_id}"
            )
        return decoded
