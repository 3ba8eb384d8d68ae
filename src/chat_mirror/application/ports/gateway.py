from __future__ import annotations

from typing import Protocol

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.domain.entities.conversation import Conversation, Member
from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.entities.user import UserIdentity


class ChatGateway(Protocol):
    """Request/response access to a group-chat backend.

    Any call may raise ``UpstreamError``; callers decide whether to retry.
    """

    async def fetch_groups(self) -> list[Conversation]: ...

    async def fetch_group(self, group_id: str) -> Conversation: ...

    async def fetch_messages(
        self,
        group_id: str,
        before_id: str | None = None,
        limit: int = 20,
    ) -> list[Message]: ...

    async def post_message(
        self,
        group_id: str,
        text: str,
        source_guid: str,
    ) -> Message: ...

    async def fetch_current_user(self) -> UserIdentity: ...

    async def check_status(self) -> StatusDTO: ...


class GroupAdminGateway(ChatGateway, Protocol):
    """Membership and group-creation writes, only available server-side."""

    async def create_group(
        self,
        name: str,
        description: str | None = None,
        share: bool = False,
    ) -> Conversation: ...

    async def add_member(
        self,
        group_id: str,
        user_id: str,
        nickname: str,
        guid: str,
    ) -> Member: ...

    async def remove_member(self, group_id: str, membership_id: str) -> None: ...
