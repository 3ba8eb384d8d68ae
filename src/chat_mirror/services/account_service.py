from __future__ import annotations

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.application.ports.gateway import ChatGateway
from chat_mirror.domain.entities.user import UserIdentity


async def get_current_user(gateway: ChatGateway) -> UserIdentity:
    return await gateway.fetch_current_user()


async def check_status(gateway: ChatGateway) -> StatusDTO:
    return await gateway.check_status()
