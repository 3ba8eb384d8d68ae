"""httpx-based adapter for the GroupMe v3 REST API."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.application.exceptions import MalformedPayloadError, UpstreamError
from chat_mirror.domain.entities.conversation import Conversation, Member
from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.entities.user import UserIdentity
from chat_mirror.infrastructure.groupme.mappers import (
    to_conversation,
    to_member,
    to_message,
    to_user,
)

logger = logging.getLogger(__name__)


class GroupMeGateway:
    """Implements application.ports.gateway.GroupAdminGateway."""

    def __init__(self, client: httpx.AsyncClient, token: str) -> None:
        self._client = client
        self._token = token

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Perform a call and unwrap the ``{"response": ...}`` envelope.

        Returns ``None`` for 304 Not Modified and for empty bodies.
        """
        if not self._token:
            raise UpstreamError("GroupMe API token not configured")

        query = {**(params or {}), "token": self._token}
        try:
            resp = await self._client.request(method, path, params=query, json=json)
        except httpx.HTTPError as exc:
            logger.warning("GroupMe %s %s failed: %s", method, path, exc)
            raise UpstreamError(f"GroupMe API unreachable: {exc}") from exc

        if resp.status_code == 304:
            return None
        if resp.is_error:
            logger.warning("GroupMe %s %s -> %d", method, path, resp.status_code)
            raise UpstreamError(
                f"GroupMe API error: {resp.status_code} {resp.text}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as exc:
            raise UpstreamError("GroupMe API returned invalid JSON") from exc
        return body.get("response") if isinstance(body, dict) else None

    def _decode(self, decoder: Any, data: Any, what: str) -> Any:
        try:
            return decoder(data)
        except MalformedPayloadError as exc:
            raise UpstreamError(f"Unexpected {what} payload: {exc.detail}") from exc

    async def fetch_groups(self) -> list[Conversation]:
        data = await self._request("GET", "/groups", params={"per_page": 100})
        return [self._decode(to_conversation, g, "group") for g in data or []]

    async def fetch_group(self, group_id: str) -> Conversation:
        data = await self._request("GET", f"/groups/{group_id}")
        return self._decode(to_conversation, data, "group")

    async def fetch_messages(
        self,
        group_id: str,
        before_id: str | None = None,
        limit: int = 20,
    ) -> list[Message]:
        params: dict[str, Any] = {"limit": limit}
        if before_id:
            params["before_id"] = before_id
        data = await self._request("GET", f"/groups/{group_id}/messages", params=params)
        if not data:
            return []
        return [
            self._decode(lambda m: to_message(m, group_id), m, "message")
            for m in data.get("messages") or []
        ]

    async def post_message(self, group_id: str, text: str, source_guid: str) -> Message:
        data = await self._request(
            "POST",
            f"/groups/{group_id}/messages",
            json={"message": {"source_guid": source_guid, "text": text}},
        )
        if not data or "message" not in data:
            raise UpstreamError("GroupMe API returned no message echo")
        return self._decode(lambda m: to_message(m, group_id), data["message"], "message")

    async def fetch_current_user(self) -> UserIdentity:
        data = await self._request("GET", "/users/me")
        return self._decode(to_user, data, "user")

    async def check_status(self) -> StatusDTO:
        try:
            await self._request("GET", "/users/me")
        except UpstreamError as exc:
            return StatusDTO(connected=False, message=exc.detail)
        return StatusDTO(connected=True, message="GroupMe API connection successful")

    async def create_group(
        self,
        name: str,
        description: str | None = None,
        share: bool = False,
    ) -> Conversation:
        body: dict[str, Any] = {"name": name, "share": share}
        if description:
            body["description"] = description
        data = await self._request("POST", "/groups", json=body)
        return self._decode(to_conversation, data, "group")

    async def add_member(
        self,
        group_id: str,
        user_id: str,
        nickname: str,
        guid: str,
    ) -> Member:
        # The add call is asynchronous upstream and only returns a results_id.
        data = await self._request(
            "POST",
            f"/groups/{group_id}/members/add",
            json={"members": [{"nickname": nickname, "user_id": user_id, "guid": guid}]},
        )
        results_id = (data or {}).get("results_id")
        logger.info("Member add queued for group %s (results_id=%s)", group_id, results_id)
        return to_member({"id": guid, "user_id": user_id, "nickname": nickname})

    async def remove_member(self, group_id: str, membership_id: str) -> None:
        await self._request("POST", f"/groups/{group_id}/members/{membership_id}/remove")
