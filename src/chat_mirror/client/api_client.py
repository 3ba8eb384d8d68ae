"""HTTP client for the relay's UI surface.

Implements the same ``ChatGateway`` port as the upstream adapter, so
pollers and viewports work against either.
"""
from __future__ import annotations

import logging
import random
import string
import time
from typing import Any

import httpx

from chat_mirror.application.dto.status import StatusDTO
from chat_mirror.application.exceptions import (
    MalformedPayloadError,
    UpstreamError,
    UpstreamWriteFailure,
)
from chat_mirror.domain.entities.conversation import Conversation
from chat_mirror.domain.entities.message import Message
from chat_mirror.domain.entities.user import UserIdentity
from chat_mirror.infrastructure.groupme.mappers import to_conversation, to_message, to_user

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def new_source_guid() -> str:
    """Client-origin token: millisecond timestamp plus a short random suffix."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"{int(time.time() * 1000)}-{suffix}"


def _detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("message") or body)
    return str(body)


class BridgeClient:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @classmethod
    def from_url(cls, base_url: str, *, timeout: float = 10.0) -> BridgeClient:
        return cls(httpx.AsyncClient(base_url=base_url, timeout=timeout))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"relay unreachable: {exc}") from exc
        if resp.is_error:
            raise UpstreamError(_detail(resp), status_code=resp.status_code)
        return resp

    async def fetch_groups(self) -> list[Conversation]:
        resp = await self._request("GET", "/groups")
        return [to_conversation(g) for g in resp.json()]

    async def fetch_group(self, group_id: str) -> Conversation:
        resp = await self._request("GET", f"/groups/{group_id}")
        return to_conversation(resp.json())

    async def fetch_messages(
        self,
        group_id: str,
        before_id: str | None = None,
        limit: int = 20,
    ) -> list[Message]:
        """Return one page; malformed entries are left out."""
        params: dict[str, Any] = {"limit": limit}
        if before_id:
            params["before_id"] = before_id
        resp = await self._request("GET", f"/groups/{group_id}/messages", params=params)
        messages: list[Message] = []
        for raw in resp.json():
            try:
                messages.append(to_message(raw, group_id))
            except MalformedPayloadError as exc:
                logger.warning("Skipping malformed message in group %s: %s", group_id, exc.detail)
        return messages

    async def post_message(
        self,
        group_id: str,
        text: str,
        source_guid: str | None = None,
    ) -> Message:
        try:
            resp = await self._request(
                "POST",
                f"/groups/{group_id}/messages",
                json={"text": text, "source_guid": source_guid or new_source_guid()},
            )
        except UpstreamError as exc:
            raise UpstreamWriteFailure(exc.detail, status_code=exc.status_code) from exc
        return to_message(resp.json(), group_id)

    async def fetch_current_user(self) -> UserIdentity:
        resp = await self._request("GET", "/me")
        return to_user(resp.json())

    async def check_status(self) -> StatusDTO:
        try:
            resp = await self._client.get(f"{API_PREFIX}/status")
        except httpx.HTTPError:
            return StatusDTO(connected=False, message="Failed to connect to relay")
        try:
            body = resp.json()
        except ValueError:
            return StatusDTO(connected=False, message=resp.text)
        if not isinstance(body, dict):
            return StatusDTO(connected=False, message="Unexpected status payload")
        return StatusDTO(
            connected=bool(body.get("connected")) and resp.is_success,
            message=str(body.get("message") or ""),
        )
