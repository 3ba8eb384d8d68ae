from __future__ import annotations

from typing import Protocol


class Connection(Protocol):
    """Send side of a live push connection, as seen by the relay."""

    async def send_text(self, data: str) -> None: ...
