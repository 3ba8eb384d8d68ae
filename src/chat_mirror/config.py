from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    GROUPME_API_URL: str = "https://api.groupme.com/v3"
    GROUPME_API_TOKEN: str = Field(
        "",
        validation_alias=AliasChoices("GROUPME_API_TOKEN", "GROUPME_TOKEN"),
    )
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "info"

    CORS_ORIGINS: list[str] = ["*"]

    WS_HEARTBEAT_SECONDS: int = 30

    FANOUT_BACKEND: Literal["local", "redis"] = "local"
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PUBSUB_CHANNEL: str = "mirror.fanout"
    BROADCAST_GROUP_CREATED_TO_ALL: bool = True

    BRIDGE_BASE_URL: str = "http://localhost:8000"
    BRIDGE_WS_URL: str = "ws://localhost:8000/ws"
    RECONNECT_BASE_DELAY: float = 1.0
    RECONNECT_MAX_RETRIES: int = 5
    RECONNECT_MAX_DELAY_FACTOR: int = 32
    MESSAGE_POLL_INTERVAL: float = 5.0
    MESSAGE_PAGE_LIMIT: int = 20
    STATUS_POLL_INTERVAL: float = 10.0
    GROUP_LIST_POLL_INTERVAL: float = 30.0
    GROUP_DETAIL_POLL_INTERVAL: float = 10.0

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
