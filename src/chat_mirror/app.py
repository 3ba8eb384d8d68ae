from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_mirror.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_mirror.api.middleware.metrics import RequestTimingMiddleware
from chat_mirror.api.v1.routers import (
    account,
    groups,
    health,
    messages,
    ws,
)
from chat_mirror.application.exceptions import (
    NotFoundError,
    UpstreamError,
    UpstreamWriteFailure,
    ValidationError,
)
from chat_mirror.config import settings
from chat_mirror.infrastructure.bus.redis_pubsub import (
    RedisPubSubPublisher,
    RedisPubSubSubscriber,
)
from chat_mirror.infrastructure.groupme.gateway import GroupMeGateway
from chat_mirror.infrastructure.ws.emitter import BroadcastEmitter
from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    http_client = httpx.AsyncClient(
        base_url=settings.GROUPME_API_URL,
        timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        headers={"Content-Type": "application/json"},
    )
    app.state.gateway = GroupMeGateway(http_client, settings.GROUPME_API_TOKEN)
    if not settings.GROUPME_API_TOKEN:
        logger.warning("GROUPME_API_TOKEN is not set; upstream calls will fail")

    subscriber: RedisPubSubSubscriber | None = None
    if settings.FANOUT_BACKEND == "redis":
        app.state.redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        emitter: BroadcastEmitter = app.state.emitter
        emitter.bind_publisher(
            RedisPubSubPublisher(app.state.redis), settings.REDIS_PUBSUB_CHANNEL,
        )
        subscriber = RedisPubSubSubscriber(
            app.state.redis, settings.REDIS_PUBSUB_CHANNEL, emitter.deliver,
        )
        await subscriber.start()
        logger.info("Redis fan-out enabled")

    yield

    await app.state.emitter.drain()
    if subscriber is not None:
        await subscriber.stop()
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")
    await http_client.aclose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Chat Mirror",
        version="0.1.0",
        lifespan=lifespan,
    )

    subscriptions = SubscriptionRouter()
    app.state.subscriptions = subscriptions
    app.state.emitter = BroadcastEmitter(
        subscriptions,
        group_created_to_all=settings.BROADCAST_GROUP_CREATED_TO_ALL,
    )
    app.state.redis = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(account.router)
    app.include_router(groups.router)
    app.include_router(messages.router)
    app.include_router(ws.router)

    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.detail})

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": exc.detail})

    @app.exception_handler(UpstreamWriteFailure)
    async def _write_failure(_req: Request, exc: UpstreamWriteFailure) -> JSONResponse:
        return JSONResponse(
            status_code=502,
            content={"detail": exc.detail, "retryable": False},
        )

    @app.exception_handler(UpstreamError)
    async def _upstream(_req: Request, exc: UpstreamError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": exc.detail})
