"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from chat_mirror.application.ports.gateway import GroupAdminGateway
from chat_mirror.infrastructure.ws.emitter import BroadcastEmitter
from chat_mirror.infrastructure.ws.subscriptions import SubscriptionRouter


def get_gateway(request: Request) -> GroupAdminGateway:
    return request.app.state.gateway


GatewayDep = Annotated[GroupAdminGateway, Depends(get_gateway)]


def get_emitter(request: Request) -> BroadcastEmitter:
    return request.app.state.emitter


EmitterDep = Annotated[BroadcastEmitter, Depends(get_emitter)]


def get_subscriptions(request: Request) -> SubscriptionRouter:
    return request.app.state.subscriptions


SubscriptionsDep = Annotated[SubscriptionRouter, Depends(get_subscriptions)]
