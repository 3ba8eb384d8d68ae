from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from chat_mirror.api.deps import GatewayDep
from chat_mirror.api.v1.schemas.account import StatusResponse, UserResponse
from chat_mirror.infrastructure.groupme.mappers import user_to_dict
from chat_mirror.services import account_service

router = APIRouter(prefix="/api/v1", tags=["account"])


@router.get("/me", response_model=UserResponse)
async def get_me(gateway: GatewayDep) -> UserResponse:
    user = await account_service.get_current_user(gateway)
    return UserResponse.model_validate(user_to_dict(user))


@router.get("/status", response_model=StatusResponse)
async def get_status(gateway: GatewayDep) -> JSONResponse:
    status = await account_service.check_status(gateway)
    body = StatusResponse(connected=status.connected, message=status.message)
    return JSONResponse(
        status_code=200 if status.connected else 503,
        content=body.model_dump(),
    )
