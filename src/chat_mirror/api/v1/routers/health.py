from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from chat_mirror.api.deps import GatewayDep, SubscriptionsDep

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(subscriptions: SubscriptionsDep) -> dict[str, str | int]:
    return {"status": "ok", "connections": await subscriptions.connection_count()}


@router.get("/readyz")
async def readyz(request: Request, gateway: GatewayDep) -> JSONResponse:
    errors: list[str] = []

    status = await gateway.check_status()
    if not status.connected:
        errors.append(f"groupme: {status.message}")

    redis = getattr(request.app.state, "redis", None)
    if redis is not None:
        try:
            await redis.ping()
        except Exception as exc:  # noqa: BLE001
            errors.append(f"redis: {exc}")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": errors},
        )
    return JSONResponse(content={"status": "ready"})
