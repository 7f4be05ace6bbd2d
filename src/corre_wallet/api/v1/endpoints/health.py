from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from corre_wallet.core.settings import settings
from corre_wallet.db.session import get_session


router = APIRouter()

ComponentState = Literal["ready", "starting", "disabled", "error"]


class ComponentStatus(BaseModel):
    status: ComponentState
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except Exception as error:
        components["database"] = ComponentStatus(status="error", detail=f"Database unreachable ({error})")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    worker = getattr(request.app.state, "wallet_expiry_worker", None)
    if settings.expiry_sweep_enabled and worker is not None:
        running = bool(getattr(worker, "is_running", False))
        worker_status: ComponentState = "ready" if running else "starting"
        detail = None if running else "Wallet expiry worker not running"
        if worker.last_error:
            worker_status = "error"
            detail = worker.last_error
        if worker_status != "ready" and status == "ready":
            status = "degraded"
        components["wallet_expiry"] = ComponentStatus(status=worker_status, detail=detail)
    else:
        components["wallet_expiry"] = ComponentStatus(
            status="disabled",
            detail="Wallet expiry sweep disabled via settings",
        )

    return ReadinessPayload(status=status, components=components)
