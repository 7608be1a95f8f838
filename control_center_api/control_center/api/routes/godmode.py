from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_super_admin
from control_center.schemas.godmode import (
    GodModeActivateRequest,
    GodModeActivateResponse,
    GodModeDeactivateRequest,
    GodModeDeactivateResponse,
    GodModeSessionRead,
)
from control_center.services.godmode import GodModeError, GodModeService, client_address

router = APIRouter(prefix="/godmode", tags=["GodMode"])


def get_godmode_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> GodModeService:
    return GodModeService(session, tenant_id)


def _error(exc: GodModeError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


# PUBLIC_INTERFACE
@router.post(
    "/activate",
    response_model=GodModeActivateResponse,
    summary="Activate GodMode",
    description=(
        "Start a time-bounded elevated session (super_admin only). The reason must be at least "
        "10 characters; 409 returns the already active session."
    ),
)
async def activate(
    payload: GodModeActivateRequest,
    request: Request,
    user=Depends(require_super_admin),
    service: GodModeService = Depends(get_godmode_service),
):
    try:
        return await service.activate(
            user.id,
            payload,
            ip_address=client_address(request.headers),
            user_agent=request.headers.get("user-agent"),
        )
    except GodModeError as exc:
        return _error(exc)


# PUBLIC_INTERFACE
@router.post(
    "/deactivate",
    response_model=GodModeDeactivateResponse,
    summary="Deactivate GodMode",
    description="End one of your sessions by sessionId, or every active session in the tenant with killAll.",
)
async def deactivate(
    payload: GodModeDeactivateRequest,
    request: Request,
    user=Depends(require_super_admin),
    service: GodModeService = Depends(get_godmode_service),
):
    try:
        return await service.deactivate(
            user.id,
            payload,
            ip_address=client_address(request.headers),
            user_agent=request.headers.get("user-agent"),
        )
    except GodModeError as exc:
        return _error(exc)


# PUBLIC_INTERFACE
@router.get(
    "/sessions",
    response_model=List[GodModeSessionRead],
    summary="List active GodMode sessions",
    dependencies=[Depends(require_super_admin)],
)
async def list_active_sessions(service: GodModeService = Depends(get_godmode_service)) -> List[GodModeSessionRead]:
    return [GodModeSessionRead.model_validate(s) for s in await service.list_active()]
