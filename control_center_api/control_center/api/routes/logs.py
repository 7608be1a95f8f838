from __future__ import annotations

import logging
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_current_active_user, get_tenant_id, get_tenant_session, require_roles
from control_center.repositories.audit import AuditLogRepository, ErrorLogRepository
from control_center.schemas.audit import AuditLogRead, ErrorLogCreate, ErrorLogRead
from control_center.services.records import RecordService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/logs", tags=["Logs"])

_view_logs = Depends(require_roles("admin", "logs:view"))


# PUBLIC_INTERFACE
@router.get("/errors", response_model=List[ErrorLogRead], summary="List error logs", dependencies=[_view_logs])
async def list_error_logs(
    level: Optional[Literal["error", "warning", "info"]] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ErrorLogRead]:
    repo = ErrorLogRepository(session)
    return [ErrorLogRead.model_validate(e) for e in await repo.list_logs(level=level, limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.post(
    "/errors",
    response_model=ErrorLogRead,
    status_code=status.HTTP_201_CREATED,
    summary="Report error",
    description="Record an error reported by the dashboard.",
    dependencies=[Depends(get_current_active_user)],
)
async def create_error_log(
    payload: ErrorLogCreate,
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> ErrorLogRead:
    logger.info("Client reported %s in %s: %s", payload.level, payload.component or "unknown", payload.message)
    entry = await RecordService(ErrorLogRepository(session), tenant_id).create(**payload.model_dump())
    return ErrorLogRead.model_validate(entry)


# PUBLIC_INTERFACE
@router.get(
    "/audit",
    response_model=List[AuditLogRead],
    summary="List audit logs",
    description="Audit trail, newest first, optionally filtered by action and resource.",
    dependencies=[_view_logs],
)
async def list_audit_logs(
    action: Optional[str] = Query(None),
    resource: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[AuditLogRead]:
    repo = AuditLogRepository(session)
    items = await repo.list_logs(action=action, resource=resource, limit=limit, offset=offset)
    return [AuditLogRead.model_validate(a) for a in items]
