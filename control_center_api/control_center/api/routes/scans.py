from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_current_active_user, get_tenant_id, get_tenant_session, require_roles
from control_center.db.enums import ScanType
from control_center.schemas.scans import ScanResult, SecurityScanRead
from control_center.services.integrity_scans import IntegrityScanService

router = APIRouter(prefix="/scans", tags=["Scans"])


def get_scan_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> IntegrityScanService:
    return IntegrityScanService(session, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/bug",
    response_model=ScanResult,
    summary="Run bug scan",
    description="Run the daily data-integrity checks and record the findings.",
    dependencies=[Depends(require_roles("admin", "scans:run"))],
)
async def run_bug_scan(
    user=Depends(get_current_active_user),
    service: IntegrityScanService = Depends(get_scan_service),
) -> ScanResult:
    return await service.run(ScanType.DAILY_BUG, user_id=user.id)


# PUBLIC_INTERFACE
@router.post(
    "/security",
    response_model=ScanResult,
    summary="Run security scan",
    description="Run the daily security checks and record the findings.",
    dependencies=[Depends(require_roles("admin", "scans:run"))],
)
async def run_security_scan(
    user=Depends(get_current_active_user),
    service: IntegrityScanService = Depends(get_scan_service),
) -> ScanResult:
    return await service.run(ScanType.DAILY_SECURITY, user_id=user.id)


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[SecurityScanRead],
    summary="List scans",
    dependencies=[Depends(require_roles("admin", "scans:run", "logs:view"))],
)
async def list_scans(
    scan_type: Optional[ScanType] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: IntegrityScanService = Depends(get_scan_service),
) -> List[SecurityScanRead]:
    return [SecurityScanRead.model_validate(s) for s in await service.list_scans(scan_type, limit=limit, offset=offset)]
