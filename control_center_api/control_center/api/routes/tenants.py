from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_roles
from control_center.repositories.security import TenantRepository
from control_center.schemas.sites import TenantCreate, TenantRead, TenantUpdate
from control_center.services.records import DuplicateRecordError, RecordService, create_tenant

router = APIRouter(prefix="/tenants", tags=["Tenants"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TenantRead],
    summary="List tenants",
    description="Tenants visible to the caller. Row-Level Security limits this to the tenant named in X-Tenant-ID.",
    dependencies=[Depends(require_roles("admin", "editor"))],
)
async def list_tenants(session: AsyncSession = Depends(get_tenant_session)) -> List[TenantRead]:
    repo = TenantRepository(session)
    return [TenantRead.model_validate(t) for t in await repo.list_tenants()]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=TenantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create tenant",
    dependencies=[Depends(require_roles("tenants:manage"))],
)
async def create_tenant_route(payload: TenantCreate) -> TenantRead:
    try:
        tenant = await create_tenant(payload.model_dump())
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="Tenant slug already exists")
    return TenantRead.model_validate(tenant)


# PUBLIC_INTERFACE
@router.get(
    "/{tenant_id}",
    response_model=TenantRead,
    summary="Get tenant",
    dependencies=[Depends(require_roles("admin", "editor"))],
)
async def get_tenant(
    tenant_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> TenantRead:
    tenant = await TenantRepository(session).get(tenant_id)
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return TenantRead.model_validate(tenant)


# PUBLIC_INTERFACE
@router.patch(
    "/{tenant_id}",
    response_model=TenantRead,
    summary="Update tenant",
    dependencies=[Depends(require_roles("admin", "tenants:manage"))],
)
async def update_tenant(
    payload: TenantUpdate,
    tenant_id: UUID = Path(...),
    current_tenant: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TenantRead:
    service = RecordService(TenantRepository(session), current_tenant)
    try:
        tenant = await service.update(tenant_id, **payload.model_dump(exclude_unset=True))
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="Tenant name or slug already exists")
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return TenantRead.model_validate(tenant)
