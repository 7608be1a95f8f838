from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_session, require_roles
from control_center.db.enums import AppRole
from control_center.repositories.security import SecurityRepository
from control_center.schemas.auth import RoleCreate, RoleRead

router = APIRouter(prefix="/admin/roles", tags=["Roles"])

_manage_roles = Depends(require_roles("admin", "roles:manage"))

BUILTIN_ROLES = {r.value for r in AppRole}


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[RoleRead],
    summary="List roles",
    dependencies=[_manage_roles],
)
async def list_roles(
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[RoleRead]:
    repo = SecurityRepository(session)
    return [RoleRead.model_validate(r) for r in await repo.list_roles(limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=RoleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create role",
    dependencies=[_manage_roles],
)
async def create_role(
    payload: RoleCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> RoleRead:
    repo = SecurityRepository(session)
    if await repo.get_role_by_name(payload.name):
        raise HTTPException(status_code=400, detail="Role already exists")
    role = await repo.create_role(payload.name, payload.description)
    return RoleRead.model_validate(role)


# PUBLIC_INTERFACE
@router.get(
    "/{role_id}",
    response_model=RoleRead,
    summary="Get role",
    dependencies=[_manage_roles],
)
async def get_role(
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> RoleRead:
    repo = SecurityRepository(session)
    role = await repo.get_role_by_id(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    return RoleRead.model_validate(role)


# PUBLIC_INTERFACE
@router.delete(
    "/{role_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete role",
    description="Delete a custom role. The built-in super_admin, admin and editor roles cannot be deleted.",
    dependencies=[_manage_roles],
)
async def delete_role(
    role_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> None:
    repo = SecurityRepository(session)
    role = await repo.get_role_by_id(role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")
    if role.name in BUILTIN_ROLES:
        raise HTTPException(status_code=400, detail="Built-in roles cannot be deleted")
    await repo.delete_role(role_id)
