from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.api.routes.auth import user_to_read
from control_center.core.deps import get_tenant_session, require_roles
from control_center.core.security import get_password_hash
from control_center.repositories.security import SecurityRepository
from control_center.schemas.auth import UserCreate, UserRead, UserUpdate

router = APIRouter(prefix="/admin/users", tags=["Users"])

_manage_users = Depends(require_roles("admin", "users:manage"))


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[UserRead],
    summary="List users",
    description="List dashboard users of the current tenant with their roles.",
    dependencies=[_manage_users],
)
async def list_users(
    session: AsyncSession = Depends(get_tenant_session),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[UserRead]:
    repo = SecurityRepository(session)
    items = await repo.list_users(limit=limit, offset=offset)
    return [user_to_read(u, await repo.list_role_names_for_user(u.id)) for u in items]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create user",
    description="Create a user and assign the named roles. Unknown role names are rejected.",
    dependencies=[_manage_users],
)
async def create_user(
    payload: UserCreate,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    if await repo.get_user_by_email(payload.email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    roles = []
    for name in payload.roles:
        role = await repo.get_role_by_name(name)
        if role is None:
            raise HTTPException(status_code=400, detail=f"Unknown role: {name}")
        roles.append(role)

    user = await repo.create_user(
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password),
        is_active=payload.is_active,
        is_superadmin=payload.is_superadmin,
    )
    for role in roles:
        await repo.assign_role_to_user(user.id, role.id)
    return user_to_read(user, await repo.list_role_names_for_user(user.id))


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}",
    response_model=UserRead,
    summary="Get user",
    dependencies=[_manage_users],
)
async def get_user(
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_to_read(user, await repo.list_role_names_for_user(user.id))


# PUBLIC_INTERFACE
@router.patch(
    "/{user_id}",
    response_model=UserRead,
    summary="Update user",
    dependencies=[_manage_users],
)
async def update_user(
    payload: UserUpdate,
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    updated = await repo.update_user(
        user_id,
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password) if payload.password else None,
        is_active=payload.is_active,
        is_superadmin=payload.is_superadmin,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return user_to_read(updated, await repo.list_role_names_for_user(updated.id))


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete user",
    dependencies=[_manage_users],
)
async def delete_user(
    user_id: UUID = Path(...),
    session: AsyncSession = Depends(get_tenant_session),
) -> None:
    repo = SecurityRepository(session)
    if not await repo.delete_user(user_id):
        raise HTTPException(status_code=404, detail="User not found")


# PUBLIC_INTERFACE
@router.post(
    "/{user_id}/roles/{role_id}",
    response_model=UserRead,
    summary="Assign role to user",
    dependencies=[_manage_users],
)
async def assign_role(
    user_id: UUID,
    role_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(user_id)
    role = await repo.get_role_by_id(role_id)
    if not user or not role:
        raise HTTPException(status_code=404, detail="User or role not found")
    if role.name not in await repo.list_role_names_for_user(user_id):
        await repo.assign_role_to_user(user_id, role_id)
    return user_to_read(user, await repo.list_role_names_for_user(user_id))


# PUBLIC_INTERFACE
@router.delete(
    "/{user_id}/roles/{role_id}",
    response_model=UserRead,
    summary="Remove role from user",
    dependencies=[_manage_users],
)
async def remove_role(
    user_id: UUID,
    role_id: UUID,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    await repo.remove_role_from_user(user_id, role_id)
    return user_to_read(user, await repo.list_role_names_for_user(user_id))
