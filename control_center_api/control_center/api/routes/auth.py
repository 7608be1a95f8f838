from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_current_active_user, get_tenant_id, get_tenant_session
from control_center.core.security import (
    SUPER_ADMIN_ROLE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from control_center.repositories.audit import AuditLogRepository
from control_center.repositories.security import SecurityRepository
from control_center.schemas.auth import RefreshRequest, RegisterRequest, TokenPair, UserRead
from control_center.schemas.common import MessageResponse
from control_center.services.godmode import client_address

router = APIRouter(prefix="/auth", tags=["Auth"])


# PUBLIC_INTERFACE
def user_to_read(user, roles: List[str]) -> UserRead:
    """Build the UserRead view of a user row with its role names."""
    return UserRead(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        is_superadmin=user.is_superadmin,
        created_at=user.created_at,
        updated_at=user.updated_at,
        roles=roles,
    )


async def _issue_tokens(repo: SecurityRepository, user, tenant_id: UUID) -> TokenPair:
    roles = await repo.list_role_names_for_user(user.id)
    access = create_access_token(subject=str(user.id), tenant_id=str(tenant_id), roles=roles)
    refresh = create_refresh_token(subject=str(user.id), tenant_id=str(tenant_id))
    return TokenPair(access_token=access, refresh_token=refresh)


# PUBLIC_INTERFACE
@router.post(
    "/register",
    response_model=UserRead,
    summary="Register user",
    description="Create a dashboard user for the current tenant. The first user of a tenant becomes its super_admin.",
)
async def register_user(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    """Register a new user under the tenant."""
    repo = SecurityRepository(session)
    if await repo.get_user_by_email(payload.email):
        raise HTTPException(status_code=400, detail="User with this email already exists")

    user = await repo.create_user(
        email=payload.email,
        full_name=payload.full_name,
        hashed_password=get_password_hash(payload.password),
    )

    if await repo.count_users() == 1:
        role = await repo.get_role_by_name(SUPER_ADMIN_ROLE)
        if not role:
            role = await repo.create_role(SUPER_ADMIN_ROLE, "Full access including GodMode")
        await repo.assign_role_to_user(user.id, role.id)

    return user_to_read(user, await repo.list_role_names_for_user(user.id))


# PUBLIC_INTERFACE
@router.post(
    "/login",
    response_model=TokenPair,
    summary="Login",
    description="Authenticate using the OAuth2 password form and receive access/refresh tokens.",
)
async def login_for_tokens(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    """Authenticate user and issue tokens; successful logins are audited."""
    repo = SecurityRepository(session)
    user = await repo.get_user_by_email(form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=400, detail="User is inactive")

    await AuditLogRepository(session).record(
        action="user_login",
        resource="users",
        user_id=user.id,
        resource_id=str(user.id),
        ip_address=client_address(request.headers),
        user_agent=request.headers.get("user-agent"),
    )
    return await _issue_tokens(repo, user, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/refresh",
    response_model=TokenPair,
    summary="Refresh access token",
    description="Issue a new token pair from a valid refresh token.",
)
async def refresh_token(
    payload: RefreshRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_tenant_session),
) -> TokenPair:
    try:
        claims = decode_token(payload.refresh_token, expected_type="refresh")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    if str(tenant_id) != str(claims.get("tenant_id")):
        raise HTTPException(status_code=403, detail="Tenant mismatch")

    subject = claims.get("sub")
    if not subject:
        raise HTTPException(status_code=401, detail="Invalid refresh token")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(subject))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="User not found or inactive")
    return await _issue_tokens(repo, user, tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout",
    description="Stateless logout. Clients discard their tokens.",
)
async def logout() -> MessageResponse:
    return MessageResponse(message="Logged out")


# PUBLIC_INTERFACE
@router.get(
    "/me",
    response_model=UserRead,
    summary="Read current user",
    description="Return the current authenticated user and their roles.",
)
async def read_current_user(
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> UserRead:
    repo = SecurityRepository(session)
    return user_to_read(user, await repo.list_role_names_for_user(user.id))
