from __future__ import annotations

import logging
from typing import AsyncGenerator
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.logging import user_id_var
from control_center.core.security import SUPER_ADMIN_ROLE, decode_token
from control_center.db.session import get_async_session, tenant_context
from control_center.repositories.security import SecurityRepository

logger = logging.getLogger(__name__)

# OAuth2 bearer (used by docs); login endpoint path referenced here
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


# PUBLIC_INTERFACE
async def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID")) -> UUID:
    """
    Extract and validate the tenant id from the X-Tenant-ID header.

    Raises:
        HTTPException: 400 Bad Request if header missing or invalid UUID.
    """
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required.",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header must be a valid UUID string.",
        )


# PUBLIC_INTERFACE
async def get_tenant_session(
    tenant_id: UUID = Depends(get_tenant_id),
    session: AsyncSession = Depends(get_async_session),
) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession with Row-Level Security (RLS) configured for the given tenant.

    Every transaction the session opens, including those after a commit, runs with
    the Postgres GUC `app.tenant_id` set to the request tenant.
    """
    async with tenant_context(session, tenant_id):
        yield session


# PUBLIC_INTERFACE
async def get_current_user(
    tenant_id: UUID = Depends(get_tenant_id),
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_tenant_session),
):
    """
    Resolve and return the current user from the Authorization bearer token.

    Validates the token, ensures tenant claim matches the incoming tenant header,
    and loads the user via RLS-scoped session.
    """
    try:
        payload = decode_token(token, expected_type="access")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    tok_tenant = payload.get("tenant_id")
    if not tok_tenant or str(tok_tenant) != str(tenant_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Tenant mismatch")

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    repo = SecurityRepository(session)
    user = await repo.get_user_by_id(UUID(user_id))
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    user_id_var.set(str(user.id))
    return user


# PUBLIC_INTERFACE
async def get_current_active_user(user=Depends(get_current_user)):
    """Ensure user is active."""
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


# PUBLIC_INTERFACE
def require_roles(*required: str):
    """
    Create a dependency that requires the current user to have one of the specified roles
    (or matching permission codes). Super admins always pass.
    """

    async def _dep(user=Depends(get_current_active_user), session: AsyncSession = Depends(get_tenant_session)):
        repo = SecurityRepository(session)
        granted = set(await repo.list_role_names_for_user(user.id))
        granted.update(await repo.list_permission_codes_for_user(user.id))
        if SUPER_ADMIN_ROLE in granted or user.is_superadmin:
            return True
        if granted.isdisjoint(required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return True

    return _dep


# PUBLIC_INTERFACE
async def require_super_admin(
    user=Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
):
    """Require the 'super_admin' role and return the user (GodMode operations)."""
    repo = SecurityRepository(session)
    roles = await repo.list_role_names_for_user(user.id)
    if SUPER_ADMIN_ROLE not in roles:
        logger.info("Super admin access denied for user %s", user.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return user
