from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func, delete

from control_center.db.models.security import Permission, Role, RolePermission, Tenant, User, UserRole
from .base import BaseRepository


class SecurityRepository(BaseRepository[User]):
    """Repository for user/role/permission management within a tenant."""

    model = User

    # Users
    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(User.email == email)
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        return await self.get(user_id)

    async def count_users(self) -> int:
        result = await self.execute(select(func.count(User.id)))
        return int(result.scalar_one())

    async def list_users(self, limit: int = 100, offset: int = 0) -> List[User]:
        stmt = select(User).order_by(User.created_at.desc()).offset(offset).limit(limit)
        return await self.all(stmt)

    async def create_user(
        self,
        *,
        email: str,
        full_name: Optional[str],
        hashed_password: str,
        is_active: bool = True,
        is_superadmin: bool = False,
    ) -> User:
        return await self.create(
            email=email,
            full_name=full_name,
            hashed_password=hashed_password,
            is_active=is_active,
            is_superadmin=is_superadmin,
        )

    async def update_user(self, user_id: UUID, **values) -> Optional[User]:
        return await self.update(user_id, **values)

    async def delete_user(self, user_id: UUID) -> bool:
        return await self.delete(user_id)

    # Roles and permissions granted to a user
    async def list_role_names_for_user(self, user_id: UUID) -> List[str]:
        stmt = (
            select(Role.name)
            .join(UserRole, Role.id == UserRole.role_id)
            .where(UserRole.user_id == user_id)
        )
        return await self.all(stmt)

    async def list_permission_codes_for_user(self, user_id: UUID) -> List[str]:
        stmt = (
            select(Permission.code)
            .join(RolePermission, Permission.id == RolePermission.permission_id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .where(UserRole.user_id == user_id)
            .distinct()
        )
        return await self.all(stmt)

    # Roles
    async def list_roles(self, limit: int = 100, offset: int = 0) -> List[Role]:
        stmt = select(Role).order_by(Role.name).offset(offset).limit(limit)
        return await self.all(stmt)

    async def get_role_by_id(self, role_id: UUID) -> Optional[Role]:
        return await self.scalar_one_or_none(select(Role).where(Role.id == role_id))

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        return await self.scalar_one_or_none(select(Role).where(Role.name == name))

    async def create_role(self, name: str, description: Optional[str] = None) -> Role:
        role = Role(name=name, description=description)
        await self.add(role)
        await self.commit()
        await self.session.refresh(role)
        return role

    async def delete_role(self, role_id: UUID) -> None:
        await self.execute(delete(Role).where(Role.id == role_id))
        await self.commit()

    # Associations
    async def assign_role_to_user(self, user_id: UUID, role_id: UUID) -> None:
        await self.add(UserRole(user_id=user_id, role_id=role_id))
        await self.commit()

    async def remove_role_from_user(self, user_id: UUID, role_id: UUID) -> None:
        stmt = delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
        await self.execute(stmt)
        await self.commit()


class TenantRepository(BaseRepository[Tenant]):
    """
    Tenants visible to the session.

    The tenants RLS policy exposes only the row whose id equals `app.tenant_id`, so
    listing returns the caller's own tenant and inserts need a session bound to the
    new tenant id.
    """

    model = Tenant

    async def list_tenants(self) -> List[Tenant]:
        return await self.all(select(Tenant).order_by(Tenant.name))
