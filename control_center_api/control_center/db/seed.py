"""
Database seeding utilities for minimal reference data.

Seeds:
- Base tenant (Control Center, slug from DEFAULT_TENANT_SLUG)
- Built-in roles (super_admin, admin, editor) and base permissions
- Role to permission mapping

Usage:
  python -m control_center.db.run_migrations upgrade head
  python -m control_center.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.settings import get_app_settings
from control_center.db.enums import AppRole
from control_center.db.session import get_async_session, set_current_tenant, tenant_context

logger = logging.getLogger(__name__)

PERMISSION_CODES = [
    "users:manage",
    "roles:manage",
    "tenants:manage",
    "sites:view",
    "sites:manage",
    "credentials:manage",
    "billing:view",
    "billing:manage",
    "mail:manage",
    "whatsapp:manage",
    "reports:view",
    "scans:run",
    "logs:view",
]

ROLE_DESCRIPTIONS = {
    AppRole.SUPER_ADMIN.value: "Super administrator (god mode, tenant management)",
    AppRole.ADMIN.value: "Administrator",
    AppRole.EDITOR.value: "Editor",
}

_TENANT_ROWS = "SELECT {cols} FROM {table} WHERE tenant_id = NULLIF(current_setting('app.tenant_id', true), '')::uuid"

# role -> permission codes; super_admin receives every code
ROLE_PERMISSIONS: Dict[str, Iterable[str]] = {
    AppRole.SUPER_ADMIN.value: PERMISSION_CODES,
    AppRole.ADMIN.value: [code for code in PERMISSION_CODES if code != "tenants:manage"],
    AppRole.EDITOR.value: [
        "sites:view",
        "sites:manage",
        "billing:view",
        "mail:manage",
        "whatsapp:manage",
        "reports:view",
    ],
}


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with minimal reference data.

    Idempotent: every insert is ON CONFLICT DO NOTHING.
    """
    settings = get_app_settings()
    async for session in get_async_session():
        tenant_id = await _ensure_base_tenant(session, name="Control Center", slug=settings.DEFAULT_TENANT_SLUG)
        async with tenant_context(session, tenant_id):
            await _seed_security(session)
        await session.commit()
        logger.info("Seeded base tenant %s (%s)", settings.DEFAULT_TENANT_SLUG, tenant_id)


async def _ensure_base_tenant(session: AsyncSession, name: str, slug: str) -> UUID:
    """
    Ensure a tenant row exists. RLS on tenants requires setting app.tenant_id
    to the same id being inserted (WITH CHECK id = current_setting()).
    """
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if row:
        return row[0]

    tenant_id = uuid4()
    await set_current_tenant(session, tenant_id)
    await session.execute(
        text("INSERT INTO tenants (id, name, slug) VALUES (:id, :name, :slug) ON CONFLICT (slug) DO NOTHING"),
        {"id": str(tenant_id), "name": name, "slug": slug},
    )
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if not row:
        raise RuntimeError("Failed to create or load base tenant")
    return row[0]


async def _seed_security(session: AsyncSession) -> None:
    """Seed built-in roles and permissions and tie them together."""
    for code in PERMISSION_CODES:
        await session.execute(
            text(
                """
                INSERT INTO permissions (tenant_id, code, description)
                VALUES (NULLIF(current_setting('app.tenant_id', true), '')::uuid, :code, :desc)
                ON CONFLICT ON CONSTRAINT uq_permissions_tenant_code DO NOTHING
                """
            ),
            {"code": code, "desc": code.replace(":", " ").title()},
        )

    for name, description in ROLE_DESCRIPTIONS.items():
        await session.execute(
            text(
                """
                INSERT INTO roles (tenant_id, name, description)
                VALUES (NULLIF(current_setting('app.tenant_id', true), '')::uuid, :name, :desc)
                ON CONFLICT ON CONSTRAINT uq_roles_tenant_name DO NOTHING
                """
            ),
            {"name": name, "desc": description},
        )

    res = await session.execute(text(_TENANT_ROWS.format(cols="id, name", table="roles")))
    role_ids = {name: rid for rid, name in res.all()}
    res = await session.execute(text(_TENANT_ROWS.format(cols="id, code", table="permissions")))
    perm_ids = {code: pid for pid, code in res.all()}

    for role_name, codes in ROLE_PERMISSIONS.items():
        role_id = role_ids.get(role_name)
        if role_id is None:
            continue
        for code in codes:
            await session.execute(
                text(
                    """
                    INSERT INTO role_permissions (tenant_id, role_id, permission_id)
                    VALUES (NULLIF(current_setting('app.tenant_id', true), '')::uuid, :rid, :pid)
                    ON CONFLICT ON CONSTRAINT uq_role_permissions_tenant_role_permission DO NOTHING
                    """
                ),
                {"rid": str(role_id), "pid": str(perm_ids[code])},
            )


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
