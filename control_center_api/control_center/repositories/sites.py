from __future__ import annotations

from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from control_center.db.models.sites import Credential, ImportedApp, Site, SiteIntegration
from .base import BaseRepository


class SiteRepository(BaseRepository[Site]):
    """Repository for managed sites. All queries are tenant-scoped by Postgres RLS."""

    model = Site

    async def list_sites(self, *, status: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Site]:
        stmt = select(Site)
        if status:
            stmt = stmt.where(Site.status == status)
        stmt = stmt.order_by(Site.name).offset(offset).limit(limit)
        return await self.all(stmt)

    async def get_by_name(self, name: str) -> Optional[Site]:
        return await self.scalar_one_or_none(select(Site).where(Site.name == name))


class ImportedAppRepository(BaseRepository[ImportedApp]):
    """GitHub source metadata of imported sites."""

    model = ImportedApp

    async def get_for_site(self, site_id: UUID) -> Optional[ImportedApp]:
        return await self.scalar_one_or_none(select(ImportedApp).where(ImportedApp.site_id == site_id))

    async def list_with_site_names(self) -> List[Tuple[ImportedApp, str]]:
        stmt = select(ImportedApp, Site.name).join(Site, Site.id == ImportedApp.site_id).order_by(Site.name)
        return [(app, name) for app, name in (await self.execute(stmt)).all()]


class SiteIntegrationRepository(BaseRepository[SiteIntegration]):
    """Integrations enabled per site."""

    model = SiteIntegration

    async def list_for_site(self, site_id: UUID) -> List[SiteIntegration]:
        stmt = (
            select(SiteIntegration)
            .where(SiteIntegration.site_id == site_id)
            .order_by(SiteIntegration.integration_id)
        )
        return await self.all(stmt)

    async def upsert(
        self,
        *,
        site_id: UUID,
        integration_id: str,
        status: Optional[str] = None,
        config: Optional[dict] = None,
    ) -> SiteIntegration:
        """Insert or update the (site, integration) pair."""
        values = {"site_id": site_id, "integration_id": integration_id, "status": status, "config": config or {}}
        stmt = pg_insert(SiteIntegration).values(**values)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_site_integrations_tenant_site_integration",
            set_={"status": stmt.excluded.status, "config": stmt.excluded.config, "updated_at": func.now()},
        ).returning(SiteIntegration.id)
        result = await self.execute(stmt)
        integration_row_id = result.scalar_one()
        await self.commit()
        return await self.get(integration_row_id)  # type: ignore[return-value]

    async def bulk_import(self, site_id: UUID, integration_ids: Iterable[str], status: str = "detected") -> List[str]:
        """Add integrations that are not yet linked to the site; returns the ids actually added."""
        existing = {row.integration_id for row in await self.list_for_site(site_id)}
        added: List[str] = []
        for integration_id in integration_ids:
            if integration_id in existing or integration_id in added:
                continue
            await self.add(SiteIntegration(site_id=site_id, integration_id=integration_id, status=status, config={}))
            added.append(integration_id)
        if added:
            await self.commit()
        return added


class CredentialRepository(BaseRepository[Credential]):
    """Integration logins stored per site."""

    model = Credential

    async def list_for_site(self, site_id: Optional[UUID] = None) -> List[Credential]:
        stmt = select(Credential)
        if site_id:
            stmt = stmt.where(Credential.site_id == site_id)
        stmt = stmt.order_by(Credential.integration_id, Credential.created_at)
        return await self.all(stmt)
