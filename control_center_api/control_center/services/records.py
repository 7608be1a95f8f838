from __future__ import annotations

import logging
from typing import Any, Generic, List, Optional, Tuple, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError

from control_center.db.models.security import Tenant
from control_center.db.models.sites import ImportedApp, Site
from control_center.db.session import open_tenant_session
from control_center.repositories.base import BaseRepository
from control_center.repositories.security import TenantRepository
from control_center.repositories.sites import ImportedAppRepository, SiteIntegrationRepository, SiteRepository
from control_center.services.base import BaseService
from control_center.services.realtime import BroadcastManager
from control_center.services.relays import parse_github_repo

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class DuplicateRecordError(Exception):
    """A uniqueness constraint rejected the write."""


class RecordService(BaseService, Generic[ModelT]):
    """
    CRUD over a single repository that publishes '<table>.<operation>' on the
    tenant change feed after every committed mutation.

    `exclude` names columns stripped from published records (secrets).
    """

    def __init__(
        self,
        repo: BaseRepository[ModelT],
        tenant_id: Optional[UUID] = None,
        broadcaster: Optional[BroadcastManager] = None,
        exclude: Tuple[str, ...] = (),
    ) -> None:
        super().__init__(repo.session, tenant_id, broadcaster)
        self.repo = repo
        self.table = repo.model.__tablename__
        self.exclude = exclude

    # PUBLIC_INTERFACE
    async def create(self, **values: Any) -> ModelT:
        try:
            entity = await self.repo.create(**values)
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateRecordError(str(exc.orig)) from exc
        await self.publish(self.table, "insert", entity, exclude=self.exclude)
        return entity

    # PUBLIC_INTERFACE
    async def update(self, entity_id: UUID, **values: Any) -> Optional[ModelT]:
        try:
            entity = await self.repo.update(entity_id, **values)
        except IntegrityError as exc:
            await self.session.rollback()
            raise DuplicateRecordError(str(exc.orig)) from exc
        if entity is not None:
            await self.publish(self.table, "update", entity, exclude=self.exclude)
        return entity

    # PUBLIC_INTERFACE
    async def delete(self, entity_id: UUID) -> bool:
        deleted = await self.repo.delete(entity_id)
        if deleted:
            await self.publish(self.table, "delete", record_id=entity_id)
        return deleted


class SiteService(RecordService[Site]):
    """Sites plus the per-site records that hang off them (imported app, integrations)."""

    def __init__(self, session, tenant_id: Optional[UUID] = None, broadcaster: Optional[BroadcastManager] = None) -> None:
        super().__init__(SiteRepository(session), tenant_id, broadcaster)
        self.sites: SiteRepository = self.repo  # type: ignore[assignment]
        self.integrations = SiteIntegrationRepository(session)
        self.imported_apps = ImportedAppRepository(session)

    # PUBLIC_INTERFACE
    async def rename(self, site_id: UUID, name: str) -> Optional[Site]:
        """
        Rename a site.

        Raises:
            DuplicateRecordError: another site in the tenant already uses the name.
        """
        clash = await self.sites.get_by_name(name)
        if clash is not None and clash.id != site_id:
            raise DuplicateRecordError(f"A site named '{name}' already exists")
        return await self.update(site_id, name=name)

    # PUBLIC_INTERFACE
    async def bulk_import_integrations(self, site_id: UUID, integration_ids: List[str], status: str) -> Tuple[List[str], List[str]]:
        """Link detected integrations to a site; returns (added, skipped)."""
        added = await self.integrations.bulk_import(site_id, integration_ids, status=status)
        skipped = [i for i in dict.fromkeys(integration_ids) if i not in added]
        for integration_id in added:
            await self.publish("site_integrations", "insert", record_id=f"{site_id}:{integration_id}")
        logger.info("Imported %d integrations for site %s (%d skipped)", len(added), site_id, len(skipped))
        return added, skipped

    # PUBLIC_INTERFACE
    async def upsert_integration(self, site_id: UUID, integration_id: str, status: Optional[str], config: dict):
        row = await self.integrations.upsert(site_id=site_id, integration_id=integration_id, status=status, config=config)
        await self.publish("site_integrations", "update", row)
        return row

    # PUBLIC_INTERFACE
    async def delete_integration(self, integration_row_id: UUID) -> bool:
        deleted = await self.integrations.delete(integration_row_id)
        if deleted:
            await self.publish("site_integrations", "delete", record_id=integration_row_id)
        return deleted

    # PUBLIC_INTERFACE
    async def link_imported_app(
        self,
        site_id: UUID,
        github_repo_url: str,
        default_branch: Optional[str] = None,
        visibility: Optional[str] = None,
        detected_integrations: Optional[List[str]] = None,
    ) -> ImportedApp:
        """Create or replace the GitHub source record of a site."""
        owner, repo = parse_github_repo(github_repo_url)
        values = dict(
            github_repo_url=github_repo_url,
            github_repo_owner=owner,
            github_repo_name=repo,
            github_default_branch=default_branch,
            github_visibility=visibility,
            detected_integrations=list(detected_integrations or []),
        )
        existing = await self.imported_apps.get_for_site(site_id)
        if existing is None:
            app = await self.imported_apps.create(site_id=site_id, **values)
            await self.publish("imported_apps", "insert", app)
            return app
        for key, value in values.items():
            setattr(existing, key, value)
        await self.imported_apps.commit()
        await self.publish("imported_apps", "update", existing)
        return existing


# PUBLIC_INTERFACE
async def create_tenant(values: dict, broadcaster: Optional[BroadcastManager] = None) -> Tenant:
    """
    Insert a tenant through a session bound to its new id.

    The tenants RLS policy only admits the row matching `app.tenant_id`, so the id
    is generated up front.
    """
    tenant_id = uuid4()
    async with open_tenant_session(tenant_id) as session:
        service = RecordService(TenantRepository(session), tenant_id, broadcaster)
        tenant = await service.create(id=tenant_id, **values)
    logger.info("Created tenant %s (%s)", tenant.slug, tenant.id)
    return tenant
