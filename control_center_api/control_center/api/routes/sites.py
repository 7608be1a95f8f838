from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_roles
from control_center.schemas.sites import (
    BulkImportResult,
    ImportedAppCreate,
    ImportedAppRead,
    IntegrationBulkImport,
    SiteCreate,
    SiteIntegrationRead,
    SiteIntegrationUpsert,
    SiteRead,
    SiteRename,
    SiteUpdate,
)
from control_center.services.records import DuplicateRecordError, SiteService

router = APIRouter(prefix="/sites", tags=["Sites"])

_view = Depends(require_roles("admin", "editor", "sites:view"))
_manage = Depends(require_roles("admin", "sites:manage"))


def get_site_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> SiteService:
    return SiteService(session, tenant_id)


async def _require_site(service: SiteService, site_id: UUID):
    site = await service.sites.get(site_id)
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    return site


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[SiteRead],
    summary="List sites",
    description="List managed sites of the tenant ordered by name.",
    dependencies=[_view],
)
async def list_sites(
    service: SiteService = Depends(get_site_service),
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by site status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[SiteRead]:
    items = await service.sites.list_sites(status=status_filter, limit=limit, offset=offset)
    return [SiteRead.model_validate(s) for s in items]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=SiteRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create site",
    dependencies=[_manage],
)
async def create_site(payload: SiteCreate, service: SiteService = Depends(get_site_service)) -> SiteRead:
    try:
        site = await service.create(**payload.model_dump())
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="A site with this name already exists")
    return SiteRead.model_validate(site)


# PUBLIC_INTERFACE
@router.get("/{site_id}", response_model=SiteRead, summary="Get site", dependencies=[_view])
async def get_site(site_id: UUID = Path(...), service: SiteService = Depends(get_site_service)) -> SiteRead:
    return SiteRead.model_validate(await _require_site(service, site_id))


# PUBLIC_INTERFACE
@router.patch("/{site_id}", response_model=SiteRead, summary="Update site", dependencies=[_manage])
async def update_site(
    payload: SiteUpdate,
    site_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> SiteRead:
    try:
        site = await service.update(site_id, **payload.model_dump(exclude_unset=True))
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="A site with this name already exists")
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    return SiteRead.model_validate(site)


# PUBLIC_INTERFACE
@router.post(
    "/{site_id}/rename",
    response_model=SiteRead,
    summary="Rename site",
    description="Change the site name; names are unique per tenant (409 on clash).",
    dependencies=[_manage],
)
async def rename_site(
    payload: SiteRename,
    site_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> SiteRead:
    try:
        site = await service.rename(site_id, payload.name)
    except DuplicateRecordError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")
    return SiteRead.model_validate(site)


# PUBLIC_INTERFACE
@router.delete("/{site_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete site", dependencies=[_manage])
async def delete_site(site_id: UUID = Path(...), service: SiteService = Depends(get_site_service)) -> None:
    if not await service.delete(site_id):
        raise HTTPException(status_code=404, detail="Site not found")


# Imported app (GitHub source)

# PUBLIC_INTERFACE
@router.get("/{site_id}/imported-app", response_model=ImportedAppRead, summary="Get imported app", dependencies=[_view])
async def get_imported_app(site_id: UUID = Path(...), service: SiteService = Depends(get_site_service)) -> ImportedAppRead:
    app = await service.imported_apps.get_for_site(site_id)
    if not app:
        raise HTTPException(status_code=404, detail="Site has no imported app")
    return ImportedAppRead.model_validate(app)


# PUBLIC_INTERFACE
@router.put(
    "/{site_id}/imported-app",
    response_model=ImportedAppRead,
    summary="Link imported app",
    description="Create or replace the GitHub repository a site was imported from.",
    dependencies=[_manage],
)
async def put_imported_app(
    payload: ImportedAppCreate,
    site_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> ImportedAppRead:
    await _require_site(service, site_id)
    app = await service.link_imported_app(
        site_id,
        payload.github_repo_url,
        default_branch=payload.github_default_branch,
        visibility=payload.github_visibility,
        detected_integrations=payload.detected_integrations,
    )
    return ImportedAppRead.model_validate(app)


# Site integrations

# PUBLIC_INTERFACE
@router.get(
    "/{site_id}/integrations",
    response_model=List[SiteIntegrationRead],
    summary="List site integrations",
    dependencies=[_view],
)
async def list_site_integrations(
    site_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> List[SiteIntegrationRead]:
    return [SiteIntegrationRead.model_validate(i) for i in await service.integrations.list_for_site(site_id)]


# PUBLIC_INTERFACE
@router.put(
    "/{site_id}/integrations",
    response_model=SiteIntegrationRead,
    summary="Upsert site integration",
    dependencies=[_manage],
)
async def upsert_site_integration(
    payload: SiteIntegrationUpsert,
    site_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> SiteIntegrationRead:
    await _require_site(service, site_id)
    row = await service.upsert_integration(site_id, payload.integration_id, payload.status, payload.config)
    return SiteIntegrationRead.model_validate(row)


# PUBLIC_INTERFACE
@router.post(
    "/{site_id}/integrations/import",
    response_model=BulkImportResult,
    summary="Bulk import detected integrations",
    description="Link integrations detected from the site's package.json; ones already linked are skipped.",
    dependencies=[_manage],
)
async def bulk_import_integrations(
    payload: IntegrationBulkImport,
    site_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> BulkImportResult:
    await _require_site(service, site_id)
    added, skipped = await service.bulk_import_integrations(site_id, payload.integration_ids, payload.status)
    return BulkImportResult(added=added, skipped=skipped)


# PUBLIC_INTERFACE
@router.delete(
    "/{site_id}/integrations/{integration_row_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete site integration",
    dependencies=[_manage],
)
async def delete_site_integration(
    site_id: UUID = Path(...),
    integration_row_id: UUID = Path(...),
    service: SiteService = Depends(get_site_service),
) -> None:
    if not await service.delete_integration(integration_row_id):
        raise HTTPException(status_code=404, detail="Integration not found")
