from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_roles
from control_center.repositories.sites import CredentialRepository
from control_center.schemas.sites import CredentialCreate, CredentialRead, CredentialUpdate
from control_center.services.records import RecordService

router = APIRouter(prefix="/credentials", tags=["Credentials"])

_manage = Depends(require_roles("admin", "credentials:manage"))


def get_credential_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> RecordService:
    # passwords never leave through the change feed
    return RecordService(CredentialRepository(session), tenant_id, exclude=("password",))


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[CredentialRead],
    summary="List credentials",
    description="Integration logins, optionally for one site. Passwords are masked.",
    dependencies=[_manage],
)
async def list_credentials(
    site_id: Optional[UUID] = Query(None),
    service: RecordService = Depends(get_credential_service),
) -> List[CredentialRead]:
    return [CredentialRead.model_validate(c) for c in await service.repo.list_for_site(site_id)]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=CredentialRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create credential",
    dependencies=[_manage],
)
async def create_credential(
    payload: CredentialCreate,
    service: RecordService = Depends(get_credential_service),
) -> CredentialRead:
    return CredentialRead.model_validate(await service.create(**payload.model_dump()))


# PUBLIC_INTERFACE
@router.patch("/{credential_id}", response_model=CredentialRead, summary="Update credential", dependencies=[_manage])
async def update_credential(
    payload: CredentialUpdate,
    credential_id: UUID = Path(...),
    service: RecordService = Depends(get_credential_service),
) -> CredentialRead:
    cred = await service.update(credential_id, **payload.model_dump(exclude_unset=True))
    if not cred:
        raise HTTPException(status_code=404, detail="Credential not found")
    return CredentialRead.model_validate(cred)


# PUBLIC_INTERFACE
@router.delete(
    "/{credential_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete credential",
    dependencies=[_manage],
)
async def delete_credential(
    credential_id: UUID = Path(...),
    service: RecordService = Depends(get_credential_service),
) -> None:
    if not await service.delete(credential_id):
        raise HTTPException(status_code=404, detail="Credential not found")
