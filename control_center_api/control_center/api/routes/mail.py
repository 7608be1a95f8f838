from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_roles
from control_center.db.enums import MailFolder
from control_center.repositories.mail import EmailAccountRepository, MailMessageRepository
from control_center.schemas.mail import EmailAccountCreate, EmailAccountRead, MailMessageRead, MailMessageUpdate
from control_center.services.records import DuplicateRecordError, RecordService

router = APIRouter(prefix="/mail", tags=["Mail"])

_mail = Depends(require_roles("admin", "editor", "mail:manage"))


def get_account_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> RecordService:
    return RecordService(EmailAccountRepository(session), tenant_id, exclude=("password",))


def get_message_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> RecordService:
    return RecordService(MailMessageRepository(session), tenant_id)


# PUBLIC_INTERFACE
@router.get("/accounts", response_model=List[EmailAccountRead], summary="List email accounts", dependencies=[_mail])
async def list_accounts(
    site_id: Optional[UUID] = Query(None),
    service: RecordService = Depends(get_account_service),
) -> List[EmailAccountRead]:
    return [EmailAccountRead.model_validate(a) for a in await service.repo.list_accounts(site_id=site_id)]


# PUBLIC_INTERFACE
@router.post(
    "/accounts",
    response_model=EmailAccountRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create email account",
    dependencies=[_mail],
)
async def create_account(
    payload: EmailAccountCreate,
    service: RecordService = Depends(get_account_service),
) -> EmailAccountRead:
    try:
        account = await service.create(**payload.model_dump())
    except DuplicateRecordError:
        raise HTTPException(status_code=409, detail="Email account already exists")
    return EmailAccountRead.model_validate(account)


# PUBLIC_INTERFACE
@router.get(
    "/messages",
    response_model=List[MailMessageRead],
    summary="List messages",
    description="Messages of a mailbox folder, newest first.",
    dependencies=[_mail],
)
async def list_messages(
    account_id: Optional[UUID] = Query(None, description="Email account id"),
    folder: MailFolder = Query(MailFolder.INBOX),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: RecordService = Depends(get_message_service),
) -> List[MailMessageRead]:
    items = await service.repo.list_messages(email_account_id=account_id, folder=folder.value, limit=limit, offset=offset)
    return [MailMessageRead.model_validate(m) for m in items]


# PUBLIC_INTERFACE
@router.patch(
    "/messages/{message_id}",
    response_model=MailMessageRead,
    summary="Update message",
    description="Mark read/starred or move the message to another folder.",
    dependencies=[_mail],
)
async def update_message(
    payload: MailMessageUpdate,
    message_id: UUID = Path(...),
    service: RecordService = Depends(get_message_service),
) -> MailMessageRead:
    values = payload.model_dump(exclude_unset=True)
    if payload.folder is not None:
        values["folder"] = payload.folder.value
    message = await service.update(message_id, **values)
    if not message:
        raise HTTPException(status_code=404, detail="Message not found")
    return MailMessageRead.model_validate(message)


# PUBLIC_INTERFACE
@router.delete(
    "/messages/{message_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete message",
    dependencies=[_mail],
)
async def delete_message(message_id: UUID = Path(...), service: RecordService = Depends(get_message_service)) -> None:
    if not await service.delete(message_id):
        raise HTTPException(status_code=404, detail="Message not found")
