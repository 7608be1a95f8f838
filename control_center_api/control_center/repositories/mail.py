from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select

from control_center.db.models.mail import EmailAccount, MailMessage
from .base import BaseRepository


class EmailAccountRepository(BaseRepository[EmailAccount]):
    """Mailboxes attached to sites."""

    model = EmailAccount

    async def list_accounts(self, *, site_id: Optional[UUID] = None) -> List[EmailAccount]:
        stmt = select(EmailAccount)
        if site_id:
            stmt = stmt.where(EmailAccount.site_id == site_id)
        return await self.all(stmt.order_by(EmailAccount.email))


class MailMessageRepository(BaseRepository[MailMessage]):
    """Messages stored per mailbox folder."""

    model = MailMessage

    async def list_messages(
        self,
        *,
        email_account_id: Optional[UUID] = None,
        folder: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MailMessage]:
        stmt = select(MailMessage)
        if email_account_id:
            stmt = stmt.where(MailMessage.email_account_id == email_account_id)
        if folder:
            stmt = stmt.where(MailMessage.folder == folder)
        stmt = stmt.order_by(MailMessage.received_at.desc().nulls_last(), MailMessage.created_at.desc())
        return await self.all(stmt.offset(offset).limit(limit))
