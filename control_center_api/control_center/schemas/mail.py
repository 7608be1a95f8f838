from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from control_center.db.enums import MailFolder


class EmailAccountRead(BaseModel):
    """Mailbox read model (password never returned)."""
    id: UUID = Field(...)
    site_id: Optional[UUID] = Field(None)
    name: str = Field(...)
    email: str = Field(...)
    type: str = Field(..., description="imap/gmail/outlook/mac")
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class EmailAccountCreate(BaseModel):
    site_id: Optional[UUID] = Field(None)
    name: str = Field(..., min_length=1)
    email: EmailStr = Field(...)
    type: str = Field("imap")
    password: Optional[str] = Field(None)


class MailMessageRead(BaseModel):
    id: UUID = Field(...)
    email_account_id: UUID = Field(...)
    folder: MailFolder = Field(...)
    sender: str = Field(...)
    recipients: List[str] = Field(default_factory=list)
    subject: Optional[str] = Field(None)
    body: Optional[str] = Field(None)
    is_read: bool = Field(False)
    is_starred: bool = Field(False)
    received_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(...)

    class Config:
        from_attributes = True


class MailMessageUpdate(BaseModel):
    """Flag or move a message."""
    is_read: Optional[bool] = Field(None)
    is_starred: Optional[bool] = Field(None)
    folder: Optional[MailFolder] = Field(None)
