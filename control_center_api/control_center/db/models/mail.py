from __future__ import annotations

from typing import Optional
from sqlalchemy import Boolean, Text, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID, ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from control_center.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin, SiteMixin
from control_center.db.enums import MailFolder, values_sql


class EmailAccount(UUIDPkMixin, TenantMixin, TimestampMixin, SiteMixin, Base):
    """Mailbox attached to a site (support@, billing@, ...)."""
    __tablename__ = "email_accounts"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)  # imap/gmail/outlook/mac
    password: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class MailMessage(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Message stored in a mailbox folder."""
    __tablename__ = "mail_messages"
    __table_args__ = (
        CheckConstraint(f"folder IN ({values_sql(MailFolder)})", name="folder_valid"),
    )

    email_account_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("email_accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    folder: Mapped[str] = mapped_column(Text, nullable=False, default=MailFolder.INBOX.value)
    sender: Mapped[str] = mapped_column(Text, nullable=False)
    recipients: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_starred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    received_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)
