from __future__ import annotations

from typing import Optional
from sqlalchemy import Boolean, Integer, Text, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from control_center.db.base import Base, UUIDPkMixin, CreatedAtMixin, TimestampMixin, TenantMixin
from control_center.db.enums import MessageDirection, values_sql


class WhatsAppChat(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Conversation with a single WhatsApp contact."""
    __tablename__ = "whatsapp_chats"
    __table_args__ = (
        UniqueConstraint("tenant_id", "contact_phone", name="uq_whatsapp_chats_tenant_contact_phone"),
    )

    contact_phone: Mapped[str] = mapped_column(Text, nullable=False)
    contact_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    profile_picture_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_message_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_message_preview: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    unread_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_muted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")


class WhatsAppMessage(UUIDPkMixin, TenantMixin, CreatedAtMixin, Base):
    """Single inbound or outbound WhatsApp message."""
    __tablename__ = "whatsapp_messages"
    __table_args__ = (
        CheckConstraint(f"direction IN ({values_sql(MessageDirection)})", name="direction_valid"),
    )

    chat_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("whatsapp_chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    wa_message_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    direction: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    media_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # received/sent/delivered/read/failed
