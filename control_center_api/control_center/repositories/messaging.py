from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update

from control_center.db.models.messaging import WhatsAppChat, WhatsAppMessage
from .base import BaseRepository


class WhatsAppChatRepository(BaseRepository[WhatsAppChat]):
    """WhatsApp conversations, pinned chats first, then most recent."""

    model = WhatsAppChat

    async def list_chats(self, limit: int = 100, offset: int = 0) -> List[WhatsAppChat]:
        stmt = (
            select(WhatsAppChat)
            .order_by(
                WhatsAppChat.is_pinned.desc(),
                WhatsAppChat.last_message_at.desc().nulls_last(),
            )
            .offset(offset)
            .limit(limit)
        )
        return await self.all(stmt)

    async def get_by_phone(self, contact_phone: str) -> Optional[WhatsAppChat]:
        return await self.scalar_one_or_none(select(WhatsAppChat).where(WhatsAppChat.contact_phone == contact_phone))


class WhatsAppMessageRepository(BaseRepository[WhatsAppMessage]):
    """Messages within a WhatsApp chat."""

    model = WhatsAppMessage

    async def list_for_chat(self, chat_id: UUID, limit: int = 200, offset: int = 0) -> List[WhatsAppMessage]:
        stmt = (
            select(WhatsAppMessage)
            .where(WhatsAppMessage.chat_id == chat_id)
            .order_by(WhatsAppMessage.created_at)
            .offset(offset)
            .limit(limit)
        )
        return await self.all(stmt)

    async def set_status_by_wa_id(self, wa_message_id: str, status: str) -> int:
        """Update delivery status of the message(s) carrying a Cloud API id; returns rows touched."""
        stmt = (
            update(WhatsAppMessage)
            .where(WhatsAppMessage.wa_message_id == wa_message_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        result = await self.execute(stmt)
        return int(result.rowcount or 0)
