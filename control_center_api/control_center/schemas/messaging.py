from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WhatsAppChatRead(BaseModel):
    id: UUID = Field(...)
    contact_phone: str = Field(...)
    contact_name: Optional[str] = Field(None)
    profile_picture_url: Optional[str] = Field(None)
    last_message_at: Optional[datetime] = Field(None)
    last_message_preview: Optional[str] = Field(None)
    unread_count: int = Field(0)
    is_pinned: bool = Field(False)
    is_muted: bool = Field(False)

    class Config:
        from_attributes = True


class WhatsAppChatUpdate(BaseModel):
    """Pin/mute toggles."""
    is_pinned: Optional[bool] = Field(None)
    is_muted: Optional[bool] = Field(None)


class WhatsAppMessageRead(BaseModel):
    id: UUID = Field(...)
    chat_id: UUID = Field(...)
    wa_message_id: Optional[str] = Field(None)
    direction: str = Field(..., description="inbound/outbound")
    content: Optional[str] = Field(None)
    media_type: Optional[str] = Field(None)
    media_url: Optional[str] = Field(None)
    status: Optional[str] = Field(None)
    created_at: datetime = Field(...)

    class Config:
        from_attributes = True


class WhatsAppSendRequest(BaseModel):
    """Outbound text message. `to` and `message` are checked by the handler."""
    to: Optional[str] = Field(None, description="Recipient phone number")
    message: Optional[str] = Field(None, description="Text body")
    chat_id: Optional[UUID] = Field(None, alias="chatId", description="Chat to store the message in")

    class Config:
        populate_by_name = True


class WhatsAppSendResponse(BaseModel):
    success: bool = Field(True)
    message_id: Optional[str] = Field(None)
    mock: bool = Field(False, description="True when the Cloud API is not configured")
    stored_message_id: Optional[UUID] = Field(None, description="Row id of the stored outbound message")
    note: Optional[str] = Field(None)


class WebhookIngestResult(BaseModel):
    success: bool = Field(True)
    messages: int = Field(0, description="Inbound messages stored")
    statuses: int = Field(0, description="Status updates applied")
    chat_ids: List[UUID] = Field(default_factory=list)
