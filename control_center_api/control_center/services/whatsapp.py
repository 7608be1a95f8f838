from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.settings import AppSettings, get_app_settings
from control_center.db.enums import MessageDirection
from control_center.db.models.messaging import WhatsAppChat, WhatsAppMessage
from control_center.repositories.messaging import WhatsAppChatRepository, WhatsAppMessageRepository
from control_center.schemas.messaging import WebhookIngestResult, WhatsAppSendRequest, WhatsAppSendResponse
from control_center.services.base import BaseService
from control_center.services.realtime import BroadcastManager
from control_center.services.relays import RelayError

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 100
MOCK_NOTE = "Configure WHATSAPP_ACCESS_TOKEN and WHATSAPP_PHONE_NUMBER_ID for real delivery."


# PUBLIC_INTERFACE
def verify_webhook(mode: Optional[str], token: Optional[str], challenge: Optional[str], expected_token: str) -> Optional[str]:
    """Return the challenge to echo when the subscription handshake is valid, else None."""
    if mode == "subscribe" and token == expected_token:
        return challenge or ""
    return None


def _first(items: Any) -> Dict[str, Any]:
    """First element of a JSON list when it is an object, else an empty dict."""
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


def _objects(items: Any) -> List[Dict[str, Any]]:
    return [item for item in items if isinstance(item, dict)] if isinstance(items, list) else []


def _first_change_value(payload: Dict[str, Any]) -> Dict[str, Any]:
    value = _first(_first(payload.get("entry")).get("changes")).get("value")
    return value if isinstance(value, dict) else {}


def _preview(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text[:PREVIEW_LENGTH]


class WhatsAppService(BaseService):
    """
    WhatsApp Cloud API integration: webhook ingestion, outbound sends and chat
    housekeeping. Every change is published on the tenant change feed.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[AppSettings] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        super().__init__(session, tenant_id, broadcaster)
        self.client = client
        self.settings = settings or get_app_settings()
        self.chats = WhatsAppChatRepository(session)
        self.messages = WhatsAppMessageRepository(session)

    # PUBLIC_INTERFACE
    async def ingest_webhook(self, payload: Dict[str, Any]) -> WebhookIngestResult:
        """
        Store inbound messages and apply delivery status updates from a Cloud API payload.

        Only the first entry/change is read, as the Cloud API delivers one per call.
        """
        value = _first_change_value(payload)
        profile = _first(value.get("contacts")).get("profile")
        contact_name = profile.get("name") if isinstance(profile, dict) else None
        result = WebhookIngestResult()
        now = datetime.now(timezone.utc)

        for message in _objects(value.get("messages")):
            sender = message.get("from")
            if not sender:
                continue
            body = message.get("text")
            text = body.get("body") if isinstance(body, dict) else None
            chat, created = await self._find_or_create_chat(sender, contact_name or sender, now)
            chat.last_message_at = now
            chat.last_message_preview = _preview(text)
            chat.unread_count = 1 if created else (chat.unread_count or 0) + 1
            stored = WhatsAppMessage(
                chat_id=chat.id,
                wa_message_id=message.get("id"),
                direction=MessageDirection.INBOUND.value,
                content=text,
                media_type=message.get("type") if message.get("type") != "text" else None,
                status="received",
            )
            await self.messages.add(stored)
            await self.session.flush()
            result.messages += 1
            if chat.id not in result.chat_ids:
                result.chat_ids.append(chat.id)
            logger.info("Received WhatsApp message %s from %s", message.get("id"), sender)
            await self.publish("whatsapp_chats", "insert" if created else "update", chat)
            await self.publish("whatsapp_messages", "insert", stored)

        for status in _objects(value.get("statuses")):
            wa_id, new_status = status.get("id"), status.get("status")
            if not wa_id or not new_status:
                continue
            touched = await self.messages.set_status_by_wa_id(wa_id, new_status)
            result.statuses += 1
            logger.info("WhatsApp message %s status: %s (%d rows)", wa_id, new_status, touched)
            if touched:
                await self.publish("whatsapp_messages", "update", record_id=wa_id)

        await self.messages.commit()
        return result

    async def _find_or_create_chat(self, phone: str, name: str, now: datetime) -> tuple[WhatsAppChat, bool]:
        chat = await self.chats.get_by_phone(phone)
        if chat is not None:
            return chat, False
        chat = WhatsAppChat(contact_phone=phone, contact_name=name, last_message_at=now, unread_count=0)
        await self.chats.add(chat)
        await self.session.flush()
        return chat, True

    # PUBLIC_INTERFACE
    async def send(self, request: WhatsAppSendRequest) -> WhatsAppSendResponse:
        """
        Send a text message; without Cloud API credentials the message is only stored (mock mode).

        Raises:
            RelayError: 400 when `to` or `message` is missing, 500 when the Graph API rejects the send.
        """
        if not request.to or not request.message:
            raise RelayError(400, "Missing required fields: to, message")

        token = self.settings.WHATSAPP_ACCESS_TOKEN
        phone_number_id = self.settings.WHATSAPP_PHONE_NUMBER_ID
        if not token or not phone_number_id:
            logger.info("WhatsApp API credentials not configured, using mock mode")
            stored = await self._store_outbound(request, wa_message_id=None)
            note = f"Message stored locally. {MOCK_NOTE}" if stored else f"WhatsApp API not configured. {MOCK_NOTE}"
            return WhatsAppSendResponse(mock=True, stored_message_id=stored.id if stored else None, note=note)

        if self.client is None:
            raise RuntimeError("WhatsAppService.send needs an HTTP client when the Cloud API is configured")
        body = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": re.sub(r"\D", "", request.to),
            "type": "text",
            "text": {"body": request.message},
        }
        try:
            resp = await self.client.post(
                f"{self.settings.WHATSAPP_GRAPH_URL}/{phone_number_id}/messages",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.exception("WhatsApp send request failed")
            raise RelayError(500, str(exc)) from exc

        data = resp.json() if resp.content else {}
        if resp.is_error:
            logger.error("WhatsApp API error: %s", data)
            raise RelayError(500, (data.get("error") or {}).get("message") or "Failed to send message")

        wa_id = ((data.get("messages") or [{}])[0]).get("id")
        logger.info("WhatsApp message sent: %s", wa_id)
        stored = await self._store_outbound(request, wa_message_id=wa_id)
        return WhatsAppSendResponse(message_id=wa_id, stored_message_id=stored.id if stored else None)

    async def _store_outbound(self, request: WhatsAppSendRequest, wa_message_id: Optional[str]) -> Optional[WhatsAppMessage]:
        if request.chat_id is None:
            return None
        chat = await self.chats.get(request.chat_id)
        if chat is None:
            raise RelayError(404, "Chat not found")
        stored = WhatsAppMessage(
            chat_id=chat.id,
            wa_message_id=wa_message_id,
            direction=MessageDirection.OUTBOUND.value,
            content=request.message,
            status="sent",
        )
        await self.messages.add(stored)
        chat.last_message_at = datetime.now(timezone.utc)
        chat.last_message_preview = _preview(request.message)
        await self.messages.commit()
        await self.session.refresh(stored)
        await self.publish("whatsapp_messages", "insert", stored)
        await self.publish("whatsapp_chats", "update", chat)
        return stored

    # PUBLIC_INTERFACE
    async def list_chats(self, limit: int = 100, offset: int = 0) -> List[WhatsAppChat]:
        return await self.chats.list_chats(limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def list_messages(self, chat_id: UUID, limit: int = 200, offset: int = 0) -> List[WhatsAppMessage]:
        return await self.messages.list_for_chat(chat_id, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def mark_read(self, chat_id: UUID) -> Optional[WhatsAppChat]:
        chat = await self.chats.get(chat_id)
        if chat is None:
            return None
        chat.unread_count = 0
        await self.chats.commit()
        await self.publish("whatsapp_chats", "update", chat)
        return chat

    # PUBLIC_INTERFACE
    async def update_flags(self, chat_id: UUID, *, is_pinned: Optional[bool] = None, is_muted: Optional[bool] = None) -> Optional[WhatsAppChat]:
        chat = await self.chats.update(chat_id, is_pinned=is_pinned, is_muted=is_muted)
        if chat is not None:
            await self.publish("whatsapp_chats", "update", chat)
        return chat
