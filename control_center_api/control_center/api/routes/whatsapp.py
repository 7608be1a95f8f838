from __future__ import annotations

import logging
from typing import Any, Dict, List
from uuid import UUID

import httpx
from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_roles
from control_center.core.settings import get_app_settings
from control_center.db.session import open_tenant_session
from control_center.schemas.messaging import (
    WebhookIngestResult,
    WhatsAppChatRead,
    WhatsAppChatUpdate,
    WhatsAppMessageRead,
    WhatsAppSendRequest,
    WhatsAppSendResponse,
)
from control_center.services.relays import RelayError, get_http_client
from control_center.services.whatsapp import WhatsAppService, verify_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whatsapp", tags=["WhatsApp"])

_messaging = Depends(require_roles("admin", "editor", "whatsapp:manage"))


def get_whatsapp_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
    client: httpx.AsyncClient = Depends(get_http_client),
) -> WhatsAppService:
    return WhatsAppService(session, tenant_id, client=client)


# PUBLIC_INTERFACE
@router.get("/chats", response_model=List[WhatsAppChatRead], summary="List chats", dependencies=[_messaging])
async def list_chats(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: WhatsAppService = Depends(get_whatsapp_service),
) -> List[WhatsAppChatRead]:
    """Pinned chats first, then most recent activity."""
    return [WhatsAppChatRead.model_validate(c) for c in await service.list_chats(limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.get(
    "/chats/{chat_id}/messages",
    response_model=List[WhatsAppMessageRead],
    summary="List chat messages",
    dependencies=[_messaging],
)
async def list_messages(
    chat_id: UUID = Path(...),
    limit: int = Query(200, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: WhatsAppService = Depends(get_whatsapp_service),
) -> List[WhatsAppMessageRead]:
    return [WhatsAppMessageRead.model_validate(m) for m in await service.list_messages(chat_id, limit=limit, offset=offset)]


# PUBLIC_INTERFACE
@router.post("/chats/{chat_id}/read", response_model=WhatsAppChatRead, summary="Mark chat read", dependencies=[_messaging])
async def mark_chat_read(chat_id: UUID = Path(...), service: WhatsAppService = Depends(get_whatsapp_service)) -> WhatsAppChatRead:
    chat = await service.mark_read(chat_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return WhatsAppChatRead.model_validate(chat)


# PUBLIC_INTERFACE
@router.patch("/chats/{chat_id}", response_model=WhatsAppChatRead, summary="Pin or mute chat", dependencies=[_messaging])
async def update_chat(
    payload: WhatsAppChatUpdate,
    chat_id: UUID = Path(...),
    service: WhatsAppService = Depends(get_whatsapp_service),
) -> WhatsAppChatRead:
    chat = await service.update_flags(chat_id, is_pinned=payload.is_pinned, is_muted=payload.is_muted)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return WhatsAppChatRead.model_validate(chat)


# PUBLIC_INTERFACE
@router.post(
    "/send",
    response_model=WhatsAppSendResponse,
    summary="Send message",
    description=(
        "Send a text message through the WhatsApp Cloud API. Without WHATSAPP_ACCESS_TOKEN and "
        "WHATSAPP_PHONE_NUMBER_ID the message is only stored (mock mode)."
    ),
    dependencies=[_messaging],
)
async def send_message(
    payload: WhatsAppSendRequest,
    service: WhatsAppService = Depends(get_whatsapp_service),
):
    try:
        return await service.send(payload)
    except RelayError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.body.as_dict())


# Webhook: called by Meta, which sends no tenant header or bearer token, so the
# tenant is part of the callback URL.

# PUBLIC_INTERFACE
@router.get(
    "/webhook/{tenant_id}",
    response_class=PlainTextResponse,
    summary="Webhook verification",
    description="Echo hub.challenge when hub.mode is 'subscribe' and hub.verify_token matches; 403 otherwise.",
)
async def verify_whatsapp_webhook(
    tenant_id: UUID = Path(...),
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
) -> PlainTextResponse:
    echoed = verify_webhook(mode, token, challenge, get_app_settings().WHATSAPP_WEBHOOK_VERIFY_TOKEN)
    if echoed is None:
        logger.warning("WhatsApp webhook verification failed for tenant %s", tenant_id)
        return PlainTextResponse("Forbidden", status_code=status.HTTP_403_FORBIDDEN)
    logger.info("WhatsApp webhook verified for tenant %s", tenant_id)
    return PlainTextResponse(echoed)


# PUBLIC_INTERFACE
@router.post(
    "/webhook/{tenant_id}",
    response_model=WebhookIngestResult,
    summary="Webhook ingest",
    description="Store inbound messages and apply delivery statuses from a Cloud API notification.",
)
async def ingest_whatsapp_webhook(
    tenant_id: UUID = Path(...),
    payload: Dict[str, Any] = Body(...),
) -> WebhookIngestResult:
    async with open_tenant_session(tenant_id) as session:
        return await WhatsAppService(session, tenant_id).ingest_webhook(payload)
