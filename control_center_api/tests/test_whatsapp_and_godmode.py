import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import httpx
import pytest

from control_center.core.settings import AppSettings
from control_center.schemas.godmode import GodModeActivateRequest, GodModeDeactivateRequest
from control_center.schemas.messaging import WhatsAppSendRequest
from control_center.services.godmode import GodModeError, GodModeService, client_address
from control_center.services.relays import RelayError
from control_center.services.whatsapp import WhatsAppService, verify_webhook


def _session():
    session = MagicMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    return session


# --- WhatsApp -------------------------------------------------------------------------------


def test_verify_webhook_handshake():
    assert verify_webhook("subscribe", "tok", "12345", "tok") == "12345"
    assert verify_webhook("subscribe", "bad", "12345", "tok") is None
    assert verify_webhook("unsubscribe", "tok", "12345", "tok") is None


@pytest.mark.asyncio
async def test_ingest_webhook_updates_existing_chat_and_statuses():
    chat = SimpleNamespace(id=uuid4(), unread_count=2, last_message_at=None, last_message_preview=None)
    service = WhatsAppService(_session())
    service.chats = MagicMock(get_by_phone=AsyncMock(return_value=chat))
    service.messages = MagicMock(add=AsyncMock(), commit=AsyncMock(), set_status_by_wa_id=AsyncMock(return_value=1))

    payload = {
        "entry": [{
            "changes": [{
                "value": {
                    "contacts": [{"profile": {"name": "Ada"}}],
                    "messages": [{"from": "15550001", "id": "wamid.1", "type": "text", "text": {"body": "x" * 150}}],
                    "statuses": [{"id": "wamid.0", "status": "delivered"}],
                }
            }]
        }]
    }
    result = await service.ingest_webhook(payload)

    assert result.messages == 1
    assert result.statuses == 1
    assert result.chat_ids == [chat.id]
    assert chat.unread_count == 3
    assert len(chat.last_message_preview) == 100
    stored = service.messages.add.await_args.args[0]
    assert stored.direction == "inbound"
    assert stored.status == "received"
    service.messages.set_status_by_wa_id.assert_awaited_once_with("wamid.0", "delivered")
    service.messages.commit.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"entry": [None]},
        {"entry": "x"},
        {"entry": [{"changes": [None]}]},
        {"entry": [{"changes": [{"value": {"contacts": [{"profile": None}], "messages": [None, 3], "statuses": ["x"]}}]}]},
    ],
)
async def test_ingest_webhook_ignores_malformed_shapes(payload):
    service = WhatsAppService(_session())
    service.chats = MagicMock(get_by_phone=AsyncMock())
    service.messages = MagicMock(add=AsyncMock(), commit=AsyncMock(), set_status_by_wa_id=AsyncMock())

    result = await service.ingest_webhook(payload)

    assert (result.messages, result.statuses, result.chat_ids) == (0, 0, [])
    service.messages.add.assert_not_awaited()


@pytest.mark.asyncio
async def test_send_requires_to_and_message():
    service = WhatsAppService(_session(), settings=AppSettings())
    with pytest.raises(RelayError) as exc_info:
        await service.send(WhatsAppSendRequest(to="15550001"))
    assert exc_info.value.status_code == 400


@pytest.mark.asyncio
async def test_send_without_credentials_is_mock_mode():
    settings = AppSettings(WHATSAPP_ACCESS_TOKEN=None, WHATSAPP_PHONE_NUMBER_ID=None)
    service = WhatsAppService(_session(), settings=settings)
    response = await service.send(WhatsAppSendRequest(to="+1 555 0001", message="hi"))
    assert response.mock is True
    assert response.stored_message_id is None
    assert "not configured" in response.note


@pytest.mark.asyncio
async def test_send_posts_to_graph_api():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"messages": [{"id": "wamid.out"}]})

    settings = AppSettings(
        WHATSAPP_ACCESS_TOKEN="token", WHATSAPP_PHONE_NUMBER_ID="999", WHATSAPP_GRAPH_URL="https://graph.test/v18.0"
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        service = WhatsAppService(_session(), client=client, settings=settings)
        response = await service.send(WhatsAppSendRequest(to="+1 (555) 0001", message="hello"))

    assert response.message_id == "wamid.out"
    assert seen["url"] == "https://graph.test/v18.0/999/messages"
    assert seen["body"]["to"] == "15550001"
    assert seen["body"]["text"] == {"body": "hello"}


@pytest.mark.asyncio
async def test_send_graph_error_is_500():
    settings = AppSettings(WHATSAPP_ACCESS_TOKEN="token", WHATSAPP_PHONE_NUMBER_ID="999")
    transport = httpx.MockTransport(lambda request: httpx.Response(400, json={"error": {"message": "Invalid number"}}))
    async with httpx.AsyncClient(transport=transport) as client:
        service = WhatsAppService(_session(), client=client, settings=settings)
        with pytest.raises(RelayError) as exc_info:
            await service.send(WhatsAppSendRequest(to="1", message="hello"))
    assert exc_info.value.status_code == 500
    assert exc_info.value.body.error == "Invalid number"


# --- GodMode --------------------------------------------------------------------------------


def _godmode_row(admin_id, started_at=None):
    now = datetime.now(timezone.utc)
    return SimpleNamespace(
        id=uuid4(), admin_user_id=admin_id, reason="Investigating billing issue", started_at=started_at or now,
        expires_at=now + timedelta(minutes=30), ended_at=None, is_active=True, ip_address=None,
        user_agent=None, actions_log=[],
    )


def _godmode_service(**session_methods):
    service = GodModeService(_session())
    service.sessions = MagicMock(**{name: AsyncMock(return_value=value) for name, value in session_methods.items()})
    service.audit = MagicMock(record=AsyncMock())
    return service


def test_client_address_prefers_forwarded_for():
    assert client_address({"x-forwarded-for": "10.0.0.1, 10.0.0.2", "x-real-ip": "1.1.1.1"}) == "10.0.0.1"
    assert client_address({"x-real-ip": "1.1.1.1"}) == "1.1.1.1"
    assert client_address({}) is None


@pytest.mark.asyncio
async def test_activate_rejects_short_reason():
    service = _godmode_service()
    with pytest.raises(GodModeError) as exc_info:
        await service.activate(uuid4(), GodModeActivateRequest(reason="  short  "))
    assert exc_info.value.status_code == 400
    assert exc_info.value.as_dict() == {"error": "Reason must be at least 10 characters"}


@pytest.mark.asyncio
async def test_activate_conflicts_with_existing_session():
    admin_id = uuid4()
    existing = _godmode_row(admin_id)
    service = _godmode_service(find_active_for_admin=existing)
    with pytest.raises(GodModeError) as exc_info:
        await service.activate(admin_id, GodModeActivateRequest(reason="Investigating billing issue"))
    assert exc_info.value.status_code == 409
    assert exc_info.value.as_dict()["session"]["id"] == str(existing.id)


@pytest.mark.asyncio
async def test_activate_creates_session_and_audits():
    admin_id = uuid4()
    created = _godmode_row(admin_id)
    service = _godmode_service(find_active_for_admin=None, create=created)

    response = await service.activate(
        admin_id, GodModeActivateRequest(reason="Investigating billing issue", duration_minutes=15), ip_address="10.0.0.1"
    )

    assert response.message == "GodMode activated for 15 minutes"
    create_kwargs = service.sessions.create.await_args.kwargs
    assert create_kwargs["is_active"] is True
    assert create_kwargs["ip_address"] == "10.0.0.1"
    audit = service.audit.record.await_args.kwargs
    assert audit["action"] == "godmode_activated"
    assert audit["details"]["duration_minutes"] == 15


@pytest.mark.asyncio
async def test_deactivate_kill_all_ends_every_session():
    service = _godmode_service(end_all_active=4)
    response = await service.deactivate(uuid4(), GodModeDeactivateRequest(kill_all=True))
    assert response.sessions_ended == 4
    assert service.audit.record.await_args.kwargs["action"] == "godmode_kill_switch"


@pytest.mark.asyncio
async def test_deactivate_requires_session_id_and_ownership():
    service = _godmode_service(get_own=None)
    with pytest.raises(GodModeError) as missing_id:
        await service.deactivate(uuid4(), GodModeDeactivateRequest())
    assert missing_id.value.status_code == 400

    with pytest.raises(GodModeError) as not_found:
        await service.deactivate(uuid4(), GodModeDeactivateRequest(session_id=uuid4()))
    assert not_found.value.status_code == 404


@pytest.mark.asyncio
async def test_deactivate_records_duration():
    admin_id = uuid4()
    row = _godmode_row(admin_id, started_at=datetime.now(timezone.utc) - timedelta(minutes=12))
    service = _godmode_service(get_own=row)

    response = await service.deactivate(admin_id, GodModeDeactivateRequest(session_id=row.id))

    assert response.sessions_ended == 1
    assert row.is_active is False and row.ended_at is not None
    audit = service.audit.record.await_args.kwargs
    assert audit["action"] == "godmode_deactivated"
    assert audit["details"]["session_duration_minutes"] == 12
