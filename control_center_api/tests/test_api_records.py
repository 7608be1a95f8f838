from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from control_center.api.main import app
from control_center.api.routes.billing import get_billing_service
from control_center.api.routes.credentials import get_credential_service
from control_center.api.routes.mail import get_message_service
from control_center.db.models.audit import ErrorLog
from control_center.db.models.billing import PaymentProvider
from control_center.repositories.audit import AuditLogRepository, ErrorLogRepository
from control_center.repositories.security import TenantRepository
from control_center.repositories.sites import SiteRepository
from control_center.schemas.billing import PaymentProviderUpsert
from control_center.services.billing import BillingService

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _duplicate():
    return IntegrityError("UPDATE ...", {}, Exception("duplicate key value violates unique constraint"))


def _record_service(client, dependency):
    service = MagicMock()
    service.repo = MagicMock()
    service.update = AsyncMock(return_value=None)
    service.delete = AsyncMock(return_value=False)
    app.dependency_overrides[dependency] = lambda: service
    return service


# --- Unique-constraint clashes on PATCH -----------------------------------------------------


def test_site_update_unique_clash_is_409(client, tenant_headers, db_session, monkeypatch):
    monkeypatch.setattr(SiteRepository, "update", AsyncMock(side_effect=_duplicate()))
    response = client.patch(f"/api/v1/sites/{uuid4()}", json={"domain": "blog.example.com"}, headers=tenant_headers)
    assert response.status_code == 409
    assert response.json()["error"]["message"] == "A site with this name already exists"
    db_session.rollback.assert_awaited()


def test_tenant_update_clash_is_409(client, tenant_headers, db_session, monkeypatch):
    monkeypatch.setattr(TenantRepository, "update", AsyncMock(side_effect=_duplicate()))
    response = client.patch(f"/api/v1/tenants/{uuid4()}", json={"name": "Acme"}, headers=tenant_headers)
    assert response.status_code == 409
    assert response.json()["error"]["message"] == "Tenant name or slug already exists"


def test_tenant_update_missing_is_404(client, tenant_headers, monkeypatch):
    monkeypatch.setattr(TenantRepository, "update", AsyncMock(return_value=None))
    response = client.patch(f"/api/v1/tenants/{uuid4()}", json={"base_url": None}, headers=tenant_headers)
    assert response.status_code == 404


def test_list_tenants(client, tenant_headers, tenant_id, monkeypatch):
    tenant = SimpleNamespace(
        id=tenant_id, name="Acme", slug="acme", environment="production", base_url=None, admin_url=None,
        ssl_enabled=True, backups_enabled=False, custom_domain=False, created_at=NOW, updated_at=NOW,
    )
    monkeypatch.setattr(TenantRepository, "list_tenants", AsyncMock(return_value=[tenant]))
    response = client.get("/api/v1/tenants", headers=tenant_headers)
    assert response.status_code == 200
    assert [t["slug"] for t in response.json()] == ["acme"]


# --- Credentials ----------------------------------------------------------------------------


def test_credentials_list_masks_passwords(client, tenant_headers):
    service = _record_service(client, get_credential_service)
    site_id = uuid4()
    service.repo.list_for_site = AsyncMock(return_value=[SimpleNamespace(
        id=uuid4(), site_id=site_id, integration_id="stripe", email="ops@example.com",
        password="SuperSecret99", status="active", additional_fields={}, created_at=NOW, updated_at=NOW,
    )])

    response = client.get(f"/api/v1/credentials?site_id={site_id}", headers=tenant_headers)

    assert response.status_code == 200
    assert response.json()[0]["password"] == "***********99"
    assert "SuperSecret" not in response.text
    service.repo.list_for_site.assert_awaited_once_with(site_id)


def test_credentials_require_manage_role(client, tenant_headers, user_roles):
    _record_service(client, get_credential_service)
    user_roles[:] = ["editor"]
    response = client.get("/api/v1/credentials", headers=tenant_headers)
    assert response.status_code == 403


def test_credential_update_missing_is_404(client, tenant_headers):
    _record_service(client, get_credential_service)
    response = client.patch(f"/api/v1/credentials/{uuid4()}", json={"status": "inactive"}, headers=tenant_headers)
    assert response.status_code == 404


# --- Mail -----------------------------------------------------------------------------------


def _message(**overrides):
    values = dict(
        id=uuid4(), email_account_id=uuid4(), folder="inbox", sender="a@example.com", recipients=["b@example.com"],
        subject="Hi", body="Hello", is_read=False, is_starred=False, received_at=NOW, created_at=NOW,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_mark_message_read_and_starred(client, tenant_headers):
    service = _record_service(client, get_message_service)
    service.update.return_value = _message(is_read=True, is_starred=True)
    message_id = uuid4()

    response = client.patch(
        f"/api/v1/mail/messages/{message_id}", json={"is_read": True, "is_starred": True}, headers=tenant_headers
    )

    assert response.status_code == 200
    assert response.json()["is_read"] is True
    service.update.assert_awaited_once_with(message_id, is_read=True, is_starred=True)


def test_move_message_passes_folder_value(client, tenant_headers):
    service = _record_service(client, get_message_service)
    service.update.return_value = _message(folder="archive")
    response = client.patch(f"/api/v1/mail/messages/{uuid4()}", json={"folder": "archive"}, headers=tenant_headers)
    assert response.status_code == 200
    assert service.update.await_args.kwargs == {"folder": "archive"}


def test_move_to_unknown_folder_is_rejected(client, tenant_headers):
    _record_service(client, get_message_service)
    response = client.patch(f"/api/v1/mail/messages/{uuid4()}", json={"folder": "junk"}, headers=tenant_headers)
    assert response.status_code == 422


def test_delete_message(client, tenant_headers):
    service = _record_service(client, get_message_service)
    service.delete.return_value = True
    assert client.delete(f"/api/v1/mail/messages/{uuid4()}", headers=tenant_headers).status_code == 204
    service.delete.return_value = False
    assert client.delete(f"/api/v1/mail/messages/{uuid4()}", headers=tenant_headers).status_code == 404


def test_list_messages_defaults_to_inbox(client, tenant_headers):
    service = _record_service(client, get_message_service)
    service.repo.list_messages = AsyncMock(return_value=[_message()])
    response = client.get("/api/v1/mail/messages", headers=tenant_headers)
    assert response.status_code == 200
    assert service.repo.list_messages.await_args.kwargs["folder"] == "inbox"


# --- Billing --------------------------------------------------------------------------------


def _provider(**overrides):
    values = dict(
        id=uuid4(), site_id=None, provider="stripe", is_connected=True, is_sandbox=False,
        last_synced_at=None, created_at=NOW, updated_at=NOW,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _transaction(**overrides):
    values = dict(
        id=uuid4(), site_id=None, gateway_source="stripe", gateway_ref_id="pi_1", amount_usd=25.0,
        native_amount=25.0, fees_usd=1.0, crypto_network=None, status="confirmed", customer_email=None,
        customer_name=None, details={}, created_at=NOW, updated_at=NOW,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def billing_service(client):
    service = MagicMock(spec=BillingService)
    app.dependency_overrides[get_billing_service] = lambda: service
    return service


def test_upsert_provider_hides_secrets(client, tenant_headers, billing_service):
    billing_service.upsert_provider = AsyncMock(return_value=_provider())
    response = client.put(
        "/api/v1/billing/providers",
        json={"provider": "stripe", "is_connected": True, "webhook_secret": "whsec_123"},
        headers=tenant_headers,
    )
    assert response.status_code == 200
    assert "webhook_secret" not in response.json()
    payload = billing_service.upsert_provider.await_args.args[0]
    assert payload.webhook_secret == "whsec_123"


def test_record_transaction_is_201(client, tenant_headers, billing_service):
    billing_service.record_transaction = AsyncMock(return_value=_transaction())
    response = client.post(
        "/api/v1/billing/transactions",
        json={"gateway_source": "stripe", "gateway_ref_id": "pi_1", "amount_usd": 25, "native_amount": 25,
              "status": "confirmed"},
        headers=tenant_headers,
    )
    assert response.status_code == 201
    assert response.json()["gateway_ref_id"] == "pi_1"


def test_list_transactions_passes_filters(client, tenant_headers, billing_service):
    billing_service.list_transactions = AsyncMock(return_value=[_transaction(gateway_source="btc")])
    response = client.get(
        "/api/v1/billing/transactions?status=pending&gateway=btc&limit=10", headers=tenant_headers
    )
    assert response.status_code == 200
    billing_service.list_transactions.assert_awaited_once_with(
        site_id=None, status="pending", gateway="btc", limit=10, offset=0
    )


def test_billing_summary(client, tenant_headers, billing_service):
    billing_service.summary = AsyncMock(return_value={
        "total_count": 2,
        "by_status": {"confirmed": {"count": 2, "amount_usd": 50.0}},
        "by_gateway": {"stripe": {"count": 2, "amount_usd": 50.0}},
        "net_usd": 48.0,
    })
    response = client.get("/api/v1/billing/summary", headers=tenant_headers)
    assert response.status_code == 200
    assert response.json()["net_usd"] == 48.0


def test_billing_mutations_require_manage(client, tenant_headers, billing_service, user_roles):
    user_roles[:] = ["editor"]
    response = client.put("/api/v1/billing/providers", json={"provider": "stripe"}, headers=tenant_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_billing_service_publishes_provider_without_secrets():
    tenant_id = uuid4()
    broadcaster = MagicMock(publish_change=AsyncMock())
    service = BillingService(MagicMock(), tenant_id, broadcaster)
    provider = PaymentProvider(
        id=uuid4(), provider="stripe", is_connected=True, credentials_encrypted="enc", webhook_secret="whsec",
    )
    service.providers = MagicMock(upsert=AsyncMock(return_value=provider))

    await service.upsert_provider(PaymentProviderUpsert(provider="stripe", webhook_secret="whsec"))

    upsert_kwargs = service.providers.upsert.await_args.kwargs
    assert upsert_kwargs == {"site_id": None, "provider": "stripe", "webhook_secret": "whsec"}
    published = broadcaster.publish_change.await_args
    assert published.args[1:3] == ("payment_providers", "update")
    assert "webhook_secret" not in published.kwargs["record"]
    assert "credentials_encrypted" not in published.kwargs["record"]


# --- Logs -----------------------------------------------------------------------------------


def test_list_audit_logs_filters(client, tenant_headers, monkeypatch):
    entry = SimpleNamespace(
        id=uuid4(), user_id=None, action="godmode_activated", resource="godmode_sessions", resource_id=None,
        details={}, ip_address=None, user_agent=None, created_at=NOW,
    )
    list_logs = AsyncMock(return_value=[entry])
    monkeypatch.setattr(AuditLogRepository, "list_logs", list_logs)

    response = client.get("/api/v1/logs/audit?action=godmode_activated", headers=tenant_headers)

    assert response.status_code == 200
    assert response.json()[0]["action"] == "godmode_activated"
    assert list_logs.await_args.kwargs == {"action": "godmode_activated", "resource": None, "limit": 100, "offset": 0}


def test_list_error_logs_rejects_unknown_level(client, tenant_headers, monkeypatch):
    monkeypatch.setattr(ErrorLogRepository, "list_logs", AsyncMock(return_value=[]))
    assert client.get("/api/v1/logs/errors?level=debug", headers=tenant_headers).status_code == 422
    assert client.get("/api/v1/logs/errors?level=warning", headers=tenant_headers).status_code == 200


def test_report_error_is_stored(client, tenant_headers, monkeypatch):
    entry = ErrorLog(
        id=uuid4(), level="error", message="Chart failed", component="Dashboard", details={}, created_at=NOW,
    )
    create = AsyncMock(return_value=entry)
    monkeypatch.setattr(ErrorLogRepository, "create", create)

    response = client.post(
        "/api/v1/logs/errors", json={"message": "Chart failed", "component": "Dashboard"}, headers=tenant_headers
    )

    assert response.status_code == 201
    assert response.json()["component"] == "Dashboard"
    assert create.await_args.kwargs["level"] == "error"


def test_logs_require_view_role(client, tenant_headers, user_roles):
    user_roles[:] = ["editor"]
    assert client.get("/api/v1/logs/audit", headers=tenant_headers).status_code == 403


def test_site_update_can_clear_domain(client, tenant_headers, monkeypatch):
    update = AsyncMock(return_value=None)
    monkeypatch.setattr(SiteRepository, "update", update)
    site_id = uuid4()

    response = client.patch(f"/api/v1/sites/{site_id}", json={"domain": None}, headers=tenant_headers)

    assert response.status_code == 404
    update.assert_awaited_once_with(site_id, domain=None)
