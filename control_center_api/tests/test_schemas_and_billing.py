from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from control_center.repositories.billing import summarize_rows
from control_center.schemas.billing import BillingSummary, PaymentProviderRead
from control_center.schemas.mail import EmailAccountRead
from control_center.schemas.sites import CredentialRead, mask_secret

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "value,expected",
    [(None, ""), ("", ""), ("abc", "***"), ("abcd", "****"), ("hunter2!", "******2!")],
)
def test_mask_secret(value, expected):
    assert mask_secret(value) == expected


def test_credential_read_masks_password_from_orm_row():
    row = SimpleNamespace(
        id=uuid4(), site_id=None, integration_id="stripe", email="ops@example.com",
        password="SuperSecret99", status="active", additional_fields={}, created_at=NOW, updated_at=NOW,
    )
    read = CredentialRead.model_validate(row)
    assert read.password == "***********99"
    assert "SuperSecret" not in read.model_dump_json()


def test_read_models_do_not_expose_secrets():
    assert "password" not in EmailAccountRead.model_fields
    assert "webhook_secret" not in PaymentProviderRead.model_fields
    assert "credentials_encrypted" not in PaymentProviderRead.model_fields


def test_summarize_rows_totals_and_net():
    rows = [
        ("confirmed", "stripe", 3, Decimal("300.00"), Decimal("9.00")),
        ("confirmed", "btc", 1, Decimal("50.00"), Decimal("1.00")),
        ("refunded", "stripe", 1, Decimal("40.00"), None),
        ("pending", "paypal", 2, Decimal("20.00"), Decimal("0")),
    ]
    summary = summarize_rows(rows)

    assert summary["total_count"] == 7
    assert summary["by_status"]["confirmed"] == {"count": 4, "amount_usd": 350.0}
    assert summary["by_gateway"]["stripe"] == {"count": 4, "amount_usd": 340.0}
    assert summary["net_usd"] == pytest.approx(350 - 10 - 40)
    assert BillingSummary.model_validate(summary).by_status["pending"].count == 2


def test_summarize_rows_empty():
    assert summarize_rows([]) == {"total_count": 0, "by_status": {}, "by_gateway": {}, "net_usd": 0.0}
