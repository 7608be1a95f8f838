import io
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pandas as pd

from control_center.services.reports import SITE_COLUMNS, XLSX_MEDIA_TYPE, rows_to_frame


def _site_row(name):
    return SimpleNamespace(
        name=name, domain=f"{name.lower()}.example.com", status="active", health_status="healthy",
        ssl_status="valid", owner_type="client", uptime_percentage=Decimal("99.50"), response_time_ms=210,
        created_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc), updated_at=datetime(2024, 5, 2, tzinfo=timezone.utc),
    )


def _rows_result(rows):
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    return result


def test_rows_to_frame_normalizes_cells():
    row = SimpleNamespace(id=uuid4(), amount=Decimal("12.50"), created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    df = rows_to_frame([row], ["id", "amount", "created_at", "missing"])

    assert list(df.columns) == ["id", "amount", "created_at", "missing"]
    assert df.loc[0, "id"] == str(row.id)
    assert df.loc[0, "amount"] == 12.5
    assert df.loc[0, "created_at"].tzinfo is None
    assert df.loc[0, "missing"] is None


def test_sites_report_csv(client, tenant_headers, db_session):
    db_session.execute = AsyncMock(return_value=_rows_result([_site_row("Alpha"), _site_row("Beta")]))
    response = client.get("/api/v1/reports/sites", headers=tenant_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == 'attachment; filename="sites_report.csv"'
    df = pd.read_csv(io.StringIO(response.text))
    assert list(df.columns) == SITE_COLUMNS
    assert df["name"].tolist() == ["Alpha", "Beta"]


def test_sites_report_xlsx(client, tenant_headers, db_session):
    db_session.execute = AsyncMock(return_value=_rows_result([_site_row("Alpha")]))
    response = client.get("/api/v1/reports/sites", params={"format": "xlsx"}, headers=tenant_headers)

    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    df = pd.read_excel(io.BytesIO(response.content), engine="openpyxl")
    assert df.loc[0, "uptime_percentage"] == 99.5


def test_transactions_report_pdf(client, tenant_headers, db_session):
    db_session.execute = AsyncMock(return_value=_rows_result([]))
    response = client.get("/api/v1/reports/transactions", params={"format": "pdf"}, headers=tenant_headers)

    assert response.headers["content-type"] == "application/pdf"
    assert response.content.startswith(b"%PDF")


def test_reports_require_a_role(client, tenant_headers, user_roles):
    user_roles[:] = ["editor"]
    response = client.get("/api/v1/reports/audit-logs", headers=tenant_headers)
    assert response.status_code == 403
