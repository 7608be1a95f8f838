"""
Tabular exports (CSV, XLSX, PDF) of dashboard records.

Frames are built with pandas; XLSX goes through the openpyxl engine and PDF is a
single landscape table rendered with reportlab.
"""
from __future__ import annotations

import io
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Sequence
from uuid import UUID

import pandas as pd
from fastapi.responses import StreamingResponse
from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

EXPORT_FORMATS = ("csv", "xlsx", "pdf")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SITE_COLUMNS = [
    "name", "domain", "status", "health_status", "ssl_status", "owner_type",
    "uptime_percentage", "response_time_ms", "created_at", "updated_at",
]
TRANSACTION_COLUMNS = [
    "gateway_source", "gateway_ref_id", "status", "amount_usd", "native_amount", "fees_usd",
    "crypto_network", "customer_email", "customer_name", "site_id", "created_at",
]
AUDIT_COLUMNS = ["created_at", "action", "resource", "resource_id", "user_id", "ip_address", "user_agent"]


def _cell(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime) and value.tzinfo is not None:
        # Excel cannot store tz-aware datetimes
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# PUBLIC_INTERFACE
def rows_to_frame(rows: Iterable[Any], columns: Sequence[str]) -> pd.DataFrame:
    """Project ORM rows onto the given attribute names."""
    data: List[dict] = [{col: _cell(getattr(row, col, None)) for col in columns} for row in rows]
    return pd.DataFrame(data, columns=list(columns))


def _pdf_bytes(df: pd.DataFrame, title: str) -> io.BytesIO:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18)
    styles = getSampleStyleSheet()
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    table = Table([list(df.columns)] + df.astype(str).values.tolist(), repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
        ("BOTTOMPADDING", (0, 0), (-1, 0), 6),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
    ]))
    doc.build([Paragraph(f"{title} ({stamp})", styles["Title"]), table])
    buffer.seek(0)
    return buffer


# PUBLIC_INTERFACE
def export_dataframe(df: pd.DataFrame, filename_base: str, export_format: str = "csv") -> StreamingResponse:
    """
    Stream a DataFrame as an attachment.

    Unknown formats fall back to CSV.
    """
    export_format = (export_format or "csv").lower()
    if export_format in ("xlsx", "excel"):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            df.to_excel(writer, index=False, sheet_name="Report")
        buffer.seek(0)
        media_type, ext = XLSX_MEDIA_TYPE, "xlsx"
    elif export_format == "pdf":
        buffer = _pdf_bytes(df, filename_base.replace("_", " ").title())
        media_type, ext = "application/pdf", "pdf"
    else:
        buffer = io.StringIO()
        df.to_csv(buffer, index=False)
        buffer.seek(0)
        media_type, ext = "text/csv", "csv"
    headers = {"Content-Disposition": f'attachment; filename="{filename_base}.{ext}"'}
    return StreamingResponse(buffer, media_type=media_type, headers=headers)
