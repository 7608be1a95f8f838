from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_session, require_roles
from control_center.db.enums import PaymentGateway, TransactionStatus
from control_center.db.models.audit import AuditLog
from control_center.db.models.billing import PaymentTransaction
from control_center.db.models.sites import Site
from control_center.services.reports import (
    AUDIT_COLUMNS,
    SITE_COLUMNS,
    TRANSACTION_COLUMNS,
    export_dataframe,
    rows_to_frame,
)

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

_FORMAT_QUERY = Query("csv", description="Export format: csv | xlsx | pdf")


# PUBLIC_INTERFACE
@router.get(
    "/sites",
    summary="Sites report",
    description="Exports every site with its health, SSL and uptime figures.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "reports:view", "sites:view"))],
)
async def sites_report(
    session: AsyncSession = Depends(get_tenant_session),
    site_status: Optional[str] = Query(None, alias="status"),
    format: str = _FORMAT_QUERY,
):
    stmt = select(Site)
    if site_status:
        stmt = stmt.where(Site.status == site_status)
    rows = (await session.execute(stmt.order_by(Site.name))).scalars().all()
    return export_dataframe(rows_to_frame(rows, SITE_COLUMNS), "sites_report", format)


# PUBLIC_INTERFACE
@router.get(
    "/transactions",
    summary="Payment transactions report",
    description="Exports payment transactions, optionally filtered by site, status, gateway and creation window.",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "reports:view", "billing:view"))],
)
async def transactions_report(
    session: AsyncSession = Depends(get_tenant_session),
    site_id: Optional[UUID] = Query(None),
    tx_status: Optional[TransactionStatus] = Query(None, alias="status"),
    gateway: Optional[PaymentGateway] = Query(None),
    date_from: Optional[datetime] = Query(None, description="Created at or after"),
    date_to: Optional[datetime] = Query(None, description="Created before"),
    format: str = _FORMAT_QUERY,
):
    """
    Transactions report.

    Amounts are exported as floats; timestamps are converted to naive UTC so the
    XLSX writer accepts them.
    """
    stmt = select(PaymentTransaction)
    if site_id:
        stmt = stmt.where(PaymentTransaction.site_id == site_id)
    if tx_status:
        stmt = stmt.where(PaymentTransaction.status == tx_status.value)
    if gateway:
        stmt = stmt.where(PaymentTransaction.gateway_source == gateway.value)
    if date_from:
        stmt = stmt.where(PaymentTransaction.created_at >= date_from)
    if date_to:
        stmt = stmt.where(PaymentTransaction.created_at < date_to)
    rows = (await session.execute(stmt.order_by(PaymentTransaction.created_at.desc()))).scalars().all()
    return export_dataframe(rows_to_frame(rows, TRANSACTION_COLUMNS), "transactions_report", format)


# PUBLIC_INTERFACE
@router.get(
    "/audit-logs",
    summary="Audit log report",
    response_description="File stream (CSV/XLSX/PDF)",
    dependencies=[Depends(require_roles("admin", "reports:view", "logs:view"))],
)
async def audit_logs_report(
    session: AsyncSession = Depends(get_tenant_session),
    action: Optional[str] = Query(None),
    resource: Optional[str] = Query(None),
    limit: int = Query(5000, ge=1, le=50000),
    format: str = _FORMAT_QUERY,
):
    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource:
        stmt = stmt.where(AuditLog.resource == resource)
    rows = (await session.execute(stmt.order_by(AuditLog.created_at.desc()).limit(limit))).scalars().all()
    return export_dataframe(rows_to_frame(rows, AUDIT_COLUMNS), "audit_logs_report", format)
