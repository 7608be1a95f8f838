from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert

from control_center.db.enums import TransactionStatus
from control_center.db.models.billing import PaymentProvider, PaymentTransaction
from .base import BaseRepository


class PaymentProviderRepository(BaseRepository[PaymentProvider]):
    """Payment gateway connections per site."""

    model = PaymentProvider

    async def list_providers(self, *, site_id: Optional[UUID] = None) -> List[PaymentProvider]:
        stmt = select(PaymentProvider)
        if site_id:
            stmt = stmt.where(PaymentProvider.site_id == site_id)
        return await self.all(stmt.order_by(PaymentProvider.provider))

    async def upsert(self, *, site_id: Optional[UUID], provider: str, **values: Any) -> PaymentProvider:
        """Create or update the provider row for (site, provider)."""
        stmt = select(PaymentProvider).where(PaymentProvider.provider == provider)
        stmt = stmt.where(PaymentProvider.site_id == site_id) if site_id else stmt.where(PaymentProvider.site_id.is_(None))
        existing = await self.scalar_one_or_none(stmt)
        if existing is None:
            return await self.create(site_id=site_id, provider=provider, **values)
        return await self.update(existing.id, **values)  # type: ignore[return-value]


class PaymentTransactionRepository(BaseRepository[PaymentTransaction]):
    """Gateway transactions and billing aggregates."""

    model = PaymentTransaction

    async def list_transactions(
        self,
        *,
        site_id: Optional[UUID] = None,
        status: Optional[str] = None,
        gateway: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PaymentTransaction]:
        stmt = select(PaymentTransaction)
        if site_id:
            stmt = stmt.where(PaymentTransaction.site_id == site_id)
        if status:
            stmt = stmt.where(PaymentTransaction.status == status)
        if gateway:
            stmt = stmt.where(PaymentTransaction.gateway_source == gateway)
        stmt = stmt.order_by(PaymentTransaction.created_at.desc()).offset(offset).limit(limit)
        return await self.all(stmt)

    async def record(self, **values: Any) -> PaymentTransaction:
        """Insert a transaction, or refresh status/amounts when the gateway reference already exists."""
        stmt = pg_insert(PaymentTransaction).values(**values)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_payment_transactions_tenant_gateway_ref",
            set_={
                "status": stmt.excluded.status,
                "amount_usd": stmt.excluded.amount_usd,
                "fees_usd": stmt.excluded.fees_usd,
                "updated_at": func.now(),
            },
        ).returning(PaymentTransaction.id)
        result = await self.execute(stmt)
        tx_id = result.scalar_one()
        await self.commit()
        return await self.get(tx_id)  # type: ignore[return-value]

    async def summary(self, *, site_id: Optional[UUID] = None) -> Dict[str, Any]:
        """
        Aggregate transactions into counts and USD totals per status and per gateway.

        net_usd is confirmed volume minus fees on confirmed rows minus refunded volume.
        """
        base = select(
            PaymentTransaction.status,
            PaymentTransaction.gateway_source,
            func.count(PaymentTransaction.id),
            func.coalesce(func.sum(PaymentTransaction.amount_usd), 0),
            func.coalesce(func.sum(PaymentTransaction.fees_usd), 0),
        )
        if site_id:
            base = base.where(PaymentTransaction.site_id == site_id)
        base = base.group_by(PaymentTransaction.status, PaymentTransaction.gateway_source)
        rows = (await self.execute(base)).all()
        return summarize_rows(rows)


def summarize_rows(rows) -> Dict[str, Any]:
    """Fold (status, gateway, count, amount, fees) rows into the summary payload."""
    by_status: Dict[str, Dict[str, Any]] = {}
    by_gateway: Dict[str, Dict[str, Any]] = {}
    total_count = 0
    net = Decimal("0")
    for status, gateway, count, amount, fees in rows:
        amount = Decimal(str(amount or 0))
        fees = Decimal(str(fees or 0))
        total_count += int(count)
        for bucket, key in ((by_status, status), (by_gateway, gateway)):
            entry = bucket.setdefault(key, {"count": 0, "amount_usd": Decimal("0")})
            entry["count"] += int(count)
            entry["amount_usd"] += amount
        if status == TransactionStatus.CONFIRMED.value:
            net += amount - fees
        elif status == TransactionStatus.REFUNDED.value:
            net -= amount

    def _floatify(bucket: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        return {k: {"count": v["count"], "amount_usd": float(v["amount_usd"])} for k, v in bucket.items()}

    return {
        "total_count": total_count,
        "by_status": _floatify(by_status),
        "by_gateway": _floatify(by_gateway),
        "net_usd": float(net),
    }
