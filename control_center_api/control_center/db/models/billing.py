from __future__ import annotations

from typing import Optional
from sqlalchemy import Boolean, Text, Numeric, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from control_center.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin, SiteMixin
from control_center.db.enums import PaymentGateway, TransactionStatus, values_sql


class PaymentProvider(UUIDPkMixin, TenantMixin, TimestampMixin, SiteMixin, Base):
    """Payment gateway connection configured for a site."""
    __tablename__ = "payment_providers"
    __table_args__ = (
        CheckConstraint(f"provider IN ({values_sql(PaymentGateway)})", name="provider_valid"),
        UniqueConstraint("tenant_id", "site_id", "provider", name="uq_payment_providers_tenant_site_provider"),
    )

    provider: Mapped[str] = mapped_column(Text, nullable=False)
    is_connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    is_sandbox: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    credentials_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    webhook_secret: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_synced_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)


class PaymentTransaction(UUIDPkMixin, TenantMixin, TimestampMixin, SiteMixin, Base):
    """Payment received through a gateway for a site."""
    __tablename__ = "payment_transactions"
    __table_args__ = (
        CheckConstraint(f"gateway_source IN ({values_sql(PaymentGateway)})", name="gateway_source_valid"),
        CheckConstraint(f"status IN ({values_sql(TransactionStatus)})", name="status_valid"),
        UniqueConstraint("tenant_id", "gateway_source", "gateway_ref_id", name="uq_payment_transactions_tenant_gateway_ref"),
    )

    gateway_source: Mapped[str] = mapped_column(Text, nullable=False)
    gateway_ref_id: Mapped[str] = mapped_column(Text, nullable=False)
    amount_usd: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    native_amount: Mapped[float] = mapped_column(Numeric(28, 10), nullable=False)
    fees_usd: Mapped[Optional[float]] = mapped_column(Numeric(18, 2), nullable=True)
    crypto_network: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=TransactionStatus.PENDING.value)
    customer_email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
