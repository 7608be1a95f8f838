from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from control_center.db.enums import PaymentGateway, TransactionStatus


class PaymentProviderRead(BaseModel):
    """Gateway connection; secrets are not exposed."""
    id: UUID = Field(...)
    site_id: Optional[UUID] = Field(None)
    provider: PaymentGateway = Field(...)
    is_connected: bool = Field(False)
    is_sandbox: bool = Field(True)
    last_synced_at: Optional[datetime] = Field(None)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class PaymentProviderUpsert(BaseModel):
    site_id: Optional[UUID] = Field(None)
    provider: PaymentGateway = Field(...)
    is_connected: Optional[bool] = Field(None)
    is_sandbox: Optional[bool] = Field(None)
    credentials_encrypted: Optional[str] = Field(None)
    webhook_secret: Optional[str] = Field(None)
    last_synced_at: Optional[datetime] = Field(None)


class PaymentTransactionRead(BaseModel):
    id: UUID = Field(...)
    site_id: Optional[UUID] = Field(None)
    gateway_source: PaymentGateway = Field(...)
    gateway_ref_id: str = Field(...)
    amount_usd: float = Field(...)
    native_amount: float = Field(...)
    fees_usd: Optional[float] = Field(None)
    crypto_network: Optional[str] = Field(None)
    status: TransactionStatus = Field(...)
    customer_email: Optional[str] = Field(None)
    customer_name: Optional[str] = Field(None)
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class PaymentTransactionCreate(BaseModel):
    """Record a gateway transaction (idempotent on gateway + reference id)."""
    site_id: Optional[UUID] = Field(None)
    gateway_source: PaymentGateway = Field(...)
    gateway_ref_id: str = Field(..., min_length=1)
    amount_usd: float = Field(...)
    native_amount: float = Field(...)
    fees_usd: Optional[float] = Field(None, ge=0)
    crypto_network: Optional[str] = Field(None)
    status: TransactionStatus = Field(TransactionStatus.PENDING)
    customer_email: Optional[str] = Field(None)
    customer_name: Optional[str] = Field(None)
    details: Dict[str, Any] = Field(default_factory=dict)


class BucketTotal(BaseModel):
    count: int = Field(0)
    amount_usd: float = Field(0.0)


class BillingSummary(BaseModel):
    """Transaction totals per status and gateway."""
    total_count: int = Field(0)
    by_status: Dict[str, BucketTotal] = Field(default_factory=dict)
    by_gateway: Dict[str, BucketTotal] = Field(default_factory=dict)
    net_usd: float = Field(0.0, description="Confirmed minus fees minus refunded")
