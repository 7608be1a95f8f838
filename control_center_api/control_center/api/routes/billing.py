from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.core.deps import get_tenant_id, get_tenant_session, require_roles
from control_center.db.enums import PaymentGateway, TransactionStatus
from control_center.schemas.billing import (
    BillingSummary,
    PaymentProviderRead,
    PaymentProviderUpsert,
    PaymentTransactionCreate,
    PaymentTransactionRead,
)
from control_center.services.billing import BillingService

router = APIRouter(prefix="/billing", tags=["Billing"])

_view = Depends(require_roles("admin", "billing:view", "billing:manage"))
_manage = Depends(require_roles("admin", "billing:manage"))


def get_billing_service(
    session: AsyncSession = Depends(get_tenant_session),
    tenant_id: UUID = Depends(get_tenant_id),
) -> BillingService:
    return BillingService(session, tenant_id)


# PUBLIC_INTERFACE
@router.get("/providers", response_model=List[PaymentProviderRead], summary="List payment providers", dependencies=[_view])
async def list_providers(
    site_id: Optional[UUID] = Query(None),
    service: BillingService = Depends(get_billing_service),
) -> List[PaymentProviderRead]:
    return [PaymentProviderRead.model_validate(p) for p in await service.list_providers(site_id)]


# PUBLIC_INTERFACE
@router.put(
    "/providers",
    response_model=PaymentProviderRead,
    summary="Upsert payment provider",
    description="Create or update the provider connection for a (site, gateway) pair.",
    dependencies=[_manage],
)
async def upsert_provider(
    payload: PaymentProviderUpsert,
    service: BillingService = Depends(get_billing_service),
) -> PaymentProviderRead:
    return PaymentProviderRead.model_validate(await service.upsert_provider(payload))


# PUBLIC_INTERFACE
@router.get(
    "/transactions",
    response_model=List[PaymentTransactionRead],
    summary="List transactions",
    dependencies=[_view],
)
async def list_transactions(
    site_id: Optional[UUID] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    gateway: Optional[PaymentGateway] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    service: BillingService = Depends(get_billing_service),
) -> List[PaymentTransactionRead]:
    items = await service.list_transactions(
        site_id=site_id,
        status=status_filter.value if status_filter else None,
        gateway=gateway.value if gateway else None,
        limit=limit,
        offset=offset,
    )
    return [PaymentTransactionRead.model_validate(t) for t in items]


# PUBLIC_INTERFACE
@router.post(
    "/transactions",
    response_model=PaymentTransactionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record transaction",
    description="Record a gateway transaction. Re-posting the same gateway reference updates status and amounts.",
    dependencies=[_manage],
)
async def record_transaction(
    payload: PaymentTransactionCreate,
    service: BillingService = Depends(get_billing_service),
) -> PaymentTransactionRead:
    return PaymentTransactionRead.model_validate(await service.record_transaction(payload))


# PUBLIC_INTERFACE
@router.get(
    "/summary",
    response_model=BillingSummary,
    summary="Billing summary",
    description="Transaction counts and USD totals per status and gateway, with net USD.",
    dependencies=[_view],
)
async def billing_summary(
    site_id: Optional[UUID] = Query(None),
    service: BillingService = Depends(get_billing_service),
) -> BillingSummary:
    return BillingSummary.model_validate(await service.summary(site_id))
