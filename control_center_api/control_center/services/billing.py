from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from control_center.db.models.billing import PaymentProvider, PaymentTransaction
from control_center.repositories.billing import PaymentProviderRepository, PaymentTransactionRepository
from control_center.schemas.billing import PaymentProviderUpsert, PaymentTransactionCreate
from control_center.services.base import BaseService
from control_center.services.realtime import BroadcastManager

logger = logging.getLogger(__name__)

# Provider columns never sent on the change feed
PROVIDER_SECRETS = ("credentials_encrypted", "webhook_secret")


class BillingService(BaseService):
    """Payment provider connections, gateway transactions and billing totals."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        super().__init__(session, tenant_id, broadcaster)
        self.providers = PaymentProviderRepository(session)
        self.transactions = PaymentTransactionRepository(session)

    # PUBLIC_INTERFACE
    async def list_providers(self, site_id: Optional[UUID] = None) -> List[PaymentProvider]:
        return await self.providers.list_providers(site_id=site_id)

    # PUBLIC_INTERFACE
    async def upsert_provider(self, payload: PaymentProviderUpsert) -> PaymentProvider:
        """Create or update the connection for (site, gateway); only the fields sent are written."""
        values = payload.model_dump(exclude={"site_id", "provider"}, exclude_unset=True)
        provider = await self.providers.upsert(site_id=payload.site_id, provider=payload.provider.value, **values)
        logger.info("Payment provider %s saved for site %s", payload.provider.value, payload.site_id)
        await self.publish("payment_providers", "update", provider, exclude=PROVIDER_SECRETS)
        return provider

    # PUBLIC_INTERFACE
    async def list_transactions(
        self,
        *,
        site_id: Optional[UUID] = None,
        status: Optional[str] = None,
        gateway: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[PaymentTransaction]:
        return await self.transactions.list_transactions(
            site_id=site_id, status=status, gateway=gateway, limit=limit, offset=offset
        )

    # PUBLIC_INTERFACE
    async def record_transaction(self, payload: PaymentTransactionCreate) -> PaymentTransaction:
        """Insert the transaction, or refresh status and amounts of an already known gateway reference."""
        values = payload.model_dump()
        values["gateway_source"] = payload.gateway_source.value
        values["status"] = payload.status.value
        tx = await self.transactions.record(**values)
        await self.publish("payment_transactions", "update", tx)
        return tx

    # PUBLIC_INTERFACE
    async def summary(self, site_id: Optional[UUID] = None) -> Dict[str, Any]:
        return await self.transactions.summary(site_id=site_id)
