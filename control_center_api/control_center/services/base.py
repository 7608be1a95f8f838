from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.services.realtime import BroadcastManager, broadcast_manager


def row_to_dict(entity: Any) -> dict:
    """Column values of an ORM row, keyed by attribute name."""
    mapper = sa_inspect(entity).mapper
    return {attr.key: getattr(entity, attr.key) for attr in mapper.column_attrs}


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories
    and the tenant whose change feed receives published events.

    Services keep business logic and orchestration, delegating data access
    to repositories.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        self.session = session
        self.tenant_id = tenant_id
        self.broadcaster = broadcaster or broadcast_manager

    async def publish(
        self,
        table: str,
        operation: str,
        entity: Any = None,
        record_id: Any = None,
        exclude: tuple[str, ...] = (),
    ) -> None:
        """Publish '<table>.<operation>' for an ORM row (or just an id) to the tenant feed."""
        if self.tenant_id is None:
            return
        record = row_to_dict(entity) if entity is not None else {}
        for key in exclude:
            record.pop(key, None)
        if record_id is None and entity is not None:
            record_id = record.get("id")
        await self.broadcaster.publish_change(self.tenant_id, table, operation, record=record, record_id=record_id)
