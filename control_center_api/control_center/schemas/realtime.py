from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class WsEnvelope(BaseModel):
    """Envelope for WebSocket messages."""
    type: str = Field(..., description="Message type (e.g., 'sites.insert', 'health.alert').")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Message payload.")
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Timestamp (UTC).")
    user_id: Optional[UUID] = Field(default=None, description="Initiating user id, if applicable.")


class ChangeEvent(BaseModel):
    """Row change published to a tenant's change feed."""
    table: str = Field(..., description="Table name, e.g. 'sites'.")
    operation: Literal["insert", "update", "delete"] = Field(...)
    record_id: Optional[str] = Field(default=None, description="Primary key of the changed row.")
    record: Dict[str, Any] = Field(default_factory=dict, description="New row state (empty on delete).")

    @property
    def event_type(self) -> str:
        return f"{self.table}.{self.operation}"
