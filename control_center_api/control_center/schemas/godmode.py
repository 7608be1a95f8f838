from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class GodModeSessionRead(BaseModel):
    id: UUID = Field(...)
    admin_user_id: UUID = Field(...)
    reason: str = Field(...)
    started_at: datetime = Field(...)
    expires_at: datetime = Field(...)
    ended_at: Optional[datetime] = Field(None)
    is_active: bool = Field(...)
    ip_address: Optional[str] = Field(None)
    user_agent: Optional[str] = Field(None)
    actions_log: List[Any] = Field(default_factory=list)

    class Config:
        from_attributes = True


class GodModeActivateRequest(BaseModel):
    """Length of `reason` is enforced by the service so the error carries the domain message."""
    reason: str = Field("", description="Why elevated access is needed (10+ characters)")
    duration_minutes: int = Field(30, ge=1, le=24 * 60, alias="durationMinutes")

    class Config:
        populate_by_name = True


class GodModeActivateResponse(BaseModel):
    success: bool = Field(True)
    session: GodModeSessionRead = Field(...)
    message: str = Field(...)


class GodModeDeactivateRequest(BaseModel):
    session_id: Optional[UUID] = Field(None, alias="sessionId")
    kill_all: bool = Field(False, alias="killAll")

    class Config:
        populate_by_name = True


class GodModeDeactivateResponse(BaseModel):
    success: bool = Field(True)
    message: str = Field(...)
    sessions_ended: int = Field(0)
