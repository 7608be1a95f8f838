from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AuditLogRead(BaseModel):
    id: UUID = Field(...)
    user_id: Optional[UUID] = Field(None)
    action: str = Field(..., description="e.g. godmode_activated, sites.insert")
    resource: str = Field(...)
    resource_id: Optional[str] = Field(None)
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = Field(None)
    user_agent: Optional[str] = Field(None)
    created_at: datetime = Field(...)

    class Config:
        from_attributes = True


class ErrorLogRead(BaseModel):
    id: UUID = Field(...)
    level: str = Field(...)
    message: str = Field(...)
    component: Optional[str] = Field(None)
    stack_trace: Optional[str] = Field(None)
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(...)

    class Config:
        from_attributes = True


class ErrorLogCreate(BaseModel):
    level: Literal["error", "warning", "info"] = Field("error")
    message: str = Field(..., min_length=1)
    component: Optional[str] = Field(None)
    stack_trace: Optional[str] = Field(None)
    details: Dict[str, Any] = Field(default_factory=dict)
