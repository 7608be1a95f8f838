from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class QuotaInfo(BaseModel):
    used: int = Field(...)
    limit: int = Field(...)
    reset_at: datetime = Field(...)
    percent_used: int = Field(...)


class TokenExpiration(BaseModel):
    expires_at: datetime = Field(...)
    days_remaining: int = Field(...)
    needs_refresh: bool = Field(...)


class RateLimitInfo(BaseModel):
    remaining: int = Field(...)
    limit: int = Field(...)
    reset_at: datetime = Field(...)
    is_limited: bool = Field(...)


class HealthError(BaseModel):
    code: str = Field(...)
    message: str = Field(...)
    occurred_at: datetime = Field(...)
    resolution: Optional[str] = Field(None)


class IntegrationHealthStatus(BaseModel):
    """Latest simulated health of one integration."""
    integration_id: str = Field(...)
    status: Literal["healthy", "warning", "error", "unknown"] = Field(...)
    connection_status: Literal["connected", "disconnected", "pending"] = Field(...)
    last_checked: datetime = Field(...)
    last_successful_call: Optional[datetime] = Field(None)
    quota: Optional[QuotaInfo] = Field(None)
    token_expiration: Optional[TokenExpiration] = Field(None)
    rate_limit: Optional[RateLimitInfo] = Field(None)
    error: Optional[HealthError] = Field(None)


class HealthAlert(BaseModel):
    id: str = Field(..., description="'<integration>-<kind>'")
    integration_id: str = Field(...)
    integration_name: str = Field(...)
    type: Literal["quota_warning", "token_expiring", "connection_error", "rate_limit"] = Field(...)
    severity: Literal["low", "medium", "high", "critical"] = Field(...)
    message: str = Field(...)
    action_required: str = Field(...)
    created_at: datetime = Field(...)
    acknowledged: bool = Field(False)


class HealthCheckRequest(BaseModel):
    """Integrations to probe; empty means the standard Control Center set."""
    integration_ids: List[str] = Field(default_factory=list)


class HealthOverview(BaseModel):
    statuses: List[IntegrationHealthStatus] = Field(default_factory=list)
    alerts: List[HealthAlert] = Field(default_factory=list)
    health_score: int = Field(100, ge=0, le=100)
    last_full_check: Optional[datetime] = Field(None)
