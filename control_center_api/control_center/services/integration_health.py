"""
Integration health monitor.

Health results are simulated from a random draw per integration; the monitor
keeps the latest statuses and alerts per tenant in process memory and pushes
critical alerts onto the tenant change feed.
"""
from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from control_center.schemas.health import (
    HealthAlert,
    HealthError,
    HealthOverview,
    IntegrationHealthStatus,
    QuotaInfo,
    RateLimitInfo,
    TokenExpiration,
)
from control_center.services.realtime import BroadcastManager, broadcast_manager

logger = logging.getLogger(__name__)

CONTROL_CENTER_INTEGRATIONS = (
    "supabase",
    "namecheap",
    "letsencrypt",
    "sendgrid",
    "gmail-api",
    "microsoft-graph",
    "google-analytics",
    "aws-s3",
    "github",
    "lovable-cloud",
    "slack",
)

INTEGRATION_NAMES = {
    "supabase": "Supabase",
    "sendgrid": "SendGrid",
    "gmail-api": "Gmail API",
    "github": "GitHub",
    "slack": "Slack",
    "namecheap": "Namecheap",
    "letsencrypt": "Let's Encrypt",
}

QUOTA_TRACKED = {"sendgrid", "gmail-api", "github"}
OAUTH_TRACKED = {"gmail-api", "microsoft-graph", "slack", "github"}
RATE_LIMIT_TRACKED = {"supabase", "github", "sendgrid"}

QUOTA_LIMIT = 100
QUOTA_WARNING_PERCENT = 80
QUOTA_HIGH_PERCENT = 95
TOKEN_REFRESH_DAYS = 7
TOKEN_HIGH_DAYS = 3
RATE_LIMIT = 1000
RATE_LIMITED_BELOW = 10


# PUBLIC_INTERFACE
def simulate_health_check(
    integration_id: str,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> IntegrationHealthStatus:
    """Draw a plausible health status for one integration."""
    rng = rng or random.Random()
    now = now or datetime.now(timezone.utc)
    draw = rng.random()

    status, connection = "healthy", "connected"
    if draw > 0.9:
        status, connection = "error", "disconnected"
    elif draw > 0.8:
        status = "warning"

    quota = token = rate = error = None

    if integration_id in QUOTA_TRACKED:
        used = rng.randrange(QUOTA_LIMIT)
        quota = QuotaInfo(used=used, limit=QUOTA_LIMIT, reset_at=now + timedelta(hours=24), percent_used=used)
        if used > QUOTA_WARNING_PERCENT and status != "error":
            status = "warning"

    if integration_id in OAUTH_TRACKED:
        days = rng.randrange(30)
        token = TokenExpiration(
            expires_at=now + timedelta(days=days),
            days_remaining=days,
            needs_refresh=days < TOKEN_REFRESH_DAYS,
        )
        if token.needs_refresh and status != "error":
            status = "warning"

    if integration_id in RATE_LIMIT_TRACKED:
        remaining = rng.randrange(RATE_LIMIT)
        rate = RateLimitInfo(
            remaining=remaining,
            limit=RATE_LIMIT,
            reset_at=now + timedelta(hours=1),
            is_limited=remaining < RATE_LIMITED_BELOW,
        )

    if connection == "disconnected":
        error = HealthError(
            code="CONNECTION_FAILED",
            message="Unable to connect to the integration API",
            occurred_at=now,
            resolution="Check your API credentials and network connection",
        )

    return IntegrationHealthStatus(
        integration_id=integration_id,
        status=status,
        connection_status=connection,
        last_checked=now,
        last_successful_call=None if connection == "disconnected" else now,
        quota=quota,
        token_expiration=token,
        rate_limit=rate,
        error=error,
    )


# PUBLIC_INTERFACE
def generate_alerts(statuses: Iterable[IntegrationHealthStatus], now: Optional[datetime] = None) -> List[HealthAlert]:
    """Turn health statuses into alerts, at most one per (integration, kind)."""
    now = now or datetime.now(timezone.utc)
    alerts: List[HealthAlert] = []
    for st in statuses:
        name = INTEGRATION_NAMES.get(st.integration_id, st.integration_id)

        def _alert(kind: str, alert_type: str, severity: str, message: str, action: str) -> HealthAlert:
            return HealthAlert(
                id=f"{st.integration_id}-{kind}",
                integration_id=st.integration_id,
                integration_name=name,
                type=alert_type,
                severity=severity,
                message=message,
                action_required=action,
                created_at=now,
            )

        if st.status == "error":
            alerts.append(_alert("error", "connection_error", "critical",
                                 f"{name} connection failed", "Check credentials and reconnect"))
        if st.quota and st.quota.percent_used > QUOTA_WARNING_PERCENT:
            alerts.append(_alert(
                "quota", "quota_warning",
                "high" if st.quota.percent_used > QUOTA_HIGH_PERCENT else "medium",
                f"{name} quota at {st.quota.percent_used}%",
                "Consider upgrading plan or reducing usage",
            ))
        if st.token_expiration and st.token_expiration.needs_refresh:
            days = st.token_expiration.days_remaining
            alerts.append(_alert(
                "token", "token_expiring",
                "high" if days < TOKEN_HIGH_DAYS else "medium",
                f"{name} token expires in {days} days",
                "Refresh OAuth token",
            ))
        if st.rate_limit and st.rate_limit.is_limited:
            alerts.append(_alert("ratelimit", "rate_limit", "high",
                                 f"{name} rate limit nearly exhausted", "Reduce API calls or wait for reset"))
    return alerts


# PUBLIC_INTERFACE
def health_score(statuses: Iterable[IntegrationHealthStatus]) -> int:
    """Percentage of healthy integrations, rounded; 100 when nothing was checked."""
    items = list(statuses)
    if not items:
        return 100
    healthy = sum(1 for s in items if s.status == "healthy")
    return round(healthy / len(items) * 100)


class HealthMonitor:
    """Latest integration health and alerts for one tenant."""

    def __init__(
        self,
        tenant_id: UUID | str,
        rng: Optional[random.Random] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self._rng = rng or random.Random()
        self._broadcaster = broadcaster or broadcast_manager
        self.statuses: Dict[str, IntegrationHealthStatus] = {}
        self.alerts: List[HealthAlert] = []
        self.last_full_check: Optional[datetime] = None

    # PUBLIC_INTERFACE
    def check(self, integration_id: str) -> IntegrationHealthStatus:
        """Re-check one integration; alerts are refreshed only by check_all."""
        result = simulate_health_check(integration_id, self._rng)
        self.statuses[integration_id] = result
        return result

    # PUBLIC_INTERFACE
    async def check_all(self, integration_ids: Optional[Iterable[str]] = None) -> HealthOverview:
        """Re-check every integration, regenerate alerts and publish new critical ones."""
        ids = list(integration_ids or CONTROL_CENTER_INTEGRATIONS)
        self.statuses = {i: simulate_health_check(i, self._rng) for i in ids}
        self.last_full_check = datetime.now(timezone.utc)
        self.alerts = generate_alerts(self.statuses.values(), self.last_full_check)
        for alert in self.alerts:
            if alert.severity == "critical" and not alert.acknowledged:
                await self._broadcaster.publish_event(self.tenant_id, "health.alert", alert.model_dump(mode="json"))
        logger.info("Integration health checked: %d integrations, %d alerts", len(ids), len(self.alerts))
        return self.overview()

    # PUBLIC_INTERFACE
    def acknowledge(self, alert_id: str) -> Optional[HealthAlert]:
        """Mark an alert acknowledged; returns None when no such alert exists."""
        for alert in self.alerts:
            if alert.id == alert_id:
                alert.acknowledged = True
                return alert
        return None

    def get(self, integration_id: str) -> Optional[IntegrationHealthStatus]:
        return self.statuses.get(integration_id)

    def overview(self) -> HealthOverview:
        return HealthOverview(
            statuses=list(self.statuses.values()),
            alerts=list(self.alerts),
            health_score=health_score(self.statuses.values()),
            last_full_check=self.last_full_check,
        )


class HealthMonitorRegistry:
    """One HealthMonitor per tenant, created on first use."""

    def __init__(self) -> None:
        self._monitors: Dict[str, HealthMonitor] = {}
        self._lock = asyncio.Lock()

    async def for_tenant(self, tenant_id: UUID | str) -> HealthMonitor:
        key = str(tenant_id)
        async with self._lock:
            if key not in self._monitors:
                self._monitors[key] = HealthMonitor(key)
            return self._monitors[key]


health_monitors = HealthMonitorRegistry()
