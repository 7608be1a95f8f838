from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path

from control_center.core.deps import get_current_active_user, get_tenant_id
from control_center.schemas.health import HealthAlert, HealthCheckRequest, HealthOverview, IntegrationHealthStatus
from control_center.services.integration_health import HealthMonitor, health_monitors

router = APIRouter(
    prefix="/integrations/health",
    tags=["Integration Health"],
    dependencies=[Depends(get_current_active_user)],
)


async def get_health_monitor(tenant_id: UUID = Depends(get_tenant_id)) -> HealthMonitor:
    return await health_monitors.for_tenant(tenant_id)


# PUBLIC_INTERFACE
@router.get("", response_model=HealthOverview, summary="Integration health overview")
async def health_overview(monitor: HealthMonitor = Depends(get_health_monitor)) -> HealthOverview:
    """Latest statuses and alerts without re-checking."""
    return monitor.overview()


# PUBLIC_INTERFACE
@router.post(
    "/check",
    response_model=HealthOverview,
    summary="Check all integrations",
    description="Re-check the given integrations (or the standard set) and regenerate alerts. Critical alerts are pushed on /ws/changes.",
)
async def check_all(
    payload: HealthCheckRequest = HealthCheckRequest(),
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> HealthOverview:
    return await monitor.check_all(payload.integration_ids or None)


# PUBLIC_INTERFACE
@router.post("/{integration_id}/check", response_model=IntegrationHealthStatus, summary="Check one integration")
async def check_one(
    integration_id: str = Path(..., min_length=1),
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> IntegrationHealthStatus:
    return monitor.check(integration_id)


# PUBLIC_INTERFACE
@router.post("/alerts/{alert_id}/acknowledge", response_model=HealthAlert, summary="Acknowledge alert")
async def acknowledge_alert(
    alert_id: str = Path(...),
    monitor: HealthMonitor = Depends(get_health_monitor),
) -> HealthAlert:
    alert = monitor.acknowledge(alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert
