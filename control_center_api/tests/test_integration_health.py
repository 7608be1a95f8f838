import random
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from control_center.schemas.health import IntegrationHealthStatus, QuotaInfo, TokenExpiration
from control_center.services.integration_health import (
    CONTROL_CENTER_INTEGRATIONS,
    HealthMonitor,
    generate_alerts,
    health_score,
    simulate_health_check,
)

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FixedRandom(random.Random):
    """Random whose draws are pinned: random() returns `draw`, randrange() returns `pick`."""

    def __init__(self, draw, pick):
        super().__init__(0)
        self.draw = draw
        self.pick = pick

    def random(self):
        return self.draw

    def randrange(self, *args, **kwargs):
        return self.pick


def _status(integration_id="sendgrid", status="healthy", quota=None, token=None):
    return IntegrationHealthStatus(
        integration_id=integration_id,
        status=status,
        connection_status="disconnected" if status == "error" else "connected",
        last_checked=NOW,
        quota=quota,
        token_expiration=token,
    )


def test_error_draw_disconnects_and_stays_error_despite_quota():
    result = simulate_health_check("sendgrid", FixedRandom(0.95, 90), NOW)
    assert result.status == "error"
    assert result.connection_status == "disconnected"
    assert result.error.code == "CONNECTION_FAILED"
    assert result.last_successful_call is None
    assert result.quota.percent_used == 90


def test_high_quota_turns_healthy_into_warning():
    result = simulate_health_check("sendgrid", FixedRandom(0.1, 85), NOW)
    assert result.status == "warning"
    assert result.connection_status == "connected"
    assert result.rate_limit is not None and not result.rate_limit.is_limited


def test_untracked_integration_has_no_quota_token_or_rate_limit():
    result = simulate_health_check("namecheap", FixedRandom(0.1, 5), NOW)
    assert result.status == "healthy"
    assert result.quota is None and result.token_expiration is None and result.rate_limit is None


def test_expiring_token_needs_refresh():
    result = simulate_health_check("slack", FixedRandom(0.1, 2), NOW)
    assert result.token_expiration.needs_refresh
    assert result.token_expiration.expires_at == NOW + timedelta(days=2)
    assert result.status == "warning"


def test_generate_alerts_kinds_and_severities():
    statuses = [
        _status("github", "error"),
        _status("sendgrid", "warning", quota=QuotaInfo(used=97, limit=100, reset_at=NOW, percent_used=97)),
        _status("slack", "warning", token=TokenExpiration(expires_at=NOW, days_remaining=5, needs_refresh=True)),
    ]
    alerts = {a.id: a for a in generate_alerts(statuses, NOW)}

    assert alerts["github-error"].severity == "critical"
    assert alerts["github-error"].integration_name == "GitHub"
    assert alerts["sendgrid-quota"].severity == "high"
    assert alerts["slack-token"].severity == "medium"
    assert alerts["slack-token"].message == "Slack token expires in 5 days"


def test_health_score_rounds_and_defaults_to_100():
    assert health_score([]) == 100
    statuses = [_status(status="healthy"), _status(status="healthy"), _status(status="warning")]
    assert health_score(statuses) == 67


@pytest.mark.asyncio
async def test_check_all_publishes_critical_alerts_and_acknowledges():
    broadcaster = AsyncMock()
    monitor = HealthMonitor("tenant-1", rng=FixedRandom(0.99, 50), broadcaster=broadcaster)

    overview = await monitor.check_all()

    assert len(overview.statuses) == len(CONTROL_CENTER_INTEGRATIONS)
    assert overview.health_score == 0
    critical = [a for a in overview.alerts if a.severity == "critical"]
    assert len(critical) == len(CONTROL_CENTER_INTEGRATIONS)
    assert broadcaster.publish_event.await_count == len(critical)
    broadcaster.publish_event.assert_any_await("tenant-1", "health.alert", critical[0].model_dump(mode="json"))

    acked = monitor.acknowledge("slack-error")
    assert acked is not None and acked.acknowledged
    assert monitor.acknowledge("missing-alert") is None


@pytest.mark.asyncio
async def test_check_one_updates_status_without_touching_alerts():
    monitor = HealthMonitor("tenant-1", rng=FixedRandom(0.1, 5), broadcaster=AsyncMock())
    result = monitor.check("aws-s3")
    assert monitor.get("aws-s3") == result
    assert monitor.overview().alerts == []
