from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from control_center.db.enums import ScanStatus, ScanType, Severity
from control_center.services import integrity_scans
from control_center.services.integrity_scans import (
    BUG_CHECKS,
    SECURITY_CHECKS,
    IntegrityScanService,
    ScanCheck,
    run_checks,
)


class FakeSession:
    """Session stand-in that records savepoints opened by the scan runner."""

    def __init__(self):
        self.savepoints = 0
        self.commit = AsyncMock()

    @asynccontextmanager
    async def begin_nested(self):
        self.savepoints += 1
        yield self


async def _passes(session):
    return None


async def _finds_three(session):
    return 3, "3 rows are broken"


async def _explodes(session):
    raise RuntimeError("relation does not exist")


@pytest.mark.asyncio
async def test_run_checks_collects_findings_and_counts_every_severity():
    checks = [
        ScanCheck("ok", "Passing", Severity.LOW, _passes),
        ScanCheck("broken", "Broken Rows", Severity.CRITICAL, _finds_three),
        ScanCheck("crash", "Crashing", Severity.LOW, _explodes),
    ]
    session = FakeSession()

    findings, counts = await run_checks(checks, session, Severity.HIGH)

    assert session.savepoints == 3
    assert counts == {"critical": 1, "high": 1, "medium": 0, "low": 0}
    by_check = {f.check: f for f in findings}
    assert set(by_check) == {"broken", "crash"}
    assert by_check["broken"].count == 3
    assert by_check["broken"].name == "Broken Rows"
    assert by_check["crash"].severity == Severity.HIGH
    assert by_check["crash"].message == "Check failed: relation does not exist"


def test_check_ids_are_unique_per_scan_type():
    for checks in (BUG_CHECKS, SECURITY_CHECKS):
        ids = [c.id for c in checks]
        assert len(ids) == len(set(ids))
    assert {c.id for c in SECURITY_CHECKS} >= {"weak_passwords", "expired_godmode"}


@pytest.mark.asyncio
async def test_scan_run_completes_row_and_audits(monkeypatch):
    session = FakeSession()
    service = IntegrityScanService(session)
    scan = SimpleNamespace(id=uuid4(), status="running", findings=[], severity_counts={}, completed_at=None)
    service.scans = MagicMock(start=AsyncMock(return_value=scan), commit=AsyncMock())
    service.audit = MagicMock(record=AsyncMock())

    crash = ScanCheck("crash", "Crashing", Severity.LOW, _explodes)
    monkeypatch.setitem(integrity_scans.SCAN_CHECKS, ScanType.DAILY_SECURITY, (crash,))

    user_id = uuid4()
    result = await service.run(ScanType.DAILY_SECURITY, user_id=user_id)

    assert result.scan_id == scan.id
    assert result.findings_count == 1
    assert result.severity_counts["high"] == 1
    assert scan.status == ScanStatus.COMPLETED.value
    assert scan.completed_at is not None
    assert scan.findings[0]["check"] == "crash"
    service.scans.start.assert_awaited_once_with("daily_security")
    service.scans.commit.assert_awaited_once()
    audit_kwargs = service.audit.record.await_args.kwargs
    assert audit_kwargs["action"] == "security_scan_completed"
    assert audit_kwargs["user_id"] == user_id
    assert audit_kwargs["commit"] is False
    assert audit_kwargs["details"]["findings_count"] == 1


# --- check queries --------------------------------------------------------------------------


class CountingSession:
    """Answers every count query with a fixed value and keeps the compiled statements."""

    def __init__(self, value):
        self.value = value
        self.statements = []

    async def execute(self, stmt):
        compiled = stmt.compile(dialect=postgresql.dialect())
        self.statements.append((str(compiled), compiled.params))
        return MagicMock(scalar_one=MagicMock(return_value=self.value))

    @property
    def sql(self):
        return self.statements[-1][0]

    @property
    def params(self):
        return self.statements[-1][1]


def _cutoff(params):
    return next(v for v in params.values() if isinstance(v, datetime))


def _close_to(value, expected):
    return abs(value - expected) < timedelta(minutes=1)


@pytest.mark.asyncio
@pytest.mark.parametrize("count,fires", [(49, False), (50, True), (51, True)])
async def test_error_rate_fires_at_threshold(count, fires):
    session = CountingSession(count)
    outcome = await integrity_scans._error_rate(session)

    assert (outcome is not None) is fires
    if fires:
        assert outcome == (count, f"{count} errors in the last hour")
    assert "error_logs.level" in session.sql
    assert "error" in session.params.values()
    assert _close_to(_cutoff(session.params), datetime.now(timezone.utc) - timedelta(hours=1))


@pytest.mark.asyncio
async def test_weak_passwords_counts_short_non_empty_passwords():
    session = CountingSession(2)
    outcome = await integrity_scans._weak_passwords(session)

    assert outcome == (2, "2 credentials with weak passwords")
    assert "length(credentials.password) >" in session.sql
    assert "length(credentials.password) <" in session.sql
    assert sorted(session.params.values()) == [0, 12]


@pytest.mark.asyncio
async def test_stale_pending_transactions_use_24_hour_cutoff():
    session = CountingSession(4)
    outcome = await integrity_scans._stale_pending_transactions(session)

    assert outcome == (4, "4 transactions pending for 24+ hours")
    assert "payment_transactions.created_at <" in session.sql
    assert "pending" in session.params.values()
    assert _close_to(_cutoff(session.params), datetime.now(timezone.utc) - timedelta(hours=24))


@pytest.mark.asyncio
async def test_inactive_providers_use_30_day_cutoff():
    session = CountingSession(1)
    outcome = await integrity_scans._inactive_providers(session)

    assert outcome == (1, "1 providers not synced in 30+ days")
    assert "payment_providers.is_connected IS true" in session.sql
    assert "payment_providers.last_synced_at <" in session.sql
    assert _close_to(_cutoff(session.params), datetime.now(timezone.utc) - timedelta(days=30))


@pytest.mark.asyncio
async def test_expired_godmode_counts_active_past_expiry():
    session = CountingSession(3)
    outcome = await integrity_scans._expired_godmode(session)
    assert outcome == (3, "3 expired sessions still marked active")
    assert "godmode_sessions.is_active IS true" in session.sql
    assert "godmode_sessions.expires_at <" in session.sql


@pytest.mark.asyncio
async def test_null_site_references_sum_over_tables():
    session = CountingSession(2)
    total, message = await integrity_scans._null_site_references(session)

    assert total == 8
    assert [s for s, _ in session.statements if "site_id IS NULL" not in s] == []
    assert message.split("; ")[0] == "credentials: 2 records with null site_id"
    assert "payment_providers: 2 records with null site_id" in message


@pytest.mark.asyncio
async def test_duplicate_emails_group_by_address():
    session = CountingSession(1)
    assert await integrity_scans._duplicate_emails(session) == (1, "1 duplicate email addresses found")
    assert "GROUP BY email_accounts.email" in session.sql
    assert "HAVING count(email_accounts.id) >" in session.sql


@pytest.mark.asyncio
@pytest.mark.parametrize("check", BUG_CHECKS + SECURITY_CHECKS, ids=lambda c: c.id)
async def test_every_check_passes_on_clean_data(check):
    assert await check.run(CountingSession(0)) is None
