"""
Daily integrity scans.

A scan is a fixed, ordered list of row-count checks run one after another. Each
check runs inside a savepoint so a failing query does not abort the rest of
the scan; a check that raises is itself reported as a finding.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from control_center.db.enums import ScanStatus, ScanType, Severity, TransactionStatus
from control_center.db.models.audit import ErrorLog, GodModeSession
from control_center.db.models.billing import PaymentProvider, PaymentTransaction
from control_center.db.models.mail import EmailAccount
from control_center.db.models.sites import Credential, Site, SiteIntegration
from control_center.repositories.audit import AuditLogRepository, SecurityScanRepository
from control_center.schemas.scans import ScanFinding, ScanResult
from control_center.services.base import BaseService
from control_center.services.realtime import BroadcastManager

logger = logging.getLogger(__name__)

ERROR_RATE_THRESHOLD = 50
WEAK_PASSWORD_LENGTH = 12
PROVIDER_SYNC_DAYS = 30
PENDING_TRANSACTION_HOURS = 24

# (count, message) when the check fails, None when it passes
CheckOutcome = Optional[Tuple[int, str]]


@dataclass(frozen=True)
class ScanCheck:
    id: str
    name: str
    severity: Severity
    run: Callable[[AsyncSession], Awaitable[CheckOutcome]]


async def _count(session: AsyncSession, stmt) -> int:
    return int((await session.execute(stmt)).scalar_one() or 0)


# Bug checks

async def _null_site_references(session: AsyncSession) -> CheckOutcome:
    issues: List[str] = []
    total = 0
    for model in (Credential, EmailAccount, PaymentTransaction, PaymentProvider):
        n = await _count(session, select(func.count(model.id)).where(model.site_id.is_(None)))
        if n:
            issues.append(f"{model.__tablename__}: {n} records with null site_id")
            total += n
    return (total, "; ".join(issues)) if issues else None


async def _duplicate_emails(session: AsyncSession) -> CheckOutcome:
    dupes = (
        select(EmailAccount.email)
        .group_by(EmailAccount.email)
        .having(func.count(EmailAccount.id) > 1)
        .subquery()
    )
    n = await _count(session, select(func.count()).select_from(dupes))
    return (n, f"{n} duplicate email addresses found") if n else None


async def _negative_amounts(session: AsyncSession) -> CheckOutcome:
    stmt = select(func.count(PaymentTransaction.id)).where(
        or_(PaymentTransaction.amount_usd < 0, PaymentTransaction.native_amount < 0)
    )
    n = await _count(session, stmt)
    return (n, f"{n} transactions with negative amounts") if n else None


async def _orphaned_integrations(session: AsyncSession) -> CheckOutcome:
    stmt = (
        select(func.count(SiteIntegration.id))
        .outerjoin(Site, Site.id == SiteIntegration.site_id)
        .where(Site.id.is_(None))
    )
    n = await _count(session, stmt)
    return (n, f"{n} integrations without valid site") if n else None


async def _sites_without_tenant(session: AsyncSession) -> CheckOutcome:
    n = await _count(session, select(func.count(Site.id)).where(Site.tenant_id.is_(None)))
    return (n, f"{n} sites without tenant") if n else None


async def _error_rate(session: AsyncSession) -> CheckOutcome:
    since = datetime.now(timezone.utc) - timedelta(hours=1)
    stmt = select(func.count(ErrorLog.id)).where(ErrorLog.level == "error", ErrorLog.created_at >= since)
    n = await _count(session, stmt)
    return (n, f"{n} errors in the last hour") if n >= ERROR_RATE_THRESHOLD else None


# Security checks

async def _expired_godmode(session: AsyncSession) -> CheckOutcome:
    stmt = select(func.count(GodModeSession.id)).where(
        GodModeSession.is_active.is_(True), GodModeSession.expires_at < datetime.now(timezone.utc)
    )
    n = await _count(session, stmt)
    return (n, f"{n} expired sessions still marked active") if n else None


async def _orphaned_credentials(session: AsyncSession) -> CheckOutcome:
    n = await _count(session, select(func.count(Credential.id)).where(Credential.site_id.is_(None)))
    return (n, f"{n} credentials without associated site") if n else None


async def _weak_passwords(session: AsyncSession) -> CheckOutcome:
    length = func.length(Credential.password)
    stmt = select(func.count(Credential.id)).where(and_(length > 0, length < WEAK_PASSWORD_LENGTH))
    n = await _count(session, stmt)
    return (n, f"{n} credentials with weak passwords") if n else None


async def _inactive_providers(session: AsyncSession) -> CheckOutcome:
    cutoff = datetime.now(timezone.utc) - timedelta(days=PROVIDER_SYNC_DAYS)
    stmt = select(func.count(PaymentProvider.id)).where(
        PaymentProvider.is_connected.is_(True), PaymentProvider.last_synced_at < cutoff
    )
    n = await _count(session, stmt)
    return (n, f"{n} providers not synced in {PROVIDER_SYNC_DAYS}+ days") if n else None


async def _stale_pending_transactions(session: AsyncSession) -> CheckOutcome:
    cutoff = datetime.now(timezone.utc) - timedelta(hours=PENDING_TRANSACTION_HOURS)
    stmt = select(func.count(PaymentTransaction.id)).where(
        PaymentTransaction.status == TransactionStatus.PENDING.value, PaymentTransaction.created_at < cutoff
    )
    n = await _count(session, stmt)
    return (n, f"{n} transactions pending for {PENDING_TRANSACTION_HOURS}+ hours") if n else None


BUG_CHECKS: Tuple[ScanCheck, ...] = (
    ScanCheck("null_site_references", "Null Site References", Severity.HIGH, _null_site_references),
    ScanCheck("duplicate_emails", "Duplicate Email Accounts", Severity.MEDIUM, _duplicate_emails),
    ScanCheck("transaction_anomalies", "Transaction Amount Anomalies", Severity.MEDIUM, _negative_amounts),
    ScanCheck("orphaned_integrations", "Orphaned Site Integrations", Severity.LOW, _orphaned_integrations),
    ScanCheck("missing_tenant_refs", "Missing Tenant References", Severity.MEDIUM, _sites_without_tenant),
    ScanCheck("stale_error_logs", "High Error Rate Detection", Severity.HIGH, _error_rate),
)

SECURITY_CHECKS: Tuple[ScanCheck, ...] = (
    ScanCheck("expired_godmode", "Expired GodMode Sessions", Severity.MEDIUM, _expired_godmode),
    ScanCheck("orphaned_credentials", "Orphaned Credentials", Severity.HIGH, _orphaned_credentials),
    ScanCheck("weak_passwords", "Weak Password Detection", Severity.CRITICAL, _weak_passwords),
    ScanCheck("inactive_providers", "Inactive Payment Providers", Severity.LOW, _inactive_providers),
    ScanCheck("pending_transactions", "Stale Pending Transactions", Severity.MEDIUM, _stale_pending_transactions),
)

SCAN_CHECKS: Dict[ScanType, Tuple[ScanCheck, ...]] = {
    ScanType.DAILY_BUG: BUG_CHECKS,
    ScanType.DAILY_SECURITY: SECURITY_CHECKS,
}

# Severity recorded when a check itself raises
CHECK_FAILURE_SEVERITY: Dict[ScanType, Severity] = {
    ScanType.DAILY_BUG: Severity.MEDIUM,
    ScanType.DAILY_SECURITY: Severity.HIGH,
}

AUDIT_ACTIONS: Dict[ScanType, str] = {
    ScanType.DAILY_BUG: "bug_scan_completed",
    ScanType.DAILY_SECURITY: "security_scan_completed",
}


# PUBLIC_INTERFACE
async def run_checks(
    checks: Sequence[ScanCheck],
    session: AsyncSession,
    failure_severity: Severity,
) -> Tuple[List[ScanFinding], Dict[str, int]]:
    """
    Run checks serially and collect findings with per-severity counts.

    Every severity appears in the counts, zero when nothing was found at that level.
    """
    findings: List[ScanFinding] = []
    counts: Dict[str, int] = {s.value: 0 for s in Severity}
    for check in checks:
        logger.info("Running check: %s", check.name)
        try:
            async with session.begin_nested():
                outcome = await check.run(session)
        except Exception as exc:
            logger.exception("Check %s failed", check.id)
            findings.append(ScanFinding(
                check=check.id, name=check.name, severity=failure_severity, message=f"Check failed: {exc}",
            ))
            counts[failure_severity.value] += 1
            continue
        if outcome is None:
            continue
        affected, message = outcome
        findings.append(ScanFinding(check=check.id, name=check.name, severity=check.severity, message=message, count=affected))
        counts[check.severity.value] += 1
    return findings, counts


class IntegrityScanService(BaseService):
    """Runs a scan type, stores the result row and audits the completion."""

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        super().__init__(session, tenant_id, broadcaster)
        self.scans = SecurityScanRepository(session)
        self.audit = AuditLogRepository(session)

    # PUBLIC_INTERFACE
    async def run(self, scan_type: ScanType, user_id: Optional[UUID] = None) -> ScanResult:
        """Run every check of the scan type and persist the outcome."""
        logger.info("Starting %s scan", scan_type.value)
        scan = await self.scans.start(scan_type.value)
        await self.publish("security_scans", "insert", scan)

        findings, counts = await run_checks(SCAN_CHECKS[scan_type], self.session, CHECK_FAILURE_SEVERITY[scan_type])

        scan.status = ScanStatus.COMPLETED.value
        scan.findings = [f.model_dump(mode="json") for f in findings]
        scan.severity_counts = counts
        scan.completed_at = datetime.now(timezone.utc)
        await self.audit.record(
            action=AUDIT_ACTIONS[scan_type],
            resource="security_scans",
            user_id=user_id,
            resource_id=str(scan.id),
            details={"findings_count": len(findings), "severity_counts": counts},
            commit=False,
        )
        await self.scans.commit()
        logger.info("%s scan completed. Findings: %d", scan_type.value, len(findings))
        await self.publish("security_scans", "update", scan)

        return ScanResult(
            scan_id=scan.id,
            scan_type=scan_type,
            findings_count=len(findings),
            severity_counts=counts,
            findings=findings,
        )

    # PUBLIC_INTERFACE
    async def list_scans(self, scan_type: Optional[ScanType] = None, limit: int = 50, offset: int = 0):
        return await self.scans.list_scans(scan_type=scan_type.value if scan_type else None, limit=limit, offset=offset)
