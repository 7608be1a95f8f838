"""
Tenant-wide GitHub repository administration for imported sites.

Visibility scans read the stored repository metadata; remediation and pushes
call GitHub through GitHubRepoRelay, persist what changed on imported_apps and
leave one audit entry per run.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from control_center.db.models.sites import ImportedApp
from control_center.repositories.audit import AuditLogRepository
from control_center.repositories.sites import ImportedAppRepository
from control_center.schemas.relays import (
    ExecutionLogEntry,
    FinalAcceptance,
    PushReport,
    PushRequest,
    PushResult,
    RepoVisibilityEntry,
    RunSummary,
    VisibilityReport,
)
from control_center.services.base import BaseService
from control_center.services.realtime import BroadcastManager
from control_center.services.relays import GitHubRepoRelay, RelayError, parse_github_repo

logger = logging.getLogger(__name__)

VISIBILITY_ACTIONS = ("scan", "remediate")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def summarize(items: List[Any]) -> RunSummary:
    """Counts of success/failed/skipped entries."""
    statuses = [i.status for i in items]
    return RunSummary(
        total=len(statuses),
        success=statuses.count("success"),
        failed=statuses.count("failed"),
        skipped=statuses.count("skipped"),
    )


class GitHubRepoService(BaseService):
    """Repository visibility remediation and file pushes across the tenant's imported sites."""

    def __init__(
        self,
        session: AsyncSession,
        relay: GitHubRepoRelay,
        tenant_id: Optional[UUID] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        super().__init__(session, tenant_id, broadcaster)
        self.relay = relay
        self.apps = ImportedAppRepository(session)
        self.audit = AuditLogRepository(session)

    # PUBLIC_INTERFACE
    async def visibility(self, action: str, user_id: Optional[UUID] = None) -> VisibilityReport:
        """
        scan: inventory of imported repositories from stored metadata, no GitHub calls.
        remediate: switch each public repository to private; requires GITHUB_TOKEN.
        """
        if action not in VISIBILITY_ACTIONS:
            raise RelayError(400, 'Invalid action. Use "scan" or "remediate"')
        if action == "remediate":
            self.relay.require_token()

        inventory: List[RepoVisibilityEntry] = []
        log: List[ExecutionLogEntry] = []
        for app, site_name in await self.apps.list_with_site_names():
            log.append(ExecutionLogEntry(timestamp=_now(), action=f"Scanning {site_name}", result="Processing..."))
            if action == "scan":
                entry = self._scan_entry(app, site_name)
            else:
                entry = await self._remediate(app, site_name)
            inventory.append(entry)
            log.append(ExecutionLogEntry(timestamp=_now(), action=f"{site_name}: {entry.status}", result=entry.message))

        summary = summarize(inventory)
        if action == "scan":
            acceptance = FinalAcceptance(
                all_private=False,
                residual_risks=[
                    "GITHUB_TOKEN secret not configured or missing repo scope",
                    "GitHub repository URLs not stored in imported_apps table",
                    "Token owner may not have admin access to all repositories",
                ],
                conclusion="Scan complete. Execute remediation to change visibility.",
            )
        else:
            all_private = summary.total > 0 and summary.success == summary.total
            risks = []
            if not all_private:
                risks.append("Some repositories could not be changed to private")
            if summary.skipped:
                risks.append("Some repositories need github_repo_url configured")
            acceptance = FinalAcceptance(
                all_private=all_private,
                residual_risks=risks,
                conclusion=(
                    "All imported site repositories are now PRIVATE"
                    if all_private
                    else f"{summary.success}/{summary.total} repositories are private. Review failed/skipped items."
                ),
            )

        report = VisibilityReport(
            action=action,
            timestamp=_now(),
            inventory=inventory,
            execution_log=log,
            summary=summary,
            final_acceptance=acceptance,
        )
        if action == "remediate":
            logger.info(
                "Visibility remediation: %d/%d private, %d failed, %d skipped",
                summary.success, summary.total, summary.failed, summary.skipped,
            )
            await self.audit.record(
                action="github_visibility_remediation",
                resource="imported_apps",
                user_id=user_id,
                details=report.model_dump(mode="json", by_alias=True),
            )
        return report

    @staticmethod
    def _entry(app: ImportedApp, site_name: str, **values: Any) -> RepoVisibilityEntry:
        owner, repo = parse_github_repo(app.github_repo_url, app.github_repo_owner, app.github_repo_name)
        values.setdefault("current_visibility", app.github_visibility or "unknown")
        return RepoVisibilityEntry(site_id=app.site_id, site_name=site_name, repo_owner=owner, repo_name=repo, **values)

    def _scan_entry(self, app: ImportedApp, site_name: str) -> RepoVisibilityEntry:
        owner, repo = parse_github_repo(app.github_repo_url, app.github_repo_owner, app.github_repo_name)
        if not owner or not repo:
            return self._entry(
                app, site_name, status="skipped",
                message="GitHub repository URL not configured. Add github_repo_url to imported_apps table.",
            )
        return self._entry(app, site_name, status="skipped", message="Ready for visibility change")

    async def _remediate(self, app: ImportedApp, site_name: str) -> RepoVisibilityEntry:
        owner, repo = parse_github_repo(app.github_repo_url, app.github_repo_owner, app.github_repo_name)
        if not owner or not repo:
            return self._entry(app, site_name, status="skipped", message="GitHub repository URL not configured in database")
        try:
            current = await self.relay.get_repository(owner, repo)
            was_private = bool(current.get("private"))
            if not was_private:
                await self.relay.make_private(owner, repo)
        except RelayError as exc:
            logger.error("Visibility change for %s/%s failed: %s", owner, repo, exc)
            return self._entry(app, site_name, status="failed", message=exc.body.error)

        previous = "private" if was_private else "public"
        await self.apps.update(app.id, github_visibility="private")
        await self.publish("imported_apps", "update", app)
        return self._entry(
            app, site_name,
            current_visibility=previous,
            status="success",
            message="Already private - no change needed" if was_private else "Successfully changed to private",
        )

    # PUBLIC_INTERFACE
    async def push(self, request: PushRequest, user_id: Optional[UUID] = None) -> PushReport:
        """Push file changes to each site's repository and record the new head commit."""
        self.relay.require_token()
        if not request.sites:
            raise RelayError(400, "No sites provided")
        logger.info("Pushing changes to %d repositories", len(request.sites))

        results: List[PushResult] = []
        for site in request.sites:
            outcome = await self.relay.push_site(site)
            results.append(outcome)
            if outcome.status != "success":
                continue
            app = await self.apps.get_for_site(site.site_id)
            if app is not None:
                await self.apps.update(app.id, github_last_push_at=_now(), github_last_commit_sha=outcome.commit_sha)
                await self.publish("imported_apps", "update", app)

        report = PushReport(results=results, summary=summarize(results))
        await self.audit.record(
            action="github_push_changes",
            resource="github",
            user_id=user_id,
            details={
                "sites_processed": len(request.sites),
                "results": [r.model_dump(mode="json", by_alias=True) for r in results],
                "summary": report.summary.model_dump(),
            },
        )
        return report
