from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update

from control_center.db.models.audit import AuditLog, ErrorLog, GodModeSession, SecurityScan
from .base import BaseRepository


class AuditLogRepository(BaseRepository[AuditLog]):
    """Append-only audit trail."""

    model = AuditLog

    async def record(
        self,
        *,
        action: str,
        resource: str,
        user_id: Optional[UUID] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=resource_id,
            details=details or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.add(entry)
        if commit:
            await self.commit()
        return entry

    async def list_logs(
        self,
        *,
        action: Optional[str] = None,
        resource: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLog]:
        stmt = select(AuditLog)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if resource:
            stmt = stmt.where(AuditLog.resource == resource)
        return await self.all(stmt.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit))


class ErrorLogRepository(BaseRepository[ErrorLog]):
    """Application error reports."""

    model = ErrorLog

    async def list_logs(self, *, level: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[ErrorLog]:
        stmt = select(ErrorLog)
        if level:
            stmt = stmt.where(ErrorLog.level == level)
        return await self.all(stmt.order_by(ErrorLog.created_at.desc()).offset(offset).limit(limit))


class SecurityScanRepository(BaseRepository[SecurityScan]):
    """Integrity scan runs and their findings."""

    model = SecurityScan

    async def start(self, scan_type: str) -> SecurityScan:
        return await self.create(scan_type=scan_type, status="running", findings=[], severity_counts={})

    async def list_scans(self, *, scan_type: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[SecurityScan]:
        stmt = select(SecurityScan)
        if scan_type:
            stmt = stmt.where(SecurityScan.scan_type == scan_type)
        return await self.all(stmt.order_by(SecurityScan.started_at.desc()).offset(offset).limit(limit))


class GodModeSessionRepository(BaseRepository[GodModeSession]):
    """Elevated-privilege admin sessions."""

    model = GodModeSession

    async def find_active_for_admin(self, admin_user_id: UUID, now: datetime) -> Optional[GodModeSession]:
        stmt = (
            select(GodModeSession)
            .where(
                GodModeSession.admin_user_id == admin_user_id,
                GodModeSession.is_active.is_(True),
                GodModeSession.expires_at > now,
            )
            .order_by(GodModeSession.started_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def get_own(self, session_id: UUID, admin_user_id: UUID) -> Optional[GodModeSession]:
        stmt = select(GodModeSession).where(
            GodModeSession.id == session_id,
            GodModeSession.admin_user_id == admin_user_id,
        )
        return await self.scalar_one_or_none(stmt)

    async def list_active(self, now: datetime) -> List[GodModeSession]:
        stmt = (
            select(GodModeSession)
            .where(GodModeSession.is_active.is_(True), GodModeSession.expires_at > now)
            .order_by(GodModeSession.started_at.desc())
        )
        return await self.all(stmt)

    async def end_all_active(self, now: datetime) -> int:
        """End every active session in the tenant; returns how many were ended."""
        stmt = (
            update(GodModeSession)
            .where(GodModeSession.is_active.is_(True))
            .values(is_active=False, ended_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.execute(stmt)
        return int(result.rowcount or 0)
