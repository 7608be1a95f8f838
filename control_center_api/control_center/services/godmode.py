from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Mapping, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from control_center.db.models.audit import GodModeSession
from control_center.repositories.audit import AuditLogRepository, GodModeSessionRepository
from control_center.schemas.godmode import (
    GodModeActivateRequest,
    GodModeActivateResponse,
    GodModeDeactivateRequest,
    GodModeDeactivateResponse,
    GodModeSessionRead,
)
from control_center.services.base import BaseService
from control_center.services.realtime import BroadcastManager

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 10
DEFAULT_DURATION_MINUTES = 30


class GodModeError(Exception):
    """Rejected GodMode operation; carries the HTTP status and, for conflicts, the existing session."""

    def __init__(self, status_code: int, message: str, session: Optional[GodModeSession] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.session = session

    def as_dict(self) -> dict:
        body = {"error": self.message}
        if self.session is not None:
            body["session"] = GodModeSessionRead.model_validate(self.session).model_dump(mode="json")
        return body


# PUBLIC_INTERFACE
def client_address(headers: Mapping[str, str]) -> Optional[str]:
    """First x-forwarded-for hop, else x-real-ip."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return headers.get("x-real-ip")


class GodModeService(BaseService):
    """
    Elevated-privilege admin sessions.

    Callers are expected to have passed the super_admin check; the service only
    enforces the session rules and writes the audit trail.
    """

    def __init__(
        self,
        session: AsyncSession,
        tenant_id: Optional[UUID] = None,
        broadcaster: Optional[BroadcastManager] = None,
    ) -> None:
        super().__init__(session, tenant_id, broadcaster)
        self.sessions = GodModeSessionRepository(session)
        self.audit = AuditLogRepository(session)

    # PUBLIC_INTERFACE
    async def activate(
        self,
        admin_user_id: UUID,
        request: GodModeActivateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> GodModeActivateResponse:
        """
        Start a GodMode session for the admin.

        Raises:
            GodModeError: 400 when the reason is too short, 409 when the admin already
                has an active unexpired session.
        """
        reason = (request.reason or "").strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise GodModeError(400, f"Reason must be at least {MIN_REASON_LENGTH} characters")

        now = datetime.now(timezone.utc)
        existing = await self.sessions.find_active_for_admin(admin_user_id, now)
        if existing is not None:
            raise GodModeError(409, "GodMode session already active", session=existing)

        duration = request.duration_minutes or DEFAULT_DURATION_MINUTES
        created = await self.sessions.create(
            admin_user_id=admin_user_id,
            reason=reason,
            expires_at=now + timedelta(minutes=duration),
            is_active=True,
            ip_address=ip_address,
            user_agent=user_agent,
            actions_log=[],
        )
        await self.audit.record(
            action="godmode_activated",
            resource="godmode_sessions",
            user_id=admin_user_id,
            resource_id=str(created.id),
            details={"reason": reason, "duration_minutes": duration},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.warning("GodMode activated by %s for %d minutes", admin_user_id, duration)
        await self.publish("godmode_sessions", "insert", created)
        return GodModeActivateResponse(
            session=GodModeSessionRead.model_validate(created),
            message=f"GodMode activated for {duration} minutes",
        )

    # PUBLIC_INTERFACE
    async def deactivate(
        self,
        admin_user_id: UUID,
        request: GodModeDeactivateRequest,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> GodModeDeactivateResponse:
        """
        End one of the admin's sessions, or every active session in the tenant with kill_all.

        Raises:
            GodModeError: 400 without a session id, 404 when the session is not the admin's.
        """
        now = datetime.now(timezone.utc)
        if request.kill_all:
            ended = await self.sessions.end_all_active(now)
            await self.audit.record(
                action="godmode_kill_switch",
                resource="godmode_sessions",
                user_id=admin_user_id,
                details={"sessions_ended": ended},
                ip_address=ip_address,
                user_agent=user_agent,
            )
            logger.warning("GodMode kill switch by %s ended %d sessions", admin_user_id, ended)
            await self.publish("godmode_sessions", "update", record_id="*")
            return GodModeDeactivateResponse(message=f"Ended {ended} GodMode sessions", sessions_ended=ended)

        if request.session_id is None:
            raise GodModeError(400, "sessionId is required unless killAll is set")

        gm = await self.sessions.get_own(request.session_id, admin_user_id)
        if gm is None:
            raise GodModeError(404, "Session not found")

        gm.is_active = False
        gm.ended_at = now
        started = gm.started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=timezone.utc)
        minutes = round((now - started).total_seconds() / 60)
        await self.audit.record(
            action="godmode_deactivated",
            resource="godmode_sessions",
            user_id=admin_user_id,
            resource_id=str(gm.id),
            details={"session_duration_minutes": minutes},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self.publish("godmode_sessions", "update", gm)
        return GodModeDeactivateResponse(message="GodMode deactivated", sessions_ended=1)

    # PUBLIC_INTERFACE
    async def list_active(self) -> List[GodModeSession]:
        return await self.sessions.list_active(datetime.now(timezone.utc))
