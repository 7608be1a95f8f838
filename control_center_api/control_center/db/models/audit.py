from __future__ import annotations

from typing import Optional
from sqlalchemy import Boolean, Text, DateTime, ForeignKey, CheckConstraint, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from control_center.db.base import Base, UUIDPkMixin, CreatedAtMixin, TenantMixin
from control_center.db.enums import ScanStatus, ScanType, values_sql


class AuditLog(UUIDPkMixin, TenantMixin, CreatedAtMixin, Base):
    """Append-only record of administrative actions."""
    __tablename__ = "audit_logs"

    user_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(Text, nullable=False)
    resource: Mapped[str] = mapped_column(Text, nullable=False)
    resource_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class ErrorLog(UUIDPkMixin, TenantMixin, CreatedAtMixin, Base):
    """Application error reported by the dashboard or a handler."""
    __tablename__ = "error_logs"

    level: Mapped[str] = mapped_column(Text, nullable=False)  # error/warning/info
    message: Mapped[str] = mapped_column(Text, nullable=False)
    component: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    stack_trace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    details: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)


class SecurityScan(UUIDPkMixin, TenantMixin, CreatedAtMixin, Base):
    """Result of one integrity scan run."""
    __tablename__ = "security_scans"
    __table_args__ = (
        CheckConstraint(f"scan_type IN ({values_sql(ScanType)})", name="scan_type_valid"),
        CheckConstraint(f"status IN ({values_sql(ScanStatus)})", name="status_valid"),
    )

    scan_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default=ScanStatus.RUNNING.value)
    findings: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    severity_counts: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    started_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=text("now()"), nullable=False)
    completed_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)


class GodModeSession(UUIDPkMixin, TenantMixin, Base):
    """Time-bounded elevated-privilege admin session kept for audit."""
    __tablename__ = "godmode_sessions"

    admin_user_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    started_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=text("now()"), nullable=False)
    expires_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    ended_at: Mapped[Optional[DateTime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actions_log: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
