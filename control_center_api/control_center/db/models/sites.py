from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlalchemy import DateTime, Text, Numeric, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB, ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from control_center.db.base import Base, UUIDPkMixin, TimestampMixin, TenantMixin, SiteMixin


class Site(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """A managed website tracked by the dashboard."""
    __tablename__ = "sites"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_sites_tenant_name"),
    )

    name: Mapped[str] = mapped_column(Text, nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # e.g., active/paused/building
    health_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ssl_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # internal/client
    app_color: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lovable_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uptime_percentage: Mapped[Optional[float]] = mapped_column(Numeric(5, 2), nullable=True)
    response_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class ImportedApp(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Source repository an imported site was built from."""
    __tablename__ = "imported_apps"

    site_id: Mapped[UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, unique=True)
    github_repo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_repo_owner: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_repo_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_default_branch: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_visibility: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_last_push_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    github_last_commit_sha: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    detected_integrations: Mapped[list[str]] = mapped_column(ARRAY(Text), nullable=False, default=list)


class SiteIntegration(UUIDPkMixin, TenantMixin, TimestampMixin, SiteMixin, Base):
    """Third-party service connection enabled for a site."""
    __tablename__ = "site_integrations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "site_id", "integration_id", name="uq_site_integrations_tenant_site_integration"),
    )

    integration_id: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    config: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)


class Credential(UUIDPkMixin, TenantMixin, TimestampMixin, SiteMixin, Base):
    """Login for an integration account used by a site."""
    __tablename__ = "credentials"

    integration_id: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    password: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    additional_fields: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
