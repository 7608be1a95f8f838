from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator


class TenantRead(BaseModel):
    """Tenant read model."""
    id: UUID = Field(..., description="Tenant id")
    name: str = Field(..., description="Display name")
    slug: str = Field(..., description="Unique slug")
    environment: str = Field(..., description="production/staging/development")
    base_url: Optional[str] = Field(None)
    admin_url: Optional[str] = Field(None)
    ssl_enabled: bool = Field(False)
    backups_enabled: bool = Field(False)
    custom_domain: bool = Field(False)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class TenantCreate(BaseModel):
    """Create tenant payload."""
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1, pattern=r"^[a-z0-9][a-z0-9-]*$")
    environment: str = Field("production")
    base_url: Optional[str] = Field(None)
    admin_url: Optional[str] = Field(None)
    ssl_enabled: bool = Field(False)
    backups_enabled: bool = Field(False)
    custom_domain: bool = Field(False)


class TenantUpdate(BaseModel):
    """Update tenant payload; omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1)
    environment: Optional[str] = Field(None)
    base_url: Optional[str] = Field(None)
    admin_url: Optional[str] = Field(None)
    ssl_enabled: Optional[bool] = Field(None)
    backups_enabled: Optional[bool] = Field(None)
    custom_domain: Optional[bool] = Field(None)


class SiteRead(BaseModel):
    """Site read model."""
    id: UUID = Field(..., description="Site id")
    name: str = Field(..., description="Site name (unique per tenant)")
    domain: Optional[str] = Field(None)
    status: Optional[str] = Field(None, description="active/paused/building")
    health_status: Optional[str] = Field(None)
    ssl_status: Optional[str] = Field(None)
    owner_type: Optional[str] = Field(None, description="internal/client")
    app_color: Optional[str] = Field(None)
    lovable_url: Optional[str] = Field(None)
    uptime_percentage: Optional[float] = Field(None)
    response_time_ms: Optional[int] = Field(None)
    created_at: datetime = Field(..., description="Created at")
    updated_at: datetime = Field(..., description="Updated at")

    class Config:
        from_attributes = True


class SiteCreate(BaseModel):
    """Create site payload."""
    name: str = Field(..., min_length=1, max_length=200)
    domain: Optional[str] = Field(None)
    status: Optional[str] = Field("active")
    health_status: Optional[str] = Field(None)
    ssl_status: Optional[str] = Field(None)
    owner_type: Optional[str] = Field("internal")
    app_color: Optional[str] = Field(None)
    lovable_url: Optional[str] = Field(None)


class SiteUpdate(BaseModel):
    """Partial site update."""
    domain: Optional[str] = Field(None)
    status: Optional[str] = Field(None)
    health_status: Optional[str] = Field(None)
    ssl_status: Optional[str] = Field(None)
    owner_type: Optional[str] = Field(None)
    app_color: Optional[str] = Field(None)
    lovable_url: Optional[str] = Field(None)
    uptime_percentage: Optional[float] = Field(None, ge=0, le=100)
    response_time_ms: Optional[int] = Field(None, ge=0)


class SiteRename(BaseModel):
    """Rename a site."""
    name: str = Field(..., min_length=1, max_length=200)


class ImportedAppRead(BaseModel):
    """GitHub source of an imported site."""
    id: UUID = Field(...)
    site_id: UUID = Field(...)
    github_repo_url: Optional[str] = Field(None)
    github_repo_owner: Optional[str] = Field(None)
    github_repo_name: Optional[str] = Field(None)
    github_default_branch: Optional[str] = Field(None)
    github_visibility: Optional[str] = Field(None)
    github_last_push_at: Optional[datetime] = Field(None)
    github_last_commit_sha: Optional[str] = Field(None)
    detected_integrations: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True


class ImportedAppCreate(BaseModel):
    """Link a site to the GitHub repository it was built from."""
    github_repo_url: str = Field(..., description="https://github.com/owner/repo or owner/repo")
    github_default_branch: Optional[str] = Field("main")
    github_visibility: Optional[str] = Field(None, description="public/private")
    detected_integrations: List[str] = Field(default_factory=list)


class SiteIntegrationRead(BaseModel):
    """Integration enabled for a site."""
    id: UUID = Field(...)
    site_id: Optional[UUID] = Field(None)
    integration_id: str = Field(..., description="Integration catalog id, e.g. 'stripe'")
    status: Optional[str] = Field(None)
    config: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True


class SiteIntegrationUpsert(BaseModel):
    """Create or update a site integration."""
    integration_id: str = Field(..., min_length=1)
    status: Optional[str] = Field("connected")
    config: Dict[str, Any] = Field(default_factory=dict)


class IntegrationBulkImport(BaseModel):
    """Integration ids detected by the GitHub dependency scraper."""
    integration_ids: List[str] = Field(..., min_length=1)
    status: str = Field("detected")


class BulkImportResult(BaseModel):
    added: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)


# PUBLIC_INTERFACE
def mask_secret(value: Optional[str]) -> str:
    """Mask a secret for display: keep the last 2 characters of long values."""
    if not value:
        return ""
    if len(value) <= 4:
        return "*" * len(value)
    return "*" * (len(value) - 2) + value[-2:]


class CredentialRead(BaseModel):
    """Credential read model. The password is always masked."""
    id: UUID = Field(...)
    site_id: Optional[UUID] = Field(None)
    integration_id: str = Field(...)
    email: str = Field(...)
    password: str = Field(..., description="Masked password")
    status: Optional[str] = Field(None)
    additional_fields: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(...)
    updated_at: datetime = Field(...)

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def _mask(self) -> "CredentialRead":
        self.password = mask_secret(self.password)
        return self


class CredentialCreate(BaseModel):
    """Store a login for an integration account."""
    site_id: Optional[UUID] = Field(None)
    integration_id: str = Field(..., min_length=1)
    email: EmailStr = Field(...)
    password: str = Field(..., min_length=1)
    status: Optional[str] = Field("active")
    additional_fields: Dict[str, Any] = Field(default_factory=dict)


class CredentialUpdate(BaseModel):
    email: Optional[EmailStr] = Field(None)
    password: Optional[str] = Field(None, min_length=1)
    status: Optional[str] = Field(None)
    additional_fields: Optional[Dict[str, Any]] = Field(None)
