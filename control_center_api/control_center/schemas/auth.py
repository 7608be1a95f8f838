from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from control_center.services.username_validator import validate_password


def _strong_password(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    errors = validate_password(value)
    if errors:
        raise ValueError("; ".join(errors))
    return value


class TokenPair(BaseModel):
    """Access and refresh tokens."""
    token_type: str = Field("bearer", description="Token type, typically 'bearer'")
    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")


class RefreshRequest(BaseModel):
    """Request to refresh an access token."""
    refresh_token: str = Field(..., description="Refresh token")


class RegisterRequest(BaseModel):
    """Registration details for creating a new dashboard user."""
    email: EmailStr = Field(..., description="User email")
    password: str = Field(..., description="Password (8+ chars, upper, lower, digit and special)")
    full_name: Optional[str] = Field(None, description="Full name")

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: Optional[str]) -> Optional[str]:
        return _strong_password(v)


class UserRead(BaseModel):
    """User read model."""
    id: UUID = Field(..., description="User ID")
    email: EmailStr = Field(..., description="User email")
    full_name: Optional[str] = Field(None)
    is_active: bool = Field(..., description="Active flag")
    is_superadmin: bool = Field(..., description="Superadmin flag")
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")
    roles: List[str] = Field(default_factory=list, description="Role names (super_admin, admin, editor, ...)")

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    """Admin create user payload."""
    email: EmailStr = Field(..., description="Email")
    password: str = Field(..., description="Password")
    full_name: Optional[str] = Field(None)
    is_active: bool = Field(default=True)
    is_superadmin: bool = Field(default=False)
    roles: List[str] = Field(default_factory=list, description="Role names to assign on creation")

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: Optional[str]) -> Optional[str]:
        return _strong_password(v)


class UserUpdate(BaseModel):
    """Admin update user payload."""
    email: Optional[EmailStr] = Field(None)
    password: Optional[str] = Field(None)
    full_name: Optional[str] = Field(None)
    is_active: Optional[bool] = Field(None)
    is_superadmin: Optional[bool] = Field(None)

    @field_validator("password")
    @classmethod
    def _check_password(cls, v: Optional[str]) -> Optional[str]:
        return _strong_password(v)


class RoleRead(BaseModel):
    """Role read model."""
    id: UUID = Field(..., description="Role ID")
    name: str = Field(..., description="Role name")
    description: Optional[str] = Field(None)
    created_at: datetime = Field(..., description="Created timestamp")
    updated_at: datetime = Field(..., description="Updated timestamp")

    class Config:
        from_attributes = True


class RoleCreate(BaseModel):
    """Create role payload."""
    name: str = Field(..., min_length=2, description="Role name")
    description: Optional[str] = Field(None, description="Description")
