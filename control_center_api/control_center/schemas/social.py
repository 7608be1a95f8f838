from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class UsernameValidationResult(BaseModel):
    is_valid: bool = Field(...)
    is_available: bool = Field(...)
    errors: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class PlatformAvailability(BaseModel):
    available: bool = Field(...)
    suggestion: Optional[str] = Field(None)


class AllPlatformsResult(BaseModel):
    username: str = Field(...)
    platforms: Dict[str, PlatformAvailability] = Field(default_factory=dict)


class PasswordCheckRequest(BaseModel):
    password: str = Field(...)


class PasswordCheckResult(BaseModel):
    is_valid: bool = Field(...)
    errors: List[str] = Field(default_factory=list)


class GeneratedPassword(BaseModel):
    password: str = Field(...)
    length: int = Field(...)
