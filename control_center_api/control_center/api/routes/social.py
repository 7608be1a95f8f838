from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from control_center.core.deps import get_current_active_user
from control_center.schemas.social import (
    AllPlatformsResult,
    GeneratedPassword,
    PasswordCheckRequest,
    PasswordCheckResult,
    UsernameValidationResult,
)
from control_center.services.username_validator import (
    USERNAME_RULES,
    check_all_platforms,
    generate_secure_password,
    validate_password,
    validate_username,
)

router = APIRouter(prefix="/social", tags=["Social"], dependencies=[Depends(get_current_active_user)])


# PUBLIC_INTERFACE
@router.get(
    "/username/validate",
    response_model=UsernameValidationResult,
    summary="Validate username",
    description=f"Check a handle against the platform rules and availability. Platforms: {', '.join(USERNAME_RULES)}.",
)
def validate_username_route(
    username: str = Query(..., min_length=1),
    platform: str = Query("instagram"),
) -> UsernameValidationResult:
    return validate_username(username, platform.lower())


# PUBLIC_INTERFACE
@router.get(
    "/username/platforms",
    response_model=AllPlatformsResult,
    summary="Check username on all platforms",
)
def check_all_platforms_route(username: str = Query(..., min_length=1)) -> AllPlatformsResult:
    return AllPlatformsResult(username=username, platforms=check_all_platforms(username))


# PUBLIC_INTERFACE
@router.get("/password/generate", response_model=GeneratedPassword, summary="Generate secure password")
def generate_password_route(length: int = Query(16, ge=8, le=128)) -> GeneratedPassword:
    try:
        password = generate_secure_password(length)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return GeneratedPassword(password=password, length=len(password))


# PUBLIC_INTERFACE
@router.post("/password/validate", response_model=PasswordCheckResult, summary="Validate password strength")
def validate_password_route(payload: PasswordCheckRequest) -> PasswordCheckResult:
    errors = validate_password(payload.password)
    return PasswordCheckResult(is_valid=not errors, errors=errors)
