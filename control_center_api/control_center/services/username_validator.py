"""
Social handle validation and password helpers.

Availability is a lookup against a static set of taken handles per platform; it
stands in for the platforms' own lookup APIs until those are wired up.
"""
from __future__ import annotations

import random
import re
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional

from control_center.schemas.social import PlatformAvailability, UsernameValidationResult


@dataclass(frozen=True)
class UsernameRule:
    min_length: int
    max_length: int
    pattern: re.Pattern
    description: str


USERNAME_RULES: Dict[str, UsernameRule] = {
    "instagram": UsernameRule(1, 30, re.compile(r"^[a-zA-Z0-9._]+$"), "Letters, numbers, periods, and underscores only"),
    "tiktok": UsernameRule(2, 24, re.compile(r"^[a-zA-Z0-9._]+$"), "Letters, numbers, periods, and underscores only"),
    "twitter": UsernameRule(4, 15, re.compile(r"^[a-zA-Z0-9_]+$"), "Letters, numbers, and underscores only"),
    "facebook": UsernameRule(5, 50, re.compile(r"^[a-zA-Z0-9.]+$"), "Letters, numbers, and periods only"),
    "discord": UsernameRule(2, 32, re.compile(r"^[a-zA-Z0-9_]+$"), "Letters, numbers, and underscores only"),
    "youtube": UsernameRule(3, 30, re.compile(r"^[a-zA-Z0-9]+$"), "Letters and numbers only"),
    "linkedin": UsernameRule(3, 100, re.compile(r"^[a-zA-Z0-9-]+$"), "Letters, numbers, and hyphens only"),
}

TAKEN_USERNAMES: Dict[str, frozenset] = {
    "instagram": frozenset({"johndoe", "janedoe", "admin", "official", "support", "help"}),
    "tiktok": frozenset({"johndoe", "viral", "trending", "admin", "official"}),
    "twitter": frozenset({"johndoe", "elon", "admin", "twitter", "x"}),
    "facebook": frozenset({"johndoe", "facebook", "meta", "admin", "mark"}),
    "discord": frozenset({"johndoe", "discord", "admin", "mod", "bot"}),
    "youtube": frozenset({"johndoe", "google", "youtube", "admin", "official"}),
    "linkedin": frozenset({"johndoe", "linkedin", "admin", "hr", "recruiter"}),
}

RESERVED_WORDS = ("admin", "support", "help", "official", "mod", "bot")

MAX_SUGGESTIONS = 3
_SUGGESTION_ATTEMPTS = 5

_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"
_DIGITS = "0123456789"
_SYMBOLS = "!@#$%^&*"
_SPECIAL_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


def _is_taken(platform: str, username: str) -> bool:
    return username.lower() in TAKEN_USERNAMES.get(platform, frozenset())


# PUBLIC_INTERFACE
def validate_username(username: str, platform: str, rng: Optional[random.Random] = None) -> UsernameValidationResult:
    """
    Validate a handle against the platform's rules and check its availability.

    Unknown platforms use the instagram rules. When the handle is taken, up to
    three suggestions are built from the handle with trailing digits replaced by
    a random number.
    """
    rng = rng or random.Random()
    rules = USERNAME_RULES.get(platform, USERNAME_RULES["instagram"])
    errors: List[str] = []

    if len(username) < rules.min_length:
        errors.append(f"Username must be at least {rules.min_length} characters")
    if len(username) > rules.max_length:
        errors.append(f"Username must be no more than {rules.max_length} characters")
    if not rules.pattern.match(username):
        errors.append(rules.description)
    lowered = username.lower()
    if any(word in lowered for word in RESERVED_WORDS):
        errors.append("Username contains reserved words")

    is_available = not _is_taken(platform, username)
    suggestions: List[str] = []
    if not is_available:
        base = re.sub(r"\d+$", "", username)
        for _ in range(_SUGGESTION_ATTEMPTS):
            candidate = f"{base}{rng.randint(0, 9998)}"
            if not _is_taken(platform, candidate):
                suggestions.append(candidate)

    return UsernameValidationResult(
        is_valid=not errors,
        is_available=is_available,
        errors=errors,
        suggestions=suggestions[:MAX_SUGGESTIONS],
    )


# PUBLIC_INTERFACE
def check_all_platforms(username: str, rng: Optional[random.Random] = None) -> Dict[str, PlatformAvailability]:
    """Availability of one handle on every known platform, with a suggestion where taken."""
    rng = rng or random.Random()
    results: Dict[str, PlatformAvailability] = {}
    for platform in USERNAME_RULES:
        if _is_taken(platform, username):
            results[platform] = PlatformAvailability(available=False, suggestion=f"{username}{rng.randint(0, 998)}")
        else:
            results[platform] = PlatformAvailability(available=True)
    return results


# PUBLIC_INTERFACE
def generate_secure_password(length: int = 16) -> str:
    """Random password with at least one upper, lower, digit and symbol."""
    if length < 4:
        raise ValueError("Password length must be at least 4")
    pool = _UPPER + _LOWER + _DIGITS + _SYMBOLS
    chars = [secrets.choice(_UPPER), secrets.choice(_LOWER), secrets.choice(_DIGITS), secrets.choice(_SYMBOLS)]
    chars.extend(secrets.choice(pool) for _ in range(length - len(chars)))
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


# PUBLIC_INTERFACE
def validate_password(password: str) -> List[str]:
    """Return the list of password policy violations (empty when valid)."""
    errors: List[str] = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters")
    if len(password) > 128:
        errors.append("Password must be no more than 128 characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")
    return errors
