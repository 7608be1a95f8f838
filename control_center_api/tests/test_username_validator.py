import random

import pytest

from control_center.services.username_validator import (
    USERNAME_RULES,
    check_all_platforms,
    generate_secure_password,
    validate_password,
    validate_username,
)


def test_valid_available_username():
    result = validate_username("skyline_42", "instagram")
    assert result.is_valid
    assert result.is_available
    assert result.errors == []
    assert result.suggestions == []


def test_twitter_length_and_charset_rules():
    result = validate_username("ab.c", "twitter")
    assert not result.is_valid
    assert "Letters, numbers, and underscores only" in result.errors

    too_long = validate_username("a" * 16, "twitter")
    assert "Username must be no more than 15 characters" in too_long.errors


def test_reserved_word_is_reported():
    result = validate_username("theadminteam", "instagram")
    assert "Username contains reserved words" in result.errors


def test_taken_username_gets_suggestions_without_trailing_digits():
    result = validate_username("johndoe", "tiktok", rng=random.Random(7))
    assert not result.is_available
    assert 0 < len(result.suggestions) <= 3
    assert all(s.startswith("johndoe") and s[len("johndoe"):].isdigit() for s in result.suggestions)


def test_unknown_platform_falls_back_to_instagram_rules():
    result = validate_username("x" * 31, "myspace")
    assert "Username must be no more than 30 characters" in result.errors


def test_check_all_platforms_covers_every_platform():
    results = check_all_platforms("johndoe", rng=random.Random(1))
    assert set(results) == set(USERNAME_RULES)
    assert all(not r.available and r.suggestion for r in results.values())

    free = check_all_platforms("quiet_river_81")
    assert all(r.available and r.suggestion is None for r in free.values())


@pytest.mark.parametrize("length", [8, 16, 64])
def test_generated_password_satisfies_policy(length):
    password = generate_secure_password(length)
    assert len(password) == length
    assert validate_password(password) == []


def test_generate_password_rejects_tiny_length():
    with pytest.raises(ValueError):
        generate_secure_password(3)


def test_validate_password_lists_each_violation():
    errors = validate_password("short")
    assert "Password must be at least 8 characters" in errors
    assert "Password must contain at least one uppercase letter" in errors
    assert "Password must contain at least one number" in errors
    assert "Password must contain at least one special character" in errors
    assert "Password must contain at least one lowercase letter" not in errors
