import pytest
from jose import JWTError

from control_center.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)


def test_password_hash_roundtrip():
    hashed = get_password_hash("S3cure!pass")
    assert hashed != "S3cure!pass"
    assert verify_password("S3cure!pass", hashed)
    assert not verify_password("wrong", hashed)


def test_access_token_claims():
    token = create_access_token("user-1", "tenant-1", roles=["admin"])
    claims = decode_token(token, expected_type="access")
    assert claims["sub"] == "user-1"
    assert claims["tenant_id"] == "tenant-1"
    assert claims["roles"] == ["admin"]
    assert claims["type"] == "access"


def test_refresh_token_is_rejected_where_access_is_expected():
    token = create_refresh_token("user-1", "tenant-1")
    assert decode_token(token, expected_type="refresh")["sub"] == "user-1"
    with pytest.raises(JWTError):
        decode_token(token, expected_type="access")


def test_expired_token_is_rejected():
    token = create_access_token("user-1", "tenant-1", expires_minutes=-1)
    with pytest.raises(JWTError):
        decode_token(token)


def test_tampered_token_is_rejected():
    token = create_access_token("user-1", "tenant-1")
    with pytest.raises(JWTError):
        decode_token(token[:-2] + ("aa" if not token.endswith("aa") else "bb"))
