"""Tests for token encryption and claim decoding."""

import base64
import json

import pytest

from email_markdown.exceptions import ConfigurationError
from email_markdown.tokens.claims import decode_jwt_claims, provider_identity
from email_markdown.tokens.encryption import TokenCipher


def _jwt(claims):
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    return f"eyJhbGciOiJub25lIn0.{payload}.sig"


def test_round_trip():
    cipher = TokenCipher(TokenCipher.generate_key())
    encrypted = cipher.encrypt("secret-token")
    assert encrypted != "secret-token"
    assert cipher.decrypt(encrypted) == "secret-token"


def test_empty_values():
    cipher = TokenCipher(TokenCipher.generate_key())
    assert cipher.encrypt("") == ""
    assert cipher.decrypt("") == ""
    assert cipher.decrypt(None) == ""


def test_rotated_out_key_decrypts_to_empty():
    old = TokenCipher(TokenCipher.generate_key())
    encrypted = old.encrypt("secret-token")
    new = TokenCipher(TokenCipher.generate_key())
    assert new.decrypt(encrypted) == ""
    assert new.decrypt("not-a-fernet-token") == ""


def test_old_key_still_readable_and_rotatable():
    old_key, new_key = TokenCipher.generate_key(), TokenCipher.generate_key()
    encrypted = TokenCipher(old_key).encrypt("secret-token")
    cipher = TokenCipher([new_key, old_key])
    assert cipher.decrypt(encrypted) == "secret-token"

    rotated = cipher.rotate(encrypted)
    assert TokenCipher(new_key).decrypt(rotated) == "secret-token"


def test_missing_or_invalid_key():
    with pytest.raises(ConfigurationError, match="TOKEN_ENCRYPTION_KEYS"):
        TokenCipher([])
    with pytest.raises(ConfigurationError, match="Invalid Fernet key"):
        TokenCipher("short")


def test_decode_jwt_claims():
    claims = decode_jwt_claims(_jwt({"oid": "user-1", "tid": "tenant-1"}))
    assert provider_identity(claims) == ("user-1", "tenant-1")
    assert provider_identity(decode_jwt_claims(_jwt({"sub": "g-123"}))) == ("g-123", None)


@pytest.mark.parametrize("token", [None, "", "opaque-token", "a.!!!.c", "a..c"])
def test_decode_jwt_claims_tolerates_malformed(token):
    assert decode_jwt_claims(token) == {}
