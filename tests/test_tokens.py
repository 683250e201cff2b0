"""Unit tests for auth/tokens.py -- password hashing, JWTs and password login.

Covers:
- bcrypt hash / verify, including a malformed stored hash
- TokenAuthority refuses to exist without a signing key
- token claims (id, username, role) and the fixed 2-hour lifetime
- authenticate(): success, case-insensitive username, every failure message
- decode_access_token(): tampered, foreign-key and expired tokens yield None
"""

import pytest
from jose import jwt

from auth.models import AuthOutcome, User
from auth.tokens import TokenAuthority, hash_password, verify_password
from core.errors import ConfigurationError

_PASSWORD = "Passw0rd!"


@pytest.fixture
def alice(registry):
    return registry.register(username="Alice", password=_PASSWORD, email="alice@example.com", name="Alice")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def test_hash_and_verify():
    hashed = hash_password(_PASSWORD)
    assert hashed != _PASSWORD
    assert verify_password(_PASSWORD, hashed)
    assert not verify_password("wrong", hashed)


def test_verify_against_malformed_hash_is_false():
    assert verify_password(_PASSWORD, "not-a-bcrypt-hash") is False


# ---------------------------------------------------------------------------
# Token issuance / verification
# ---------------------------------------------------------------------------


def test_authority_requires_signing_key(settings):
    with pytest.raises(ConfigurationError):
        TokenAuthority(settings.model_copy(update={"secret_key": ""}))


def test_token_round_trip(authority):
    token = authority.create_access_token("user-1", "alice", "User")
    claims = authority.decode_access_token(token)
    assert claims["id"] == "user-1"
    assert claims["sub"] == "user-1"
    assert claims["username"] == "alice"
    assert claims["role"] == "User"


def test_token_lifetime_is_two_hours(authority):
    claims = authority.decode_access_token(authority.create_access_token("user-1", "alice", "User"))
    assert claims["exp"] - claims["iat"] == 7200


def test_tampered_token_is_rejected(authority):
    token = authority.create_access_token("user-1", "alice", "User")
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[::-1]])
    assert authority.decode_access_token(tampered) is None


def test_token_signed_with_other_key_is_rejected(authority):
    forged = jwt.encode({"id": "user-1", "role": "admin"}, "x" * 40, algorithm="HS256")
    assert authority.decode_access_token(forged) is None


def test_expired_token_is_rejected(settings):
    short_lived = TokenAuthority(settings.model_copy(update={"token_expire_seconds": -10}))
    assert short_lived.decode_access_token(short_lived.create_access_token("user-1", "alice", "User")) is None


def test_token_without_role_claim_is_rejected(settings, authority):
    token = jwt.encode({"id": "user-1"}, settings.secret_key, algorithm="HS256")
    assert authority.decode_access_token(token) is None


def test_identify(authority):
    identity = authority.identify(authority.create_access_token("user-1", "alice", "admin"))
    assert identity.id == "user-1"
    assert identity.username == "alice"
    assert identity.role == "admin"
    assert authority.identify("garbage") is None


# ---------------------------------------------------------------------------
# authenticate()
# ---------------------------------------------------------------------------


def test_login_is_case_insensitive_and_carries_default_role(authority, user_store, alice):
    result = authority.authenticate(user_store, "alice", _PASSWORD)
    assert result.succeeded
    assert result.message == "Login successful"
    assert result.user.username == "Alice"
    assert result.user.role == "User"
    claims = authority.decode_access_token(result.token)
    assert claims["role"] == "User"
    assert claims["id"] == alice.id


def test_login_with_surrounding_whitespace(authority, user_store, alice):
    assert authority.authenticate(user_store, "  ALICE ", _PASSWORD).succeeded


def test_login_wrong_password(authority, user_store, alice):
    result = authority.authenticate(user_store, "Alice", "Wr0ng!pass")
    assert result.outcome is AuthOutcome.INVALID_CREDENTIALS
    assert result.message == "Credentials are incorrect"
    assert result.token == ""
    assert result.user is None


def test_login_unknown_user(authority, user_store):
    result = authority.authenticate(user_store, "nobody", _PASSWORD)
    assert result.outcome is AuthOutcome.USER_NOT_FOUND
    assert result.message == "User not found"
    assert result.token == ""


@pytest.mark.parametrize("username,password", [("", _PASSWORD), ("alice", ""), (None, None)])
def test_login_missing_fields(authority, user_store, username, password):
    result = authority.authenticate(user_store, username, password)
    assert result.outcome is AuthOutcome.MISSING_FIELDS
    assert result.message == "Username or password is required"
    assert not result.succeeded


def test_user_without_role_gets_empty_role_claim(authority, user_store):
    user_store.create_user(User(username="norole", hashed_password=hash_password(_PASSWORD)))
    result = authority.authenticate(user_store, "norole", _PASSWORD)
    assert result.succeeded
    assert authority.decode_access_token(result.token)["role"] == ""
