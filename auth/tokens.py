"""
auth/tokens.py -- Password hashing, JWT issuance and password login.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with the configured
       SECRET_KEY and carry id, username, role and expiry. Verification
       checks signature and expiry only. Issuer and audience are not
       asserted: tokens are minted and consumed by this one service, so
       there is no second party to name. This is a deliberate
       simplification -- add iss/aud claims here and in decode_access_token()
       together if tokens ever cross a service boundary.

  Passwords: bcrypt. Its cost factor makes brute-force of low-entropy secrets
       expensive. The _DUMMY_HASH constant enables timing equalization in
       TokenAuthority.authenticate() so response time does not reveal whether
       a username exists.

  SECRET_KEY: handed in through the Settings object at construction. There is
       no module-level key; a TokenAuthority without a key cannot be built.

Layer rule: no imports from api/ or catalog/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import AuthOutcome, LoginResult, Principal, TokenIdentity
from core.errors import ConfigurationError

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("storefront.auth")

_ALGORITHM = "HS256"

_MSG_SUCCESS = "Login successful"
_MSG_MISSING = "Username or password is required"
_MSG_NOT_FOUND = "User not found"
_MSG_BAD_CREDENTIALS = "Credentials are incorrect"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only accepts 72 bytes of input. Registration enforces that cap in
    UserRegistry.password_policy_errors, so every stored hash covers the whole
    password.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the store
        return False


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("storefront_timing_dummy")


# ---------------------------------------------------------------------------
# Token authority
# ---------------------------------------------------------------------------


class TokenAuthority:
    """Verifies passwords and mints signed access tokens.

    Usage:
        authority = TokenAuthority(get_settings())
        result = authority.authenticate(user_store, "alice", "Secr3t!")
        if result.succeeded:
            claims = authority.decode_access_token(result.token)
    """

    def __init__(self, settings: Settings) -> None:
        if not settings.secret_key:
            raise ConfigurationError("Token signing key is not configured")
        self._secret_key = settings.secret_key
        self._expire_seconds = settings.token_expire_seconds

    @property
    def expire_seconds(self) -> int:
        return self._expire_seconds

    def create_access_token(self, user_id: str, username: str, role: str) -> str:
        """Encode a signed JWT with user identity and a fixed expiry window.

        Args:
            user_id:  Opaque user id; stored as both `id` and `sub`.
            username: Stored as the `username` claim.
            role:     The user's primary role name ("" when none).
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "id": user_id,
            "username": username,
            "role": role,
            "iat": now,
            "exp": now + timedelta(seconds=self._expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def decode_access_token(self, token: str) -> dict | None:
        """Decode and verify a JWT. Returns the payload dict or None on any failure.

        Returning None (rather than raising) keeps the caller simple: any invalid
        token is treated as unauthenticated. auth/dependencies.py turns None into 401.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if "id" not in payload or "role" not in payload:
            return None
        return payload

    def identify(self, token: str) -> TokenIdentity | None:
        """Return the caller identity carried by a valid token, or None."""
        payload = self.decode_access_token(token)
        if payload is None:
            return None
        return TokenIdentity(
            id=payload["id"],
            username=payload.get("username", ""),
            role=payload["role"],
            claims=payload,
        )

    def authenticate(self, store: UserStore, username: str | None, password: str | None) -> LoginResult:
        """Authenticate a username/password login.

        The username match ignores case and surrounding whitespace. Always runs
        bcrypt whether or not the user exists, so the two failure paths cost the
        same:
        - Unknown username: bcrypt runs against _DUMMY_HASH
        - Wrong password: bcrypt runs against the real hash

        On success the token's role claim is the user's first assigned role.
        """
        if not username or not password:
            return LoginResult(outcome=AuthOutcome.MISSING_FIELDS, message=_MSG_MISSING)

        user = store.get_by_username(username)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt
            verify_password(password, _DUMMY_HASH)
            return LoginResult(outcome=AuthOutcome.USER_NOT_FOUND, message=_MSG_NOT_FOUND)

        if not verify_password(password, user.hashed_password):
            logger.info("Failed login for user id %s", user.id)
            return LoginResult(outcome=AuthOutcome.INVALID_CREDENTIALS, message=_MSG_BAD_CREDENTIALS)

        roles = store.get_roles(user.id)
        principal = Principal.from_user(user, roles)
        token = self.create_access_token(principal.id, principal.username, principal.role)
        return LoginResult(outcome=AuthOutcome.SUCCESS, message=_MSG_SUCCESS, token=token, user=principal)
