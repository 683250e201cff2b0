"""
auth/models.py -- Domain dataclasses for identity entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in catalog/models.py -- dataclasses own domain shape; stores and services do
the work.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass
class User:
    """A stored identity record.

    username keeps the caller's spelling; lookups go through a trimmed,
    lower-cased key maintained by auth/store.py, so "Alice" and " alice "
    are the same account.

    normalized_email is the upper-cased email, derived at registration.
    hashed_password is a bcrypt hash. Plaintext is never stored.
    """

    username: str
    hashed_password: str
    id: str | None = None  # uuid4 string, assigned by the store
    email: str | None = None
    normalized_email: str | None = None
    name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Role:
    """An authorization tag. Created lazily the first time it is requested."""

    name: str
    id: int | None = None


@dataclass
class Principal:
    """Sanitized projection of a user. Carries no credential material.

    role is the user's primary (first assigned) role, or "" when the user has
    none.
    """

    id: str
    username: str
    name: str | None = None
    email: str | None = None
    role: str = ""
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_user(cls, user: User, roles: list[str]) -> Principal:
        return cls(
            id=user.id or "",
            username=user.username,
            name=user.name,
            email=user.email,
            role=roles[0] if roles else "",
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class AuthOutcome(str, Enum):
    SUCCESS = "success"
    MISSING_FIELDS = "missing_fields"
    USER_NOT_FOUND = "user_not_found"
    INVALID_CREDENTIALS = "invalid_credentials"


@dataclass
class LoginResult:
    """Result of TokenAuthority.authenticate().

    On any failure token is "" and user is None; message is the only
    discriminator exposed to clients.
    """

    outcome: AuthOutcome
    message: str
    token: str = ""
    user: Principal | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is AuthOutcome.SUCCESS


@dataclass
class TokenIdentity:
    """Caller identity reconstructed from a verified access token's claims."""

    id: str
    username: str
    role: str
    claims: dict = field(default_factory=dict)
