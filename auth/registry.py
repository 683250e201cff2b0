"""
auth/registry.py -- User registration and uniqueness queries.

Registration flow:
  1. Reject a missing username or password (ValidationError).
  2. Apply the password policy; every violation is collected.
  3. Insert the user with a bcrypt hash, create the requested role if it is
     missing and assign it, all in one store transaction. The UNIQUE username
     key turns a concurrent duplicate into IntegrityError, reported as
     RegistrationError; any other store failure is a StoreError and leaves no
     user behind.

The transport layer checks is_username_unique() first to give a friendly
conflict message, but register() does not rely on that check having happened.

Layer rule: no imports from api/ or catalog/.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Principal, User
from auth.tokens import hash_password
from core.errors import RegistrationError, StoreError, ValidationError

if TYPE_CHECKING:
    from auth.store import UserStore
    from core.config import Settings

logger = logging.getLogger("storefront.auth")

# bcrypt only looks at the first 72 bytes and current releases refuse longer input.
_BCRYPT_MAX_BYTES = 72


class UserRegistry:
    def __init__(self, store: UserStore, settings: Settings) -> None:
        self._store = store
        self._default_role = settings.default_role
        self._min_length = settings.password_min_length
        self._require_complexity = settings.password_require_complexity

    def is_username_unique(self, username: str | None) -> bool:
        """Return True if no user holds this username (case and surrounding whitespace ignored)."""
        if username is None or not username.strip():
            raise ValidationError("username", "The username cannot be empty")
        return not self._store.username_exists(username)

    def password_policy_errors(self, password: str) -> list[str]:
        """Return a description of every password policy rule the password breaks."""
        errors: list[str] = []
        if len(password) < self._min_length:
            errors.append(f"Passwords must be at least {self._min_length} characters.")
        if len(password.encode("utf-8")) > _BCRYPT_MAX_BYTES:
            errors.append(f"Passwords must be at most {_BCRYPT_MAX_BYTES} bytes.")
        if self._require_complexity:
            if not any(c.isdigit() for c in password):
                errors.append("Passwords must have at least one digit ('0'-'9').")
            if not any(c.islower() for c in password):
                errors.append("Passwords must have at least one lowercase ('a'-'z').")
            if not any(c.isupper() for c in password):
                errors.append("Passwords must have at least one uppercase ('A'-'Z').")
            if all(c.isalnum() for c in password):
                errors.append("Passwords must have at least one non alphanumeric character.")
        return errors

    def register(
        self,
        username: str | None,
        password: str | None,
        email: str | None = None,
        name: str | None = None,
        role: str | None = None,
    ) -> Principal:
        """Create a user, provision its role, and return the sanitized principal.

        Raises:
            ValidationError:   username or password missing/empty.
            RegistrationError: the store rejected the user (policy violation,
                               duplicate username). Carries every reason.
            StoreError:        the store failed; nothing was persisted.
        """
        if not username or not username.strip():
            raise ValidationError("username", "Username or Password is required")
        if not password:
            raise ValidationError("password", "Username or Password is required")

        errors = self.password_policy_errors(password)
        if errors:
            raise RegistrationError(errors)

        user = User(
            username=username.strip(),
            hashed_password=hash_password(password),
            email=email,
            normalized_email=email.upper() if email else None,
            name=name,
        )
        role_name = (role or "").strip() or self._default_role
        try:
            user_id = self._store.create_user_with_role(user, role_name)
        except IntegrityError as exc:
            raise RegistrationError([f"Username '{user.username}' is already taken."]) from exc
        except SQLAlchemyError as exc:
            logger.exception("Store failed while registering %r", user.username)
            raise StoreError("The user could not be saved") from exc

        logger.info("Registered user %r with role %r", user.username, role_name)
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Principal | None:
        user = self._store.get_by_id(user_id)
        if user is None:
            return None
        return Principal.from_user(user, self._store.get_roles(user_id))

    def list_users(self) -> list[Principal]:
        """All users ordered by username, as sanitized principals."""
        return [Principal.from_user(u, self._store.get_roles(u.id)) for u in self._store.list_users()]
