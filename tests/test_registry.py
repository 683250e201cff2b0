"""Unit tests for auth/registry.py and auth/store.py -- registration and roles.

Covers:
- register() returns a sanitized principal with the default or requested role
- a role requested by many registrations is created exactly once
- username uniqueness ignores case and surrounding whitespace
- duplicate registration is rejected with the underlying reason
- password policy violations are aggregated into one RegistrationError
- a store failure mid-registration persists nothing and raises StoreError
"""

import pytest
from sqlalchemy.exc import OperationalError

from auth.models import Principal
from auth.registry import UserRegistry
from core.errors import RegistrationError, StoreError, ValidationError

_PASSWORD = "Passw0rd!"


def test_register_returns_principal_with_default_role(registry):
    principal = registry.register(username="bob", password=_PASSWORD, email="bob@example.com", name="Bob")
    assert isinstance(principal, Principal)
    assert principal.username == "bob"
    assert principal.email == "bob@example.com"
    assert principal.role == "User"
    assert principal.id
    assert not hasattr(principal, "hashed_password")


def test_register_stores_normalized_email_and_hash(registry, user_store):
    principal = registry.register(username="carol", password=_PASSWORD, email="carol@example.com")
    stored = user_store.get_by_id(principal.id)
    assert stored.normalized_email == "CAROL@EXAMPLE.COM"
    assert stored.hashed_password != _PASSWORD


def test_requested_role_is_created_once(registry, user_store):
    first = registry.register(username="ann", password=_PASSWORD, role="Manager")
    second = registry.register(username="ben", password=_PASSWORD, role="manager")
    assert first.role == "Manager"
    # The role name keeps the spelling it was created with.
    assert second.role == "Manager"
    assert user_store.count_roles("Manager") == 1


def test_default_role_is_created_once(registry, user_store):
    for name in ("u1", "u2", "u3"):
        registry.register(username=name, password=_PASSWORD)
    assert user_store.count_roles("User") == 1
    assert [r.name for r in user_store.list_roles()] == ["User"]


def test_is_username_unique_ignores_case_and_whitespace(registry):
    registry.register(username="Alice", password=_PASSWORD)
    assert registry.is_username_unique("alice") is False
    assert registry.is_username_unique("  ALICE  ") is False
    assert registry.is_username_unique("alicia") is True


def test_is_username_unique_rejects_blank(registry):
    with pytest.raises(ValidationError):
        registry.is_username_unique("   ")


def test_duplicate_username_is_rejected(registry):
    registry.register(username="Alice", password=_PASSWORD)
    with pytest.raises(RegistrationError) as exc_info:
        registry.register(username=" alice ", password=_PASSWORD)
    assert exc_info.value.message.startswith("Error while registering the user: ")
    assert "already taken" in exc_info.value.reasons[0]


@pytest.mark.parametrize("username,password", [("", _PASSWORD), ("   ", _PASSWORD), ("dave", ""), (None, None)])
def test_missing_username_or_password(registry, username, password):
    with pytest.raises(ValidationError):
        registry.register(username=username, password=password)


def test_password_policy_collects_every_violation(registry):
    with pytest.raises(RegistrationError) as exc_info:
        registry.register(username="weak", password="abc")
    reasons = exc_info.value.reasons
    assert any("at least 6 characters" in r for r in reasons)
    assert any("digit" in r for r in reasons)
    assert any("uppercase" in r for r in reasons)
    assert any("non alphanumeric" in r for r in reasons)
    assert not any("lowercase" in r for r in reasons)


def test_password_policy_without_complexity(user_store, settings):
    relaxed = UserRegistry(user_store, settings.model_copy(update={"password_require_complexity": False}))
    assert relaxed.password_policy_errors("simplepass") == []
    assert relaxed.password_policy_errors("abc") == ["Passwords must be at least 6 characters."]


def test_policy_rejection_leaves_no_user(registry, user_store):
    with pytest.raises(RegistrationError):
        registry.register(username="ghost", password="x")
    assert user_store.get_by_username("ghost") is None


def test_list_users_ordered_by_username(registry):
    for name in ("zed", "amy", "mia"):
        registry.register(username=name, password=_PASSWORD)
    assert [p.username for p in registry.list_users()] == ["amy", "mia", "zed"]


def test_get_user_unknown_id(registry):
    assert registry.get_user("does-not-exist") is None


def test_roles_in_assignment_order(user_store, registry):
    principal = registry.register(username="multi", password=_PASSWORD, role="Staff")
    user_store.create_role("Auditor")
    user_store.assign_role(principal.id, "Auditor")
    assert user_store.get_roles(principal.id) == ["Staff", "Auditor"]
    assert registry.get_user(principal.id).role == "Staff"


def test_assign_unknown_role(user_store, registry):
    principal = registry.register(username="nobody", password=_PASSWORD)
    with pytest.raises(ValueError):
        user_store.assign_role(principal.id, "Missing")


def _disk_failure(*_args, **_kwargs):
    raise OperationalError("INSERT INTO user_roles", {}, Exception("disk I/O error"))


def test_failed_role_assignment_leaves_no_user(registry, user_store, monkeypatch):
    monkeypatch.setattr(user_store, "_grant_role", _disk_failure)
    with pytest.raises(StoreError):
        registry.register(username="erin", password=_PASSWORD, role="Reviewer")
    assert user_store.get_by_username("erin") is None
    assert user_store.count_roles("Reviewer") == 0


def test_username_is_free_after_store_failure(registry, user_store, monkeypatch):
    with monkeypatch.context() as m:
        m.setattr(user_store, "_grant_role", _disk_failure)
        with pytest.raises(StoreError):
            registry.register(username="erin", password=_PASSWORD)
    principal = registry.register(username="erin", password=_PASSWORD)
    assert principal.role == "User"


def test_store_outage_is_not_a_registration_error(registry, user_store, monkeypatch):
    monkeypatch.setattr(user_store, "create_user_with_role", _disk_failure)
    with pytest.raises(StoreError) as exc_info:
        registry.register(username="frank", password=_PASSWORD)
    assert not isinstance(exc_info.value, RegistrationError)
    assert exc_info.value.code == "store_error"


def test_password_over_bcrypt_limit_is_rejected(registry, user_store):
    with pytest.raises(RegistrationError) as exc_info:
        registry.register(username="longpass", password="Aa1!" + "x" * 69)
    assert any("72" in r for r in exc_info.value.reasons)
    assert user_store.get_by_username("longpass") is None
