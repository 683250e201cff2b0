"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Callers authenticate with an `Authorization: Bearer <token>` header carrying
an access token issued by POST /api/v1/users/login. Authorization is decided
from the token's own claims; the role claim is a single role name.

try_get_current_identity() is the soft variant (returns None on failure).
get_current_identity() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_current_identity() and raises HTTP 403 if the role
claim is not the configured admin role.

Layer rule: no imports from api/ or catalog/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import TokenIdentity
from auth.tokens import TokenAuthority


def try_get_current_identity(request: Request) -> TokenIdentity | None:
    """Return the identity carried by the request's bearer token, or None.

    Never raises -- callers that need a hard 401 should use get_current_identity().
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    authority: TokenAuthority = request.app.state.token_authority
    return authority.identify(auth_header[7:])


def get_current_identity(request: Request) -> TokenIdentity:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: TokenIdentity = Depends(get_current_identity)): ...
    """
    identity = try_get_current_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return identity


def require_admin(request: Request) -> TokenIdentity:
    """Require the admin role. Raises HTTP 401 if unauthenticated, HTTP 403 otherwise."""
    identity = get_current_identity(request)
    if identity.role != request.app.state.settings.admin_role:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return identity
