"""
api/routes/v1/users.py -- Login, registration and user directory endpoints.

Routes:
  POST /api/v1/users/login                 -- password login; returns access token
  POST /api/v1/users/register              -- self-registration
  GET  /api/v1/users                       -- list users (admin)
  GET  /api/v1/users/is-unique/{username}  -- username availability (admin)
  GET  /api/v1/users/{user_id}             -- user detail (admin)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT, default 10/minute).
  TokenAuthority.authenticate() provides timing equalization -- use it, never inline.
  Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import ErrorDetail, LoginRequest, LoginResponse, RegisterRequest, UserDataResponse
from auth.dependencies import require_admin
from auth.models import AuthOutcome
from auth.registry import UserRegistry
from auth.store import UserStore
from auth.tokens import TokenAuthority

# Auth policy:
# - POST /users/login, POST /users/register: public
# - everything else:                         requires admin (require_admin)
router = APIRouter()

_LOGIN_STATUS = {
    AuthOutcome.SUCCESS: 200,
    AuthOutcome.MISSING_FIELDS: 400,
    AuthOutcome.USER_NOT_FOUND: 401,
    AuthOutcome.INVALID_CREDENTIALS: 401,
}


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/users/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password and return a bearer token.

    Every failure returns the same envelope (empty token, null user); the
    message field is the only discriminator.
    """
    authority: TokenAuthority = request.app.state.token_authority
    user_store: UserStore = request.app.state.user_store
    result = authority.authenticate(user_store, body.username, body.password)

    payload = LoginResponse(
        token=result.token,
        user=UserDataResponse.from_principal(result.user) if result.user else None,
        message=result.message,
    )
    resp = JSONResponse(status_code=_LOGIN_STATUS[result.outcome], content=payload.model_dump(by_alias=True))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/users/register", response_model=UserDataResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserDataResponse:
    """Create a user account. The requested role is created on first use.

    Username availability is checked here for a friendly 409; the registry
    still rejects a concurrent duplicate on its own.
    """
    registry: UserRegistry = request.app.state.user_registry
    if not registry.is_username_unique(body.username):
        raise HTTPException(
            status_code=409,
            detail=ErrorDetail(code="conflict", message=f"The user {body.username} already exists").model_dump(),
        )
    principal = registry.register(
        username=body.username,
        password=body.password,
        email=body.email,
        name=body.name,
        role=body.role,
    )
    return UserDataResponse.from_principal(principal)


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/users", response_model=list[UserDataResponse])
def list_users(
    request: Request,
    response: Response,
    _admin=Depends(require_admin),
) -> list[UserDataResponse]:
    """List all users ordered by username."""
    registry: UserRegistry = request.app.state.user_registry
    response.headers["Cache-Control"] = f"private, max-age={request.app.state.settings.user_cache_seconds}"
    return [UserDataResponse.from_principal(p) for p in registry.list_users()]


@router.get("/users/is-unique/{username}", response_model=bool)
def is_unique_user(request: Request, username: str, _admin=Depends(require_admin)) -> bool:
    """Return true if the username is free (case and surrounding whitespace ignored)."""
    registry: UserRegistry = request.app.state.user_registry
    return registry.is_username_unique(username)


@router.get("/users/{user_id}", response_model=UserDataResponse)
def get_user(request: Request, user_id: str, _admin=Depends(require_admin)) -> UserDataResponse:
    registry: UserRegistry = request.app.state.user_registry
    principal = registry.get_user(user_id)
    if principal is None:
        raise HTTPException(
            status_code=404,
            detail=ErrorDetail(code="not_found", message=f"The user with ID {user_id} does not exist").model_dump(),
        )
    return UserDataResponse.from_principal(principal)
