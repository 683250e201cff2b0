"""
api/main.py -- FastAPI application entry point for Storefront.

Exposes the identity service (login, registration, user directory) and the
product catalog (categories, products, purchases) over HTTP.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the core components once and stores them on app.state:
  settings, user_store, token_authority, user_registry,
  catalog_engine, categories, products
Route handlers read them from request.app.state; nothing is a module global.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.images import PUBLIC_PREFIX
from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.categories import router as categories_router
from api.routes.v1.products import router as products_router
from api.routes.v1.users import router as users_router
from auth.registry import UserRegistry
from auth.store import UserStore
from auth.tokens import TokenAuthority
from catalog.categories import CategoryDirectory
from catalog.products import ProductLedger
from catalog.store import create_catalog_engine
from core.config import get_settings
from core.errors import (
    ConflictError,
    NotFoundError,
    RegistrationError,
    ServiceError,
    StoreError,
    ValidationError,
)

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("storefront.api")

# Settings are read once at import so the middleware stack can be configured.
# A missing or short SECRET_KEY fails here, before the server accepts traffic.
settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the core components on startup and release them on shutdown.

    Startup order matters:
      1. Identity store first -- the token authority and registry wrap it.
      2. Catalog engine second -- CategoryDirectory and ProductLedger share it,
         and the ledger consults the directory for category existence.
    """
    logger.info("Storefront API starting up")
    app.state.settings = settings

    app.state.user_store = UserStore(settings.auth_db_url)
    app.state.token_authority = TokenAuthority(settings)
    app.state.user_registry = UserRegistry(app.state.user_store, settings)
    logger.info("Identity service initialized")

    app.state.catalog_engine = create_catalog_engine(settings.catalog_db_url)
    app.state.categories = CategoryDirectory(app.state.catalog_engine)
    app.state.products = ProductLedger(app.state.catalog_engine, app.state.categories)
    logger.info("Catalog initialized")

    yield

    app.state.user_store.close()
    app.state.catalog_engine.dispose()
    logger.info("Storefront API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Storefront API",
    description="Product catalog with inventory purchases and token-based user authentication.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(categories_router, prefix="/api/v1", tags=["Categories"])
app.include_router(products_router, prefix="/api/v1", tags=["Products"])

# Uploaded product images. check_dir=False: the folder is created on the
# first upload, not at import.
app.mount(
    PUBLIC_PREFIX,
    StaticFiles(directory=settings.product_images_dir, check_dir=False),
    name="product-images",
)

# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

_SERVICE_STATUS: list[tuple[type[ServiceError], int]] = [
    (ValidationError, 400),
    (RegistrationError, 400),
    (ConflictError, 409),
    (NotFoundError, 404),
    (StoreError, 500),
]


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map core failures onto HTTP status codes.

    Store failures are logged and answered with a generic message; the
    underlying database error never reaches the client.
    """
    status = next((code for cls, code in _SERVICE_STATUS if isinstance(exc, cls)), 500)
    if isinstance(exc, StoreError):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
        error = ErrorDetail(code=exc.code, message="The operation could not be completed.")
    elif isinstance(exc, ValidationError):
        error = ErrorDetail(code=exc.code, message=exc.message, detail=exc.field)
    elif isinstance(exc, RegistrationError):
        error = ErrorDetail(code=exc.code, message=exc.message, detail="; ".join(exc.reasons))
    else:
        error = ErrorDetail(code=exc.code, message=exc.message)
    return JSONResponse(status_code=status, content=ErrorResponse(error=error).model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


def _probe(engine) -> str:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health probe failed")
        return "unavailable"
    return "ok"


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version and per-database reachability."""
    components = {
        "app": "ok",
        "auth_database": _probe(request.app.state.user_store.engine),
        "catalog_database": _probe(request.app.state.catalog_engine),
    }
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)
