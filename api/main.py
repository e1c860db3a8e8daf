"""
api/main.py -- FastAPI application entry point for StashIt.

Serves the REST API used by the StashIt browser extension: Google login,
session verification, and the per-user vault with passwords encrypted at rest.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware       -- extension origins (chrome-extension://) and dev servers
  2. SlowAPIMiddleware    -- enforces per-route rate limits from api.limiter
  3. SessionMiddleware    -- authlib keeps the OAuth state between redirect and callback

Lifespan builds Settings once and passes it explicitly into the cipher, the
identity provider and (via app.state) the auth dependencies. Stores are
opened on startup and disposed on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.vault import router as vault_router
from auth.dependencies import UNAUTHORIZED_DETAIL
from auth.oauth import GoogleIdentityProvider
from auth.store import UserStore
from core.config import get_settings
from core.crypto import CipherEnvelope
from core.errors import (
    ConfigurationError,
    CredentialError,
    EncryptionError,
    IdentityProviderError,
    MissingAssertionError,
)
from vault.store import VaultStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("stashit.api")

# Read once for the middleware that must be configured before startup. The
# lifespan reuses the same cached instance.
_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Settings and cipher first -- a missing secret fails startup here
         (ConfigurationError) rather than on the first password write.
      2. Stores.
      3. Identity provider last -- only registers with authlib, no network.
    """
    # Startup
    logger.info("StashIt API starting up")
    settings = get_settings()
    app.state.settings = settings
    app.state.cipher = CipherEnvelope.from_settings(settings)
    logger.info("Field encryption initialized")
    app.state.user_store = UserStore(settings.auth_db_url)
    app.state.vault_store = VaultStore(settings.vault_db_url)
    logger.info("Stores initialized")
    app.state.identity_provider = GoogleIdentityProvider(settings)

    yield

    # Shutdown
    app.state.user_store.close()
    app.state.vault_store.close()
    logger.info("StashIt API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="StashIt API",
    description="Personal vault for passwords, notes and small secrets. Passwords are encrypted at rest.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback. Session tokens for the
# API itself are Bearer JWTs and never touch this cookie.
app.add_middleware(SessionMiddleware, secret_key=_settings.secret_key, same_site="lax")

app.add_middleware(SlowAPIMiddleware)

# Added last so it is outermost: 429 and 401 responses still carry CORS headers.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_origin_regex=r"chrome-extension://[a-p]{32}",
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(vault_router, prefix="/api/v1", tags=["Vault"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so the extension can
# parse errors uniformly.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(CredentialError)
async def credential_error_handler(request: Request, exc: CredentialError) -> JSONResponse:
    """Uniform 401 for every credential failure. The reason is not disclosed."""
    logger.debug("Credential rejected on %s: %s", request.url.path, type(exc).__name__)
    response = _error(401, UNAUTHORIZED_DETAIL["code"], UNAUTHORIZED_DETAIL["message"])
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(MissingAssertionError)
async def missing_assertion_handler(request: Request, exc: MissingAssertionError) -> JSONResponse:
    return _error(400, "missing_assertion", "Google token is required.")


@app.exception_handler(IdentityProviderError)
async def identity_provider_handler(request: Request, exc: IdentityProviderError) -> JSONResponse:
    """Google rejected the token or could not be reached. Logged, reported as a plain auth failure."""
    logger.warning("Login rejected on %s: %s", request.url.path, exc)
    return _error(401, "authentication_failed", "Invalid Google token.")


@app.exception_handler(EncryptionError)
@app.exception_handler(ConfigurationError)
async def crypto_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Cipher or secret misconfiguration. Never echo the exception -- it may describe key material."""
    logger.error("%s on %s %s", type(exc).__name__, request.method, request.url.path)
    return _error(500, "internal_error", "The request could not be completed.")


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail; that dict is used directly as the error field.
    """
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and whether the stores answer."""
    db_ok = request.app.state.user_store.ping() and request.app.state.vault_store.ping()
    return HealthResponse(
        status="healthy",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
