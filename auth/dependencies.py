"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

One auth method: the Authorization: Bearer <token> header carrying the JWT
issued at login. The browser extension stores the token and attaches it to
every vault request. There is no cookie session and no API key.

get_current_user() resolves the header to a User, stores it on
request.state.user for downstream code, and converts every CredentialError
into the same HTTP 401. Which check failed is logged at DEBUG level and never
returned to the client.

Layer rule: no imports from vault/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.models import User
from auth.service import extract_bearer, resolve_identity
from core.errors import CredentialError

logger = logging.getLogger("stashit.auth")

UNAUTHORIZED_DETAIL = {"code": "unauthorized", "message": "Authentication required."}


def try_get_current_user(request: Request) -> User | None:
    """Attempt to authenticate the request via its Bearer header.

    Returns the authenticated User on success, None on any failure.
    Never raises -- callers that need a hard 401 should use get_current_user().
    """
    try:
        return _authenticate(request)
    except CredentialError as exc:
        logger.debug("Credential rejected on %s: %s", request.url.path, type(exc).__name__)
        return None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail=UNAUTHORIZED_DETAIL,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def _authenticate(request: Request) -> User:
    settings = request.app.state.settings
    user_store = request.app.state.user_store
    token = extract_bearer(request.headers.get("Authorization"))
    user = resolve_identity(user_store, token, settings.secret_key)
    request.state.user = user
    return user
