"""
auth/service.py -- Login exchange and per-request identity resolution.

Login path:
    IdentityClaims -> upsert_identity() -> create_access_token()
    First login for a Google subject creates the user record; every later
    login only stamps last_login_at.

Request path:
    Authorization header -> extract_bearer() -> decode_access_token()
    -> UserStore.get_by_id() -> User

Every failure on the request path is a CredentialError subclass. The API
layer reports all of them as the same 401; the distinct types exist for
logging and tests, not for clients.

Layer rule: no imports from api/ or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.oauth import IdentityClaims
from auth.store import UserStore
from auth.tokens import create_access_token, decode_access_token
from core.errors import MissingCredentialError, UnknownSubjectError

logger = logging.getLogger("stashit.auth")

_BEARER_PREFIX = "Bearer "


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def upsert_identity(store: UserStore, claims: IdentityClaims) -> User:
    """Return the local user for claims.sub, creating it on first login.

    Existing user: only last_login_at changes.
    New user: created from the claims. If a concurrent login for the same
        subject wins the INSERT race, the UNIQUE(google_id) violation is
        caught and the winner's record is returned instead.
    """
    user = store.get_by_google_id(claims.sub)
    if user is not None:
        store.update_last_login(user.id)
        logger.info("Returning user %d logged in", user.id)
        return store.get_by_id(user.id) or user

    new_user = User(
        google_id=claims.sub,
        email=claims.email,
        name=claims.name,
        avatar=claims.picture,
    )
    try:
        user_id = store.create_user(new_user)
    except IntegrityError:
        existing = store.get_by_google_id(claims.sub)
        if existing is None:
            raise
        logger.info("Concurrent first login for user %d; using existing record", existing.id)
        store.update_last_login(existing.id)
        return existing

    logger.info("Created user %d on first login", user_id)
    created = store.get_by_id(user_id)
    if created is None:
        raise RuntimeError("User record missing immediately after insert")
    return created


def issue_session(store: UserStore, claims: IdentityClaims, secret_key: str) -> tuple[User, str]:
    """Resolve claims to a local user and sign a session credential for it."""
    user = upsert_identity(store, claims)
    return user, create_access_token(user.id, secret_key)


# ---------------------------------------------------------------------------
# Per-request validation
# ---------------------------------------------------------------------------


def extract_bearer(authorization: str | None) -> str:
    """Return the token from an "Authorization: Bearer <token>" header value.

    Raises:
        MissingCredentialError: Header absent, not a Bearer header, or empty token.
    """
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise MissingCredentialError("No bearer credential supplied")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise MissingCredentialError("No bearer credential supplied")
    return token


def resolve_identity(store: UserStore, token: str, secret_key: str, now: datetime | None = None) -> User:
    """Validate token and return the user it was issued to.

    Raises:
        InvalidCredentialError, ExpiredCredentialError: From decode_access_token().
        UnknownSubjectError: Signature and expiry are fine but the user record is gone.
    """
    user_id = decode_access_token(token, secret_key, now=now)
    user = store.get_by_id(user_id)
    if user is None:
        raise UnknownSubjectError("Credential subject no longer exists")
    return user
