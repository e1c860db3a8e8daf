"""
auth/tokens.py -- Session credential signing and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the local user id ("sub"),
       the issue time ("iat") and the expiry ("exp"). Nothing about the user's
       vault is ever put in a token.

  Lifetime: fixed at 20 days (TOKEN_LIFETIME). This is a policy constant,
       deliberately not read from configuration.

  Revocation: none. A credential stays valid until it expires or SECRET_KEY
       changes. Logout is the client discarding its copy.

  Expiry: checked here against an injectable `now` rather than by jose, so
       the boundary is testable without sleeping or patching the clock.

  SECRET_KEY: passed in by the caller (app.state.settings.secret_key). This
       module never reads configuration itself.

Layer rule: no imports from api/ or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.errors import ExpiredCredentialError, InvalidCredentialError

logger = logging.getLogger("stashit.auth")

_ALGORITHM = "HS256"

TOKEN_LIFETIME = timedelta(days=20)


def create_access_token(user_id: int, secret_key: str, issued_at: datetime | None = None) -> str:
    """Encode a signed JWT for the given local user id.

    Args:
        user_id:    Primary key of the user record.
        secret_key: Server signing secret.
        issued_at:  Issue time; defaults to now (UTC). Expiry is always
                    issued_at + TOKEN_LIFETIME.
    """
    iat = issued_at or datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": int(iat.timestamp()),
        "exp": int((iat + TOKEN_LIFETIME).timestamp()),
    }
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, secret_key: str, now: datetime | None = None) -> int:
    """Verify a JWT and return the user id it was issued for.

    Raises:
        InvalidCredentialError: Bad signature, not a JWT, or a payload without
            an integer "sub" and an "exp".
        ExpiredCredentialError: now is at or past "exp".
    """
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[_ALGORITHM],
            # jose re-enables exp verification for any claim listed as require_*,
            # so presence of sub and exp is checked below instead.
            options={"verify_exp": False},
        )
    except JWTError as exc:
        raise InvalidCredentialError("Credential signature or format is invalid") from exc

    try:
        user_id = int(payload["sub"])
        expires_at = int(payload["exp"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidCredentialError("Credential payload is malformed") from exc

    current = now or datetime.now(timezone.utc)
    if current.timestamp() >= expires_at:
        raise ExpiredCredentialError("Credential has expired")
    return user_id
