"""
auth/oauth.py -- Google identity provider exchange.

Two ways into a StashIt session, both ending at the Google user-info
endpoint:

  Redirect flow (browser tab opened by the extension):
      /auth/google/login -> Google consent -> /auth/google/callback?code=...
      authlib exchanges the code for an access token, then fetch_claims()
      calls user-info with it.

  Direct flow (extension already holds a Google access token from
      chrome.identity): POST /auth/google {"googleToken": ...}
      fetch_claims() calls user-info with that token.

The user-info response is normalized into IdentityClaims. Only "sub" is
mandatory -- it is the join key to the local user record.

OAuth state parameter (CSRF protection) for the redirect flow is handled by
authlib via Starlette SessionMiddleware.

Layer rule: no imports from api/ or vault/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import requests
from authlib.integrations.starlette_client import OAuth, OAuthError

from core.errors import IdentityProviderError

if TYPE_CHECKING:
    from starlette.requests import Request

    from core.config import Settings

logger = logging.getLogger("stashit.auth.oauth")

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"

_USERINFO_TIMEOUT = 10  # seconds


@dataclass(frozen=True)
class IdentityClaims:
    """The subset of Google user-info StashIt keeps."""

    sub: str
    email: str
    name: str | None = None
    picture: str | None = None

    @classmethod
    def from_userinfo(cls, payload: dict) -> IdentityClaims:
        """Build claims from a user-info JSON object.

        Raises:
            IdentityProviderError: If "sub" is missing or empty.
        """
        sub = payload.get("sub")
        if not sub:
            raise IdentityProviderError("Google user-info response has no subject")
        return cls(
            sub=str(sub),
            email=payload.get("email") or "",
            name=payload.get("name"),
            picture=payload.get("picture"),
        )


class GoogleIdentityProvider:
    """Turns a Google authorization code or access token into IdentityClaims.

    Usage:
        provider = GoogleIdentityProvider(settings)
        claims = provider.fetch_claims(access_token)
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.oauth = OAuth()
        self.is_configured = bool(settings.google_client_id and settings.google_client_secret)
        if self.is_configured:
            self.oauth.register(
                name="google",
                client_id=settings.google_client_id,
                client_secret=settings.google_client_secret,
                server_metadata_url=GOOGLE_DISCOVERY_URL,
                client_kwargs={"scope": "openid email profile"},
            )
            logger.info("Google OAuth provider registered")
        else:
            logger.warning("Google OAuth client not configured -- redirect login disabled")
        # Session shared across calls for connection pooling. Google's user-info
        # endpoint never redirects legitimately, so keep the chain short.
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    # ------------------------------------------------------------------
    # Redirect flow
    # ------------------------------------------------------------------

    async def authorize_redirect(self, request: Request, redirect_uri: str):
        """Return the redirect response that sends the browser to Google's consent page."""
        client = self.oauth.create_client("google")
        return await client.authorize_redirect(request, redirect_uri, access_type="offline", prompt="select_account")

    async def exchange_code(self, request: Request) -> str:
        """Exchange the authorization code on the callback request for an access token.

        Raises:
            IdentityProviderError: If the exchange fails or returns no access token.
        """
        client = self.oauth.create_client("google")
        try:
            token = await client.authorize_access_token(request)
        except OAuthError as exc:
            logger.warning("Google code exchange failed: %s", exc.error)
            raise IdentityProviderError("Authorization code exchange failed") from exc
        access_token = token.get("access_token") if token else None
        if not access_token:
            raise IdentityProviderError("Google token response has no access token")
        return access_token

    # ------------------------------------------------------------------
    # User-info
    # ------------------------------------------------------------------

    def fetch_claims(self, access_token: str) -> IdentityClaims:
        """Call Google user-info with access_token and return the normalized claims.

        Raises:
            IdentityProviderError: Transport failure, non-2xx response, a body
                that is not a JSON object, or a response without "sub".
        """
        try:
            resp = self._session.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=_USERINFO_TIMEOUT,
            )
        except requests.RequestException as exc:
            logger.warning("Google user-info request failed: %s", type(exc).__name__)
            raise IdentityProviderError("Could not reach Google user-info endpoint") from exc

        if not resp.ok:
            logger.warning("Google user-info returned HTTP %d", resp.status_code)
            raise IdentityProviderError("Failed to verify Google token")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise IdentityProviderError("Google user-info response is not JSON") from exc
        if not isinstance(payload, dict):
            raise IdentityProviderError("Google user-info response is not an object")
        return IdentityClaims.from_userinfo(payload)
