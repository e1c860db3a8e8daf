"""Unit tests for auth/oauth.py -- Google identity provider exchange.

No network: the requests session and the authlib client are replaced with
mocks.

Covers:
- fetch_claims() normalizes user-info into IdentityClaims
- Transport errors, non-2xx, non-JSON and subject-less bodies raise IdentityProviderError
- exchange_code() maps authlib OAuthError and empty token responses to IdentityProviderError
- is_configured reflects whether Google client credentials are set
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests
from authlib.integrations.starlette_client import OAuthError

from auth.oauth import GOOGLE_USERINFO_URL, GoogleIdentityProvider, IdentityClaims
from core.config import Settings
from core.errors import IdentityProviderError

SECRET = "oauth-test-secret-0123456789abcdef0123"

CONFIGURED = Settings(
    secret_key=SECRET,
    google_client_id="client-id.apps.googleusercontent.com",
    google_client_secret="client-secret",
)
UNCONFIGURED = Settings(secret_key=SECRET, google_client_id="", google_client_secret="")


def _response(status_code=200, payload=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


def _provider(response=None, error=None):
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return GoogleIdentityProvider(UNCONFIGURED, session=session), session


# ---------------------------------------------------------------------------
# fetch_claims
# ---------------------------------------------------------------------------


class TestFetchClaims:
    def test_claims_from_userinfo(self):
        provider, session = _provider(
            _response(
                payload={
                    "sub": "1134",
                    "email": "dana@example.com",
                    "name": "Dana",
                    "picture": "https://img/d.png",
                    "email_verified": True,
                }
            )
        )
        claims = provider.fetch_claims("ya29.token")
        assert claims == IdentityClaims(sub="1134", email="dana@example.com", name="Dana", picture="https://img/d.png")

    def test_sends_bearer_token_to_userinfo(self):
        provider, session = _provider(_response(payload={"sub": "1134", "email": "dana@example.com"}))
        provider.fetch_claims("ya29.token")
        args, kwargs = session.get.call_args
        assert args[0] == GOOGLE_USERINFO_URL
        assert kwargs["headers"]["Authorization"] == "Bearer ya29.token"
        assert kwargs["timeout"] > 0

    def test_optional_fields_missing(self):
        provider, _ = _provider(_response(payload={"sub": 1134}))
        claims = provider.fetch_claims("ya29.token")
        assert claims.sub == "1134"
        assert claims.email == ""
        assert claims.name is None
        assert claims.picture is None

    @pytest.mark.parametrize("status_code", [400, 401, 403, 500, 503])
    def test_non_2xx(self, status_code):
        provider, _ = _provider(_response(status_code=status_code, payload={"error": "invalid_token"}))
        with pytest.raises(IdentityProviderError):
            provider.fetch_claims("ya29.bad")

    @pytest.mark.parametrize("error", [requests.ConnectionError("down"), requests.Timeout("slow")])
    def test_transport_failure(self, error):
        provider, _ = _provider(error=error)
        with pytest.raises(IdentityProviderError):
            provider.fetch_claims("ya29.token")

    def test_body_not_json(self):
        provider, _ = _provider(_response(json_error=True))
        with pytest.raises(IdentityProviderError):
            provider.fetch_claims("ya29.token")

    def test_body_not_object(self):
        provider, _ = _provider(_response(payload=["sub", "1134"]))
        with pytest.raises(IdentityProviderError):
            provider.fetch_claims("ya29.token")

    @pytest.mark.parametrize("payload", [{}, {"sub": ""}, {"sub": None, "email": "x@example.com"}])
    def test_missing_subject(self, payload):
        provider, _ = _provider(_response(payload=payload))
        with pytest.raises(IdentityProviderError):
            provider.fetch_claims("ya29.token")


# ---------------------------------------------------------------------------
# Redirect flow
# ---------------------------------------------------------------------------


class TestExchangeCode:
    def _with_client(self, client):
        provider = GoogleIdentityProvider(CONFIGURED, session=MagicMock())
        provider.oauth = MagicMock()
        provider.oauth.create_client.return_value = client
        return provider

    def test_returns_access_token(self):
        client = MagicMock()
        client.authorize_access_token = AsyncMock(return_value={"access_token": "ya29.fresh", "token_type": "Bearer"})
        provider = self._with_client(client)
        assert asyncio.run(provider.exchange_code(MagicMock())) == "ya29.fresh"

    def test_oauth_error(self):
        client = MagicMock()
        client.authorize_access_token = AsyncMock(side_effect=OAuthError(error="mismatching_state"))
        provider = self._with_client(client)
        with pytest.raises(IdentityProviderError):
            asyncio.run(provider.exchange_code(MagicMock()))

    @pytest.mark.parametrize("token", [None, {}, {"access_token": ""}])
    def test_no_access_token(self, token):
        client = MagicMock()
        client.authorize_access_token = AsyncMock(return_value=token)
        provider = self._with_client(client)
        with pytest.raises(IdentityProviderError):
            asyncio.run(provider.exchange_code(MagicMock()))


class TestConfiguration:
    def test_configured(self):
        provider = GoogleIdentityProvider(CONFIGURED, session=MagicMock())
        assert provider.is_configured
        assert provider.oauth.create_client("google") is not None

    def test_unconfigured(self):
        provider = GoogleIdentityProvider(UNCONFIGURED, session=MagicMock())
        assert not provider.is_configured
