"""
tests/conftest.py -- Shared test fixtures for StashIt integration tests.

This module provides:
  - TEST_SETTINGS: fixed secrets so tokens and envelopes are reproducible
  - FakeIdentityProvider: stands in for Google (no network)
  - _make_test_stores(): creates isolated in-memory DBs for users + vault
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a logged-in user's token and id

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any api/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any api/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.responses import RedirectResponse
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.oauth import IdentityClaims
from auth.store import UserStore
from auth.tokens import create_access_token
from core.config import Settings
from core.crypto import CipherEnvelope
from core.errors import IdentityProviderError
from vault.store import VaultStore

TEST_SECRET_KEY = "test-signing-secret-0123456789abcdef0123456789"
TEST_ENCRYPTION_KEY = "test-encryption-secret-fedcba9876543210"
TEST_EXTENSION_ID = "abcdefghijklmnopabcdefghijklmnop"

TEST_SETTINGS = Settings(
    debug=True,
    secret_key=TEST_SECRET_KEY,
    encryption_key=TEST_ENCRYPTION_KEY,
    extension_id=TEST_EXTENSION_ID,
)


class FakeIdentityProvider:
    """In-process replacement for GoogleIdentityProvider.

    Same interface: authorize_redirect(), exchange_code(), fetch_claims().
    Tests register the Google tokens and authorization codes it should accept
    via claims_by_token and token_by_code.
    """

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"

    def __init__(self) -> None:
        self.is_configured = True
        self.claims_by_token: dict[str, IdentityClaims] = {}
        self.token_by_code: dict[str, str] = {}

    async def authorize_redirect(self, request, redirect_uri: str) -> RedirectResponse:
        return RedirectResponse(f"{self.AUTHORIZE_URL}?redirect_uri={redirect_uri}", status_code=302)

    async def exchange_code(self, request) -> str:
        code = request.query_params.get("code")
        if code not in self.token_by_code:
            raise IdentityProviderError("Authorization code exchange failed")
        return self.token_by_code[code]

    def fetch_claims(self, access_token: str) -> IdentityClaims:
        if access_token not in self.claims_by_token:
            raise IdentityProviderError("Failed to verify Google token")
        return self.claims_by_token[access_token]


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[UserStore, VaultStore]:
    """Create isolated named shared-memory SQLite stores for test isolation.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    vault_url = f"sqlite:///file:test_vault_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), VaultStore(db_url=vault_url)


def _patch_lifespan(user_store: UserStore, vault_store: VaultStore, provider: FakeIdentityProvider):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores, TEST_SETTINGS, a cipher built from them,
    and the fake identity provider into app.state.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = TEST_SETTINGS
        app.state.cipher = CipherEnvelope.from_settings(TEST_SETTINGS)
        app.state.user_store = user_store
        app.state.vault_store = vault_store
        app.state.identity_provider = provider
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use isolated in-memory stores. A user is
    created before the client starts and a session token is signed for it.
    Stores and the fake provider are reachable via client.app.state.
    """
    user_store, vault_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])

    uid = user_store.create_user(User(google_id="google-sub-fixture", email="fixture@example.com", name="Fixture"))
    token = create_access_token(uid, TEST_SECRET_KEY)

    app.router.lifespan_context = _patch_lifespan(user_store, vault_store, FakeIdentityProvider())
    # Rate limits are exercised by slowapi's own tests; here they would only
    # make test order matter.
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    limiter.enabled = True
    user_store.close()
    vault_store.close()
