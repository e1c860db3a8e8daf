"""
api/routes/v1/auth.py -- Google login, session verification and logout.

Routes:
  GET  /api/v1/auth/google/login      -- redirect the browser to Google consent
  GET  /api/v1/auth/google/callback   -- code exchange; HTML page hands the token to the extension
  POST /api/v1/auth/google            -- direct path: Google access token in, session token out
  GET  /api/v1/auth/verify            -- current user info (requires auth)
  POST /api/v1/auth/logout            -- advisory only (requires auth)

Security:
  Both login paths are rate-limited per client address.
  Cache-Control: no-store on every response that carries a session token.
  The callback page embeds the token through Jinja2's tojson filter, never by
      string concatenation into the script.
  Login failures on the callback render a fixed message per failure type; the
      exception text is logged, never shown.
  Logout changes nothing server-side: credentials are stateless and there is
      no revocation list. The extension deletes its stored token.
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates

from api.limiter import limiter
from api.models import GoogleLoginResponse, GoogleTokenRequest, MessageResponse, UserInfo
from auth.dependencies import get_current_user
from auth.models import User
from auth.oauth import GoogleIdentityProvider
from auth.service import issue_session
from auth.store import UserStore
from core.errors import IdentityProviderError, MissingAssertionError

logger = logging.getLogger("stashit.api.auth")

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parents[2] / "templates"))

# Auth policy:
# - GET  /api/v1/auth/google/login:     public -- starts login
# - GET  /api/v1/auth/google/callback:  public -- finishes login
# - POST /api/v1/auth/google:           public -- login with a Google access token
# - GET  /api/v1/auth/verify:           requires auth (get_current_user)
# - POST /api/v1/auth/logout:           requires auth (get_current_user)
router = APIRouter()


def _provider(request: Request) -> GoogleIdentityProvider:
    return request.app.state.identity_provider


def _login_failed(request: Request, message: str, status_code: int) -> HTMLResponse:
    resp = templates.TemplateResponse(
        request,
        "login_failed.html",
        {"message": message, "retry_url": str(request.url_for("google_login"))},
        status_code=status_code,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Redirect flow
# ---------------------------------------------------------------------------


@router.get("/auth/google/login", name="google_login")
async def google_login(request: Request):
    """Redirect to Google's consent screen. 503 when no Google client is configured."""
    provider = _provider(request)
    if not provider.is_configured:
        raise HTTPException(
            status_code=503,
            detail={"code": "provider_unavailable", "message": "Google sign-in is not configured."},
        )
    redirect_uri = str(request.url_for("google_callback"))
    return await provider.authorize_redirect(request, redirect_uri)


@limiter.limit("20/minute")
@router.get("/auth/google/callback", response_class=HTMLResponse, name="google_callback")
async def google_callback(request: Request) -> HTMLResponse:
    """Finish the redirect flow and hand the session token to the extension.

    Flow:
      1. Require ?code= (Google sends ?error= instead when the user cancels).
      2. Exchange the code for a Google access token (authlib checks state).
      3. Call Google user-info with it.
      4. Find or create the user, sign a 20-day session token.
      5. Render the hand-off page: chrome.runtime.sendMessage to the
         extension, falling back to localStorage and manual copy.
    """
    settings = request.app.state.settings
    user_store: UserStore = request.app.state.user_store
    provider = _provider(request)

    try:
        if not request.query_params.get("code"):
            raise MissingAssertionError("Authorization code missing")
        access_token = await provider.exchange_code(request)
        claims = await run_in_threadpool(provider.fetch_claims, access_token)
    except MissingAssertionError:
        logger.info("Google callback without authorization code (error=%r)", request.query_params.get("error"))
        return _login_failed(request, "Authorization code missing.", 400)
    except IdentityProviderError:
        logger.warning("Google callback rejected", exc_info=True)
        return _login_failed(request, "Google sign-in could not be verified.", 401)

    user, token = await run_in_threadpool(issue_session, user_store, claims, settings.secret_key)
    logger.info("Session issued for user %d via redirect flow", user.id)

    resp = templates.TemplateResponse(
        request,
        "login_success.html",
        {"token": token, "extension_id": settings.extension_id},
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Direct flow
# ---------------------------------------------------------------------------


@limiter.limit("10/minute")
@router.post("/auth/google", response_model=GoogleLoginResponse)
def google_token_login(request: Request, body: GoogleTokenRequest) -> JSONResponse:
    """Exchange a Google access token for a StashIt session token.

    Errors (rendered by the app-level handlers):
      400 missing_assertion      -- no googleToken in the body
      401 authentication_failed  -- Google rejected the token or was unreachable
    """
    settings = request.app.state.settings
    user_store: UserStore = request.app.state.user_store

    if not body.google_token:
        raise MissingAssertionError("Google token is required")
    claims = _provider(request).fetch_claims(body.google_token)
    user, token = issue_session(user_store, claims, settings.secret_key)
    logger.info("Session issued for user %d via token flow", user.id)

    resp = JSONResponse(
        status_code=200,
        content=GoogleLoginResponse(token=token, user=UserInfo.from_user(user)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/verify", response_model=UserInfo)
async def verify(current_user: User = Depends(get_current_user)) -> UserInfo:
    """Return identity information for the holder of the Bearer token."""
    return UserInfo.from_user(current_user)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout(current_user: User = Depends(get_current_user)) -> MessageResponse:
    """Acknowledge logout. The token stays valid until expiry; the client discards it."""
    logger.info("User %d logged out", current_user.id)
    return MessageResponse(message="Logged out successfully")
