"""
api/routes/v1/auth.py -- Registration, login and password-reset REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create account; logs the session in
  POST /api/v1/auth/login             -- username or email + password
  POST /api/v1/auth/logout            -- destroy session; clears cookie
  GET  /api/v1/auth/me                -- current user or null
  POST /api/v1/auth/forgot-password   -- mail a reset link; always ok=true
  POST /api/v1/auth/change-password   -- spend a reset token; logs the session in

All routes are public: being anonymous is a normal state, not a 401. Field
errors (bad input, wrong password, expired token) come back with HTTP 200 in
the `errors` list so clients handle every form the same way. Only store
outages surface as HTTP errors (503, see api/main.py).

Security:
  POST /login and POST /forgot-password are rate-limited per IP.
  Cache-Control: no-store on every response that carries a user payload.

Handlers are plain `def`: bcrypt and the stores block, so FastAPI runs them
in its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_auth_service, get_request_context
from api.limiter import limiter
from api.models import (
    AuthResponse,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MeResponse,
    OkResponse,
    RegisterRequest,
    UserResponse,
)
from auth.models import RequestContext
from auth.service import AuthService
from auth.sessions import clear_session_cookie, set_session_cookie
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def finish_session(response: JSONResponse, ctx: RequestContext) -> JSONResponse:
    """Renew the session cookie, or clear it if the session was destroyed.

    Anonymous sessions are never stored, so they get no cookie either.
    """
    if ctx.session is None:
        clear_session_cookie(response)
    elif ctx.session.is_authenticated:
        set_session_cookie(response, ctx.session.session_id)
    response.headers["Cache-Control"] = "no-store"
    return response


def _json(model) -> JSONResponse:
    return JSONResponse(status_code=200, content=model.model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# Account lifecycle
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse)
def register(
    body: RegisterRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account and log the current session in as the new user."""
    result = service.register(ctx, body.username, body.email, body.password)
    return finish_session(_json(AuthResponse.from_result(result)), ctx)


@limiter.limit(_settings.login_rate_limit)  # brute-force mitigation
@router.post("/auth/login", response_model=AuthResponse)
def login(
    request: Request,
    body: LoginRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with a username or an email address (anything containing "@")."""
    result = service.login(ctx, body.username_or_email, body.password)
    return finish_session(_json(AuthResponse.from_result(result)), ctx)


@router.post("/auth/logout", response_model=OkResponse)
def logout(
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Destroy the session. The cookie is cleared whatever the store says.

    ok=false means the server-side session could not be deleted.
    """
    ok = service.logout(ctx)
    resp = _json(OkResponse(ok=ok))
    clear_session_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Return the logged-in user, or {"user": null} for anonymous sessions."""
    user = service.me(ctx)
    payload = MeResponse(user=UserResponse.from_user(user) if user is not None else None)
    return finish_session(_json(payload), ctx)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@limiter.limit(_settings.forgot_password_rate_limit)  # mail-bombing mitigation
@router.post("/auth/forgot-password", response_model=OkResponse)
def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Send a reset link if the address is registered. Always answers ok=true."""
    ok = service.forgot_password(body.email)
    return finish_session(_json(OkResponse(ok=ok)), ctx)


@router.post("/auth/change-password", response_model=AuthResponse)
def change_password(
    body: ChangePasswordRequest,
    ctx: RequestContext = Depends(get_request_context),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Set a new password with a reset token; the session is logged in as that user."""
    result = service.change_password(ctx, body.token, body.new_password)
    return finish_session(_json(AuthResponse.from_result(result)), ctx)
