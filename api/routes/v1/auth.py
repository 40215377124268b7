"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create an account (201)
  POST /api/v1/auth/login      -- password login; returns access token, sets refresh cookie
  POST /api/v1/auth/refresh    -- rotate refresh token; returns new access token
  POST /api/v1/auth/logout     -- revoke every refresh token of the caller
  GET  /api/v1/auth/me         -- current account (requires auth)

Security:
  POST /login is rate-limited per client IP (Settings.login_rate_limit) in
  addition to the per-account lockout inside AuthService.
  Cache-Control: no-store on every response that carries a credential.
  The refresh secret is set as an httpOnly, SameSite=strict cookie scoped to
  /api/v1/auth so it is only ever sent to these endpoints.

Route handlers are plain `def`: AuthService blocks on bcrypt and the
database, so FastAPI runs these handlers in its worker thread pool. Engine
errors (auth.errors.AuthError) propagate to the exception handler in
api/main.py, which maps them to status codes by class.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AccountResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RefreshRequest,
    RefreshResponse,
    RegisterRequest,
)
from auth.dependencies import get_current_account
from auth.errors import InvalidRefreshToken
from auth.models import AccountView
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register: public
# - POST /api/v1/auth/login:    public, rate limited
# - POST /api/v1/auth/refresh:  public -- possession of the refresh secret is the credential
# - POST /api/v1/auth/logout:   requires auth (get_current_account)
# - GET  /api/v1/auth/me:       requires auth (get_current_account)
router = APIRouter()

REFRESH_COOKIE = "refresh_token"
_REFRESH_COOKIE_PATH = "/api/v1/auth"


def _set_refresh_cookie(request: Request, response: Response, secret: str) -> None:
    """Write the raw refresh secret as an httpOnly cookie.

    max_age matches the stored token's lifetime so both expire together.
    secure is only set when SECURE_COOKIES=true (HTTPS deployments).
    """
    settings = request.app.state.settings
    response.set_cookie(
        REFRESH_COOKIE,
        value=secret,
        httponly=True,
        samesite="strict",
        secure=settings.secure_cookies,
        max_age=settings.refresh_token_ttl_days * 24 * 3600,
        path=_REFRESH_COOKIE_PATH,
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AccountResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> AccountResponse:
    """Create a new account. The account starts active and unverified."""
    service: AuthService = request.app.state.auth_service
    view = service.register(body.email, body.username, body.password)
    return AccountResponse.from_view(view)


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    The refresh secret is returned in the body (for non-browser clients)
    and as an httpOnly cookie (for browsers). Either may be presented to
    /auth/refresh later.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password, request.headers.get("user-agent"))

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=result.expires_in,
            user=AccountResponse.from_view(result.account),
        ).model_dump(mode="json"),
    )
    _set_refresh_cookie(request, resp, result.refresh_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/refresh", response_model=RefreshResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Exchange a refresh secret for a new access token and a rotated refresh secret.

    The secret is taken from the JSON body if present, otherwise from the
    refresh cookie. The presented secret is consumed either way.
    """
    service: AuthService = request.app.state.auth_service
    secret = (body.refresh_token if body is not None else None) or request.cookies.get(REFRESH_COOKIE)
    if not secret:
        raise InvalidRefreshToken("No refresh token presented.")

    result = service.refresh(secret)
    resp = JSONResponse(
        status_code=200,
        content=RefreshResponse(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            token_type="bearer",  # noqa: S106 # nosec B106
            expires_in=result.expires_in,
        ).model_dump(mode="json"),
    )
    _set_refresh_cookie(request, resp, result.refresh_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, current: AccountView = Depends(get_current_account)) -> JSONResponse:
    """Revoke every refresh token of the caller and clear the refresh cookie.

    The access token in hand stays valid until it expires -- access tokens
    are stateless by design.
    """
    service: AuthService = request.app.state.auth_service
    service.logout(current.id)
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully.").model_dump())
    resp.delete_cookie(REFRESH_COOKIE, path=_REFRESH_COOKIE_PATH)
    return resp


@router.get("/auth/me", response_model=AccountResponse)
def me(current: AccountView = Depends(get_current_account)) -> AccountResponse:
    """Return the currently authenticated account."""
    return AccountResponse.from_view(current)
