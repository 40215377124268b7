"""
api/main.py -- FastAPI application for AuthWarden.

Serve with:    python main.py serve
               uvicorn asgi:app --reload

Starlette wraps each add_middleware() call around the ones before it, so the
last one registered sees the request first:
  log_requests        -- one INFO line per request: method, path, status, latency
  SlowAPIMiddleware   -- per-IP limits declared with @limiter.limit
  CORSMiddleware      -- browser origins allowed to send the refresh cookie
  TrustedHostMiddleware -- Host header allow-list

The engine (store, hasher, issuer, service) is built in the lifespan and
hung off app.state. Route handlers and auth dependencies only ever read it
from there; tests swap the lifespan to point it at an in-memory database.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.errors import AuthError, TooManyAttempts
from auth.hasher import CredentialHasher
from auth.ledger import AttemptLedger
from auth.service import AuthService
from auth.store import SessionStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authwarden.api")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


@dataclass
class Components:
    """Everything the engine needs, built once per process (or per test)."""

    store: SessionStore
    hasher: CredentialHasher
    issuer: TokenIssuer
    service: AuthService

    def close(self) -> None:
        self.hasher.close()
        self.store.close()


def build_components(settings: Settings, store: SessionStore | None = None) -> Components:
    """Construct the store, hasher, issuer and service from Settings.

    Pass `store` to reuse an existing SessionStore (tests do this to point
    the app at an in-memory database).
    """
    store = store or SessionStore(settings.database_url)
    hasher = CredentialHasher(
        digest_key=settings.secret_key,
        rounds=settings.bcrypt_rounds,
        max_workers=settings.hash_workers,
    )
    issuer = TokenIssuer(settings.secret_key, ttl_seconds=settings.access_token_ttl_seconds)
    service = AuthService(
        store,
        hasher,
        issuer,
        ledger=AttemptLedger(store),
        lockout_threshold=settings.lockout_threshold,
        lockout_window_minutes=settings.lockout_window_minutes,
        refresh_ttl_days=settings.refresh_token_ttl_days,
    )
    return Components(store=store, hasher=hasher, issuer=issuer, service=service)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine on startup and release its resources on shutdown."""
    settings = get_settings()
    logger.info("AuthWarden API starting up (database=%s)", settings.masked_database_url())
    components = build_components(settings)
    app.state.settings = settings
    app.state.components = components
    app.state.auth_service = components.service
    logger.info(
        "Auth initialized (access_ttl=%ds refresh_ttl=%dd lockout=%d/%dm)",
        settings.access_token_ttl_seconds,
        settings.refresh_token_ttl_days,
        settings.lockout_threshold,
        settings.lockout_window_minutes,
    )

    yield

    components.close()
    logger.info("AuthWarden API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

_settings = get_settings()

app = FastAPI(
    title="AuthWarden API",
    description="Password authentication with short-lived access tokens and rotating refresh tokens.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware (see module docstring for the effective order)
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,  # the refresh cookie must be sent cross-origin by the frontend
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# slowapi finds the limiter through app.state.
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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error body is {"error": {"code", "message", "detail"}}. The code is
# stable and machine-readable; clients branch on it, never on message text.
# ---------------------------------------------------------------------------

# Responses to these paths carry (or were about to carry) a credential.
_NO_STORE_SUFFIXES = ("/auth/login", "/auth/refresh")


def _error_response(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Translate an engine error using the code and status carried by its class.

    5xx errors are logged with their detail; the client sees only the
    generic message.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.detail or exc.message)
        detail = None
    else:
        detail = exc.detail

    headers: dict[str, str] = {}
    if isinstance(exc, TooManyAttempts):
        service: AuthService = request.app.state.auth_service
        headers["Retry-After"] = str(service.lockout_window_minutes * 60)
    if request.url.path.endswith(_NO_STORE_SUFFIXES):
        headers["Cache-Control"] = "no-store"
    return _error_response(exc.status_code, exc.code, exc.message, detail, headers or None)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Per-IP limit from api.limiter exceeded (distinct from account lockout)."""
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    return _error_response(
        429,
        "rate_limited",
        "Too many requests.",
        str(exc.detail),
        {"Retry-After": "60"},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(422, "validation_error", "Request body or parameters are invalid.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap HTTPException (404 routes, auth dependencies) in the error envelope.

    The auth dependencies pass a {"code", "message"} dict as detail; it is
    used as the error object as-is.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback is logged; the body says nothing about it."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit -- load balancer health checks must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    store: SessionStore = request.app.state.components.store
    db_ok = store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
