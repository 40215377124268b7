"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Access tokens are accepted only from the Authorization: Bearer header. The
refresh secret travels in an httpOnly cookie, but that cookie is never
accepted as proof of identity -- it can only be exchanged at /auth/refresh.

try_get_current_account() is the soft variant (returns None on failure).
get_current_account() wraps it and raises HTTP 401 if unauthenticated.
require_self() additionally checks that the path's account_id is the caller.

Layer rule: auth/dependencies.py may import from fastapi (for
Depends/HTTPException/Request) because this module is part of the FastAPI
dependency injection system. It does not import from api/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import TokenVerificationFailure
from auth.models import AccountView
from auth.service import AuthService

logger = logging.getLogger("authwarden.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_account(request: Request) -> AccountView | None:
    """Resolve the Bearer token to an active account, or None.

    Never raises for a bad token -- callers that need a hard 401 should use
    get_current_account(). Storage failures still propagate.
    """
    token = _bearer_token(request)
    if token is None:
        return None
    service: AuthService = request.app.state.auth_service
    try:
        return service.authenticate(token)
    except TokenVerificationFailure as exc:
        logger.debug("Rejected bearer token: %s", exc.detail or exc.message)
        return None


def get_current_account(request: Request) -> AccountView:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: AccountView = Depends(get_current_account)): ...
    """
    account = try_get_current_account(request)
    if account is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


def require_self(account_id: str, request: Request) -> AccountView:
    """Require that the authenticated caller is the account named in the path.

    Raises HTTP 401 if unauthenticated, HTTP 403 if acting on another account.
    """
    account = get_current_account(request)
    if account.id != account_id:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "You can only act on your own account."},
        )
    return account
