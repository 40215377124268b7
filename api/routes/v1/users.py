"""
api/routes/v1/users.py -- Account REST endpoints.

Routes:
  GET    /api/v1/users/{account_id}                  -- account view (requires auth)
  DELETE /api/v1/users/{account_id}                  -- delete own account (204)
  POST   /api/v1/users/{account_id}/change-password  -- change own password

Ownership: DELETE and change-password go through require_self(), which
returns 403 when the path id is not the authenticated caller.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import AccountResponse, ChangePasswordRequest, MessageResponse
from auth.dependencies import get_current_account, require_self
from auth.models import AccountView
from auth.service import AuthService

router = APIRouter()


@router.get("/users/{account_id}", response_model=AccountResponse)
def get_account(
    request: Request,
    account_id: str,
    _current: AccountView = Depends(get_current_account),
) -> AccountResponse:
    service: AuthService = request.app.state.auth_service
    return AccountResponse.from_view(service.get_account(account_id))


@router.delete("/users/{account_id}", status_code=204)
def delete_account(
    request: Request,
    account_id: str,
    _current: AccountView = Depends(require_self),
) -> Response:
    """Delete the caller's account along with its sessions and login history."""
    service: AuthService = request.app.state.auth_service
    service.delete_account(account_id)
    return Response(status_code=204)


@router.post("/users/{account_id}/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    account_id: str,
    body: ChangePasswordRequest,
    _current: AccountView = Depends(require_self),
) -> MessageResponse:
    """Change the caller's password. Existing sessions (refresh tokens) stay valid."""
    service: AuthService = request.app.state.auth_service
    service.change_password(account_id, body.old_password, body.new_password)
    return MessageResponse(message="Password changed.")
