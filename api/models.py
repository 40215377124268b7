"""
API request and response models for AuthWarden REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models only enforce transport limits (required fields, maximum
lengths). Email shape and password strength are business rules and are
checked by AuthService so that every client -- HTTP or CLI -- gets the same
InvalidEmail / WeakPassword errors.
"""

from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import AccountView

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

_Email = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    email: _Email
    username: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
    # Not stripped: leading/trailing spaces are part of a password.
    password: str = Field(min_length=1, max_length=255, json_schema_extra={"format": "password"})


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: _Email
    password: str = Field(min_length=1, max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh.

    refresh_token is optional in the body because browsers send it in the
    httpOnly cookie instead. The route falls back to the cookie when absent.
    """

    refresh_token: Optional[str] = Field(default=None, max_length=255)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/users/{id}/change-password."""

    old_password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. The password hash is never part of it."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    username: str
    email_verified: bool
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        """Build an AccountResponse from the service's AccountView."""
        return cls(
            id=view.id,
            email=view.email,
            username=view.username,
            email_verified=view.email_verified,
            is_active=view.is_active,
            created_at=view.created_at,
            last_login_at=view.last_login_at,
        )


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Inner error object. code is stable and machine-readable; message is for humans."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Envelope for every error response: {"error": {...}}."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response body for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
