"""
auth/errors.py -- Error taxonomy for the authentication engine.

Every failure the engine can surface is exactly one class below. Each class
carries a stable machine-readable `code` and the HTTP `status_code` the API
layer should use, so api/main.py maps errors by class without ever parsing
message text.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every engine failure."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class InvalidEmail(AuthError):
    code = "invalid_email"
    status_code = 400
    default_message = "Invalid email format."


class WeakPassword(AuthError):
    code = "weak_password"
    status_code = 400
    default_message = "Password must be at least 8 characters with uppercase, lowercase and numbers."


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


class UserAlreadyExists(AuthError):
    code = "user_exists"
    status_code = 409
    default_message = "An account with that email already exists."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "Account not found."


class InvalidPassword(AuthError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid password."


class InvalidRefreshToken(AuthError):
    code = "invalid_refresh_token"
    status_code = 401
    default_message = "Invalid refresh token."


class RefreshTokenExpired(AuthError):
    code = "refresh_token_expired"
    status_code = 400
    default_message = "Refresh token expired."


class TooManyAttempts(AuthError):
    code = "too_many_attempts"
    status_code = 429
    default_message = "Too many failed login attempts. Try again later."


# ---------------------------------------------------------------------------
# Cryptography
# ---------------------------------------------------------------------------


class HashingFailure(AuthError):
    code = "hashing_failed"
    status_code = 500
    default_message = "Credential hashing failed."


class TokenVerificationFailure(AuthError):
    code = "invalid_token"
    status_code = 401
    default_message = "Access token is invalid or expired."


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageFailure(AuthError):
    code = "storage_error"
    status_code = 500
    default_message = "Storage backend unavailable."


class ConstraintViolation(StorageFailure):
    """Unique-key clash reported by the store. Registration maps it to UserAlreadyExists."""

    code = "constraint_violation"
    status_code = 409
    default_message = "Unique constraint violated."
