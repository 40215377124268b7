"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
service do the work; these classes only own the domain shape.

Timestamps are timezone-aware UTC datetimes everywhere in the domain. The
store is responsible for converting them to and from its column format.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Account:
    """An identity record.

    password_hash is None for accounts created without a local password
    (e.g. provisioned by an operator); such accounts cannot log in.
    """

    id: str
    email: str
    username: str
    created_at: datetime
    updated_at: datetime
    password_hash: str | None = None
    is_active: bool = True
    email_verified: bool = False
    last_login_at: datetime | None = None


@dataclass
class NewAccount:
    """Insert payload for SessionStore.create_account()."""

    email: str
    username: str
    password_hash: str | None = None


@dataclass(frozen=True)
class AccountView:
    """Public projection of an Account. Never carries the password hash."""

    id: str
    email: str
    username: str
    email_verified: bool
    is_active: bool
    created_at: datetime
    last_login_at: datetime | None = None


@dataclass
class RefreshToken:
    """A stored possession credential.

    token_hash is the keyed digest of the random secret handed to the client
    (see CredentialHasher.digest_token). The secret itself is never stored.
    """

    id: str
    account_id: str
    token_hash: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


@dataclass
class NewRefreshToken:
    account_id: str
    token_hash: str
    expires_at: datetime


@dataclass
class LoginAttempt:
    """Append-only audit/throttle record. account_id is None when the email did not resolve."""

    id: str
    success: bool
    attempted_at: datetime
    account_id: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AccessClaims:
    """Verified contents of an access token."""

    subject: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    expires_in: int  # seconds


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login.

    refresh_token is the raw secret. It is returned exactly once; storage
    only holds its digest.
    """

    access_token: str
    refresh_token: str
    account: AccountView
    expires_in: int


@dataclass(frozen=True)
class RefreshResult:
    access_token: str
    refresh_token: str
    expires_in: int
