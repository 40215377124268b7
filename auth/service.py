"""
auth/service.py -- Authentication orchestrator.

AuthService composes the credential hasher, the token issuer and the attempt
ledger on top of a SessionStore to implement the account lifecycle:

  register         validate, reject duplicates, hash, persist
  login            validate, lockout check, verify, issue access + refresh
  refresh          look up refresh digest, issue access, rotate refresh
  logout           delete every refresh token of the account
  change_password  validate, verify old, persist new hash

The service keeps no per-request state. Everything mutable lives in the store;
the only instance attributes are collaborators and fixed policy numbers, so a
single instance is shared by all request threads.

Security notes:
  Lockout is checked BEFORE the password is compared. Once an account has
  `lockout_threshold` failures inside the window, even the correct password
  is refused until the failures age out -- otherwise an attacker could keep
  guessing and simply notice when the error changes.

  Refresh tokens are single use. Every successful refresh deletes the
  presented token and hands out a new one, so a stolen token can be replayed
  for at most one cycle before the legitimate client notices.

  Changing the password does NOT revoke existing refresh tokens. Call
  logout() as well if that is wanted.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from auth.errors import (
    ConstraintViolation,
    InvalidEmail,
    InvalidPassword,
    InvalidRefreshToken,
    NotFound,
    RefreshTokenExpired,
    StorageFailure,
    TokenVerificationFailure,
    TooManyAttempts,
    UserAlreadyExists,
    WeakPassword,
)
from auth.hasher import MAX_SECRET_BYTES, CredentialHasher
from auth.ledger import AttemptLedger
from auth.models import (
    Account,
    AccountView,
    LoginResult,
    NewAccount,
    NewRefreshToken,
    RefreshResult,
    RefreshToken,
)
from auth.store import SessionStore
from auth.tokens import TokenIssuer

logger = logging.getLogger("authwarden.auth.service")

MIN_PASSWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def is_valid_email(email: str) -> bool:
    """Minimal shape check: contains '@' and '.', longer than 5 characters."""
    return "@" in email and "." in email and len(email) > 5


def is_strong_password(password: str) -> bool:
    """At least 8 characters with an uppercase letter, a lowercase letter and a digit.

    Also caps the UTF-8 length at bcrypt's input limit so a password that
    passes here can always be hashed.
    """
    return (
        len(password) >= MIN_PASSWORD_LENGTH
        and len(password.encode("utf-8")) <= MAX_SECRET_BYTES
        and any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
    )


def account_view(account: Account) -> AccountView:
    return AccountView(
        id=account.id,
        email=account.email,
        username=account.username,
        email_verified=account.email_verified,
        is_active=account.is_active,
        created_at=account.created_at,
        last_login_at=account.last_login_at,
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class AuthService:
    """Stateless coordinator for the authentication protocols.

    Usage:
        service = AuthService(store, hasher, issuer)
        service.register("alice@example.com", "alice", "Alice123!")
        result = service.login("alice@example.com", "Alice123!", "curl/8.0")
        rotated = service.refresh(result.refresh_token)
        service.logout(result.account.id)
    """

    def __init__(
        self,
        store: SessionStore,
        hasher: CredentialHasher,
        issuer: TokenIssuer,
        ledger: AttemptLedger | None = None,
        lockout_threshold: int = 5,
        lockout_window_minutes: int = 15,
        refresh_ttl_days: int = 7,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.issuer = issuer
        self.ledger = ledger or AttemptLedger(store)
        self.lockout_threshold = lockout_threshold
        self.lockout_window_minutes = lockout_window_minutes
        self.refresh_ttl = timedelta(days=refresh_ttl_days)

    # ------------------------------------------------------------------
    # Register
    # ------------------------------------------------------------------

    def register(self, email: str, username: str, password: str) -> AccountView:
        """Create a new, unverified, active account.

        Raises InvalidEmail, WeakPassword or UserAlreadyExists.
        """
        if not is_valid_email(email):
            raise InvalidEmail()
        if not is_strong_password(password):
            raise WeakPassword()
        if self.store.find_account_by_email(email) is not None:
            raise UserAlreadyExists()

        password_hash = self.hasher.hash(password)
        try:
            account = self.store.create_account(
                NewAccount(email=email, username=username, password_hash=password_hash)
            )
        except ConstraintViolation as exc:
            # Concurrent registration with the same email, or a taken username.
            raise UserAlreadyExists("An account with that email or username already exists.") from exc

        logger.info("Account registered (account_id=%s)", account.id)
        return account_view(account)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(self, email: str, password: str, client_descriptor: str | None = None) -> LoginResult:
        """Verify credentials and open a session.

        Raises InvalidEmail, NotFound, TooManyAttempts or InvalidPassword.
        Every rejected attempt against a known account is written to the
        ledger; an unknown email is written with a null account id.
        """
        if not is_valid_email(email):
            raise InvalidEmail()

        account = self.store.find_account_by_email(email)
        if account is None:
            self.ledger.record(None, False, client_descriptor)
            raise NotFound()

        failures = self.ledger.count_recent_failures(account.id, self.lockout_window_minutes)
        if failures >= self.lockout_threshold:
            logger.warning(
                "Login refused, account locked (account_id=%s failures=%d window=%dm)",
                account.id,
                failures,
                self.lockout_window_minutes,
            )
            raise TooManyAttempts()

        if account.password_hash is None or not self.hasher.verify(password, account.password_hash):
            self.ledger.record(account.id, False, client_descriptor)
            raise InvalidPassword()

        if not account.is_active:
            self.ledger.record(account.id, False, client_descriptor)
            raise InvalidPassword("Account is disabled.")

        access = self.issuer.issue(account.id)
        refresh_secret = self._create_refresh_token(account.id)

        # Bookkeeping after the session exists. The tokens are already
        # persisted, so a failure here is logged rather than undoing login.
        self._touch_last_login(account)
        self.ledger.record(account.id, True, client_descriptor)

        logger.info("Login succeeded (account_id=%s)", account.id)
        return LoginResult(
            access_token=access.token,
            refresh_token=refresh_secret,
            account=account_view(account),
            expires_in=access.expires_in,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_secret: str) -> RefreshResult:
        """Exchange a refresh secret for a new access token and a new refresh secret.

        The presented token is consumed: a second call with the same secret
        raises InvalidRefreshToken. Raises RefreshTokenExpired if the stored
        row is past its expiry.
        """
        if not refresh_secret or not refresh_secret.strip():
            raise InvalidRefreshToken()

        stored = self.store.find_refresh_token_by_hash(self.hasher.digest_token(refresh_secret))
        if stored is None:
            raise InvalidRefreshToken()
        if stored.expires_at < datetime.now(timezone.utc):
            raise RefreshTokenExpired()

        if not self._discard_refresh_token(stored):
            # Another request deleted this row between our lookup and delete.
            logger.warning("Refresh token already consumed (account_id=%s)", stored.account_id)
            raise InvalidRefreshToken()

        access = self.issuer.issue(stored.account_id)
        new_secret = self._create_refresh_token(stored.account_id)

        logger.info("Refresh token rotated (account_id=%s)", stored.account_id)
        return RefreshResult(
            access_token=access.token,
            refresh_token=new_secret,
            expires_in=access.expires_in,
        )

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, account_id: str) -> int:
        """Revoke every refresh token of the account. Idempotent; returns the number revoked."""
        revoked = self.store.delete_refresh_tokens_by_account(account_id)
        logger.info("Logout (account_id=%s revoked=%d)", account_id, revoked)
        return revoked

    # ------------------------------------------------------------------
    # Change password
    # ------------------------------------------------------------------

    def change_password(self, account_id: str, old_password: str, new_password: str) -> None:
        """Replace the account's password after verifying the old one.

        Raises WeakPassword, NotFound or InvalidPassword. Existing refresh
        tokens stay valid.
        """
        if not is_strong_password(new_password):
            raise WeakPassword()

        account = self.store.find_account_by_id(account_id)
        if account is None:
            raise NotFound()
        if account.password_hash is None or not self.hasher.verify(old_password, account.password_hash):
            raise InvalidPassword()

        if not self.store.update_password(account_id, self.hasher.hash(new_password)):
            raise NotFound()
        logger.info("Password changed (account_id=%s)", account_id)

    # ------------------------------------------------------------------
    # Account lookup / deletion
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> AccountView:
        account = self.store.find_account_by_id(account_id)
        if account is None:
            raise NotFound()
        return account_view(account)

    def delete_account(self, account_id: str) -> None:
        """Delete the account together with its refresh tokens and attempt history."""
        if not self.store.delete_account(account_id):
            raise NotFound()
        logger.info("Account deleted (account_id=%s)", account_id)

    def authenticate(self, access_token: str) -> AccountView:
        """Resolve a bearer access token to the active account it was issued for.

        Raises TokenVerificationFailure if the token is invalid or expired,
        or if its subject no longer exists or has been disabled.
        """
        claims = self.issuer.verify(access_token)
        account = self.store.find_account_by_id(claims.subject)
        if account is None or not account.is_active:
            raise TokenVerificationFailure("Account no longer active.")
        return account_view(account)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_refresh_token(self, account_id: str) -> str:
        """Persist a new refresh token and return its raw secret."""
        secret = self.hasher.generate_refresh_secret()
        self.store.create_refresh_token(
            NewRefreshToken(
                account_id=account_id,
                token_hash=self.hasher.digest_token(secret),
                expires_at=datetime.now(timezone.utc) + self.refresh_ttl,
            )
        )
        return secret

    def _discard_refresh_token(self, token: RefreshToken) -> bool:
        """Delete a consumed refresh token; False if it was already gone.

        A storage failure is logged and reported as True: the orphan row
        expires on its own and the rotation still goes ahead. Zero rows
        deleted means a concurrent refresh consumed the token first.
        """
        try:
            return self.store.delete_refresh_token(token.id)
        except StorageFailure as exc:
            logger.warning(
                "Consumed refresh token not deleted (token_id=%s account_id=%s): %s",
                token.id,
                token.account_id,
                exc.code,
            )
            return True

    def _touch_last_login(self, account: Account) -> None:
        """Best-effort last_login_at update; refreshes `account` in place on success."""
        try:
            self.store.update_last_login(account.id)
            refreshed = self.store.find_account_by_id(account.id)
        except StorageFailure as exc:
            logger.warning("last_login_at not updated (account_id=%s): %s", account.id, exc.code)
            return
        if refreshed is not None:
            account.last_login_at = refreshed.last_login_at
