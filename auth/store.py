"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. SessionStore is the repository;
_row_to_account / _row_to_refresh_token / _row_to_attempt are the mappers.
The service layer never touches SQL directly.

SessionStore is the only capability the engine needs from storage:
accounts, refresh tokens, and login attempts, each with atomic
create/find/delete/count operations. Swapping SQLite for PostgreSQL is a
connection string change.

Error mapping:
  IntegrityError (unique email/username clash) -> ConstraintViolation
  any other SQLAlchemyError (connectivity, pool exhaustion, ...) -> StorageFailure
  Missing rows are not errors: finders return None, deleters return False/0.

Timestamps:
  Stored as fixed-width ISO 8601 strings in UTC with microsecond precision
  ("2026-01-01T00:00:00.000000+00:00"). Fixed width makes lexicographic
  comparison identical to chronological comparison, which the expiry filter
  and the attempt window rely on, on every backend.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Index,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import ConstraintViolation, StorageFailure
from auth.models import Account, LoginAttempt, NewAccount, NewRefreshToken, RefreshToken

logger = logging.getLogger("authwarden.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_accounts = Table(
    "accounts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("password_hash", String(255)),  # NULL = no local password
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
)

_refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_refresh_tokens_account_id", "account_id"),
)

_login_attempts = Table(
    "login_attempts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("account_id", String(36), ForeignKey("accounts.id", ondelete="CASCADE")),  # NULL = unknown email
    Column("success", Boolean, nullable=False),
    Column("attempted_at", String(32), nullable=False),
    Column("user_agent", Text),
    Index("ix_login_attempts_account_time", "account_id", "attempted_at"),
)


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------


def _to_db(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for Account, RefreshToken and LoginAttempt records.

    Usage:
        store = SessionStore("sqlite:///authwarden.db")
        account = store.create_account(NewAccount(email="a@example.com", username="a", password_hash=h))
        store.find_account_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        try:
            metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StorageFailure("Could not initialise the session store schema.", detail=str(exc)) from exc

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction and translate driver errors.

        Commits on normal exit, rolls back on any exception. Only SQLAlchemy
        errors are translated; anything else propagates unchanged.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            raise ConstraintViolation(detail=str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.error("Session store operation failed: %s", exc.__class__.__name__)
            raise StorageFailure(detail=str(exc)) from exc

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def find_account_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email (case-sensitive). Returns None if not found."""
        with self._transaction() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_account_by_id(self, account_id: str) -> Account | None:
        with self._transaction() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def create_account(self, new_account: NewAccount) -> Account:
        """Insert a new account and return it.

        Raises ConstraintViolation if the email or username is already taken.
        The unique indexes are the final arbiter when two registrations race
        past the service's existence check.
        """
        now = _now()
        account = Account(
            id=_new_id(),
            email=new_account.email,
            username=new_account.username,
            password_hash=new_account.password_hash,
            is_active=True,
            email_verified=False,
            created_at=now,
            updated_at=now,
        )
        with self._transaction() as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account.id,
                    email=account.email,
                    username=account.username,
                    password_hash=account.password_hash,
                    email_verified=account.email_verified,
                    is_active=account.is_active,
                    created_at=_to_db(now),
                    updated_at=_to_db(now),
                )
            )
        return account

    def update_password(self, account_id: str, password_hash: str) -> bool:
        """Replace the stored password hash. Returns False if the account does not exist."""
        with self._transaction() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(password_hash=password_hash, updated_at=_to_db(_now()))
            )
        return result.rowcount > 0

    def update_last_login(self, account_id: str) -> bool:
        """Stamp the current UTC time as last_login_at."""
        now = _to_db(_now())
        with self._transaction() as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(last_login_at=now, updated_at=now)
            )
        return result.rowcount > 0

    def delete_account(self, account_id: str) -> bool:
        """Permanently delete an account with its refresh tokens and login attempts.

        Dependent rows are removed explicitly in the same transaction rather
        than relying on ON DELETE CASCADE, which SQLite only honours when the
        foreign_keys PRAGMA is on for that connection.
        """
        with self._transaction() as conn:
            conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.account_id == account_id))
            conn.execute(_login_attempts.delete().where(_login_attempts.c.account_id == account_id))
            result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Refresh tokens
    # ------------------------------------------------------------------

    def create_refresh_token(self, new_token: NewRefreshToken) -> RefreshToken:
        now = _now()
        token = RefreshToken(
            id=_new_id(),
            account_id=new_token.account_id,
            token_hash=new_token.token_hash,
            expires_at=new_token.expires_at,
            created_at=now,
            updated_at=now,
        )
        with self._transaction() as conn:
            conn.execute(
                _refresh_tokens.insert().values(
                    id=token.id,
                    account_id=token.account_id,
                    token_hash=token.token_hash,
                    expires_at=_to_db(token.expires_at),
                    created_at=_to_db(now),
                    updated_at=_to_db(now),
                )
            )
        return token

    def find_refresh_token_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Return the non-expired token with this digest, or None.

        Expired rows are filtered in SQL: a token past its expires_at is
        never returned even if it is still physically present.
        """
        with self._transaction() as conn:
            row = conn.execute(
                _refresh_tokens.select().where(
                    (_refresh_tokens.c.token_hash == token_hash) & (_refresh_tokens.c.expires_at > _to_db(_now()))
                )
            ).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def delete_refresh_token(self, token_id: str) -> bool:
        with self._transaction() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.id == token_id))
        return result.rowcount > 0

    def delete_refresh_tokens_by_account(self, account_id: str) -> int:
        """Delete every refresh token owned by the account. Returns the number deleted (may be 0)."""
        with self._transaction() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.account_id == account_id))
        return result.rowcount

    # ------------------------------------------------------------------
    # Login attempts
    # ------------------------------------------------------------------

    def record_login_attempt(
        self,
        account_id: str | None,
        success: bool,
        user_agent: str | None = None,
    ) -> LoginAttempt:
        attempt = LoginAttempt(
            id=_new_id(),
            account_id=account_id,
            success=success,
            attempted_at=_now(),
            user_agent=user_agent,
        )
        with self._transaction() as conn:
            conn.execute(
                _login_attempts.insert().values(
                    id=attempt.id,
                    account_id=attempt.account_id,
                    success=attempt.success,
                    attempted_at=_to_db(attempt.attempted_at),
                    user_agent=attempt.user_agent,
                )
            )
        return attempt

    def count_failed_attempts(self, account_id: str, window_minutes: int) -> int:
        """Count failed attempts for the account within the last `window_minutes`."""
        cutoff = _to_db(_now() - timedelta(minutes=window_minutes))
        with self._transaction() as conn:
            result = conn.execute(
                select(func.count())
                .select_from(_login_attempts)
                .where(
                    (_login_attempts.c.account_id == account_id)
                    & (_login_attempts.c.success.is_(False))
                    & (_login_attempts.c.attempted_at >= cutoff)
                )
            ).scalar()
        return result or 0

    def list_login_attempts(self, account_id: str, limit: int = 20) -> list[LoginAttempt]:
        """Return the most recent attempts for an account, newest first."""
        with self._transaction() as conn:
            rows = conn.execute(
                _login_attempts.select()
                .where(_login_attempts.c.account_id == account_id)
                .order_by(_login_attempts.c.attempted_at.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_attempt(r) for r in rows]

    # ------------------------------------------------------------------
    # Health / lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Session store ping failed: %s", exc.__class__.__name__)
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        username=row.username,
        password_hash=row.password_hash,
        email_verified=bool(row.email_verified),
        is_active=bool(row.is_active),
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
        last_login_at=_from_db(row.last_login_at),
    )


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        account_id=row.account_id,
        token_hash=row.token_hash,
        expires_at=_from_db(row.expires_at),
        created_at=_from_db(row.created_at),
        updated_at=_from_db(row.updated_at),
    )


def _row_to_attempt(row) -> LoginAttempt:
    return LoginAttempt(
        id=row.id,
        account_id=row.account_id,
        success=bool(row.success),
        attempted_at=_from_db(row.attempted_at),
        user_agent=row.user_agent,
    )
