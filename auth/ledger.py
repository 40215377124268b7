"""
auth/ledger.py -- Login attempt ledger: append-only audit plus throttle signal.

The ledger has two very different failure policies:

  record()                  best-effort. Losing one audit row must never turn
                            a login or registration into an error, so storage
                            failures are logged at WARNING and swallowed. The
                            return value (None) tells the caller it happened.

  count_recent_failures()   authoritative. The lockout decision depends on it,
                            so storage failures propagate to the caller.

There is no unlock event. A lockout ends when the failures age out of the
trailing window.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from auth.errors import StorageFailure

if TYPE_CHECKING:
    from auth.models import LoginAttempt
    from auth.store import SessionStore

logger = logging.getLogger("authwarden.auth.ledger")


class AttemptLedger:
    def __init__(self, store: SessionStore) -> None:
        self._store = store

    def record(
        self,
        account_id: str | None,
        success: bool,
        client_descriptor: str | None = None,
    ) -> LoginAttempt | None:
        """Append one attempt. Returns the stored record, or None if the write failed."""
        try:
            return self._store.record_login_attempt(account_id, success, client_descriptor)
        except StorageFailure as exc:
            logger.warning(
                "Login attempt not recorded (account_id=%s success=%s): %s",
                account_id,
                success,
                exc.code,
            )
            return None

    def count_recent_failures(self, account_id: str, window_minutes: int) -> int:
        """Number of failed attempts for the account in [now - window_minutes, now]."""
        return self._store.count_failed_attempts(account_id, window_minutes)
