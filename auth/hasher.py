"""
auth/hasher.py -- One-way hashing for passwords and refresh-token secrets.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). Every call draws a
       fresh salt, so hashing the same password twice yields two different
       strings that both verify. The cost factor makes brute-force expensive,
       which is what low-entropy secrets need.

  Bounded executor: bcrypt is CPU-bound and deliberately slow. All hash and
       verify calls are submitted to a ThreadPoolExecutor with a fixed number
       of workers. The calling request thread waits for the result, but at
       most `max_workers` bcrypt computations run at once however many
       requests are in flight. bcrypt releases the GIL while it works.

  Refresh secrets: random UUID4 strings (122 bits of entropy). They are
       stored as HMAC-SHA256(SECRET_KEY, secret). The digest is deterministic,
       so the store can find a token with an indexed equality lookup, and a
       copy of the database cannot be replayed: the raw secret is never
       persisted and the digest cannot be recomputed without SECRET_KEY.
       bcrypt's slowness buys nothing for a 122-bit random value.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor

import bcrypt

from auth.errors import HashingFailure

logger = logging.getLogger("authwarden.auth.hasher")

# bcrypt only accepts 72 bytes of input; current releases raise ValueError past that.
MAX_SECRET_BYTES = 72


class CredentialHasher:
    """Salted password hashing plus keyed digests for refresh-token secrets.

    Usage:
        hasher = CredentialHasher(digest_key=settings.secret_key)
        stored = hasher.hash("Alice123!")
        hasher.verify("Alice123!", stored)   # True
        hasher.close()
    """

    def __init__(self, digest_key: str, rounds: int = 12, max_workers: int = 4) -> None:
        if not digest_key:
            raise ValueError("digest_key must not be empty")
        self._digest_key = digest_key.encode("utf-8")
        self._rounds = rounds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bcrypt")

    # ------------------------------------------------------------------
    # Salted hashing (bcrypt)
    # ------------------------------------------------------------------

    def hash(self, secret: str) -> str:
        """Return a bcrypt hash of `secret` with a freshly generated salt.

        Raises HashingFailure for secrets longer than MAX_SECRET_BYTES once
        UTF-8 encoded. Password policy (auth/service.py) rejects those first.
        """
        if len(secret.encode("utf-8")) > MAX_SECRET_BYTES:
            raise HashingFailure(f"Secret exceeds bcrypt's {MAX_SECRET_BYTES}-byte limit.")
        future = self._executor.submit(self._hash_sync, secret)
        try:
            return future.result()
        except (TypeError, ValueError) as exc:
            raise HashingFailure(detail=str(exc)) from exc

    def verify(self, secret: str, hashed: str) -> bool:
        """Return True if `secret` matches `hashed`, False on any mismatch.

        A wrong password (including one that differs only in case) is a
        plain False. HashingFailure is raised only when `hashed` is not a
        well-formed bcrypt hash, because that indicates corrupt storage
        rather than a bad credential.
        """
        if len(secret.encode("utf-8")) > MAX_SECRET_BYTES:
            # Nothing this long can have been hashed by hash().
            return False
        future = self._executor.submit(self._verify_sync, secret, hashed)
        try:
            return future.result()
        except (TypeError, ValueError) as exc:
            logger.error("Stored hash rejected by bcrypt: %s", exc)
            raise HashingFailure("Stored credential hash is malformed.", detail=str(exc)) from exc

    def _hash_sync(self, secret: str) -> str:
        return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    @staticmethod
    def _verify_sync(secret: str, hashed: str) -> bool:
        return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))

    # ------------------------------------------------------------------
    # Refresh-token secrets
    # ------------------------------------------------------------------

    @staticmethod
    def generate_refresh_secret() -> str:
        """Return a new opaque refresh secret for the client to keep."""
        return str(uuid.uuid4())

    def digest_token(self, secret: str) -> str:
        """Return HMAC-SHA256(SECRET_KEY, secret) as a 64-char hex string."""
        return hmac.new(self._digest_key, secret.encode("utf-8"), hashlib.sha256).hexdigest()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
