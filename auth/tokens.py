"""
auth/tokens.py -- Signed, time-bound access tokens.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only the subject (account id),
       issued-at and expiry. They are never looked up in storage: validity is
       purely signature + clock. That also means an access token cannot be
       revoked before it expires -- keep the TTL short (default 1 hour) and
       rely on refresh-token deletion for logout.

  Failure surface: verify() raises TokenVerificationFailure for every way a
       token can be bad (tampered signature, garbage input, missing claims,
       expired). Callers never need to distinguish between them.

Layer rule: no imports from api/ or core/. The signing key and TTL are passed
in by whoever constructs the issuer (api/main.py lifespan, tests).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.errors import TokenVerificationFailure
from auth.models import AccessClaims, IssuedToken

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("sub", "iat", "exp")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Issue and verify HS256 access tokens.

    The instance is immutable after construction and safe to share across
    request threads.

    Args:
        secret_key:  Server-held HMAC key (Settings.secret_key).
        ttl_seconds: Lifetime of every issued token.
        clock:       Returns "now" as an aware UTC datetime. Only tests
                     override it, to mint tokens that are already expired.
    """

    def __init__(
        self,
        secret_key: str,
        ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("secret_key must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._secret_key = secret_key
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return int(self._ttl.total_seconds())

    def issue(self, subject_id: str) -> IssuedToken:
        """Return a signed token for `subject_id` expiring ttl_seconds from now."""
        now = self._clock()
        expires_at = now + self._ttl
        payload = {
            "sub": str(subject_id),
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)
        return IssuedToken(token=token, expires_at=expires_at, expires_in=self.ttl_seconds)

    def verify(self, token: str) -> AccessClaims:
        """Check signature and expiry and return the claims.

        Raises TokenVerificationFailure if the token is malformed, signed with
        another key or algorithm, missing a required claim, or expired.
        """
        if not token:
            raise TokenVerificationFailure("Access token is missing.")
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"require_" + claim: True for claim in _REQUIRED_CLAIMS},
            )
        except JWTError as exc:
            raise TokenVerificationFailure(detail=str(exc)) from exc

        subject = payload.get("sub")
        if not subject:
            raise TokenVerificationFailure(detail="empty subject claim")
        return AccessClaims(
            subject=subject,
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
