"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/v1/auth.py (to apply per-route limits with @limiter.limit()).

A single shared instance keeps one in-memory counter store for the whole app.
This per-IP request limit sits in front of the per-account lockout enforced
by AuthService: the limiter caps raw request volume from one client, the
lockout caps password guesses against one account from any number of clients.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for POST /auth/login, read from Settings at request time."""
    return get_settings().login_rate_limit
