"""Bearer tokens, token revocation and login throttling."""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from itsdangerous import (
    BadSignature,
    SignatureExpired,
    URLSafeTimedSerializer,
)

from certkeeper.app.errors import RATE_LIMITED, CertkeeperProblem
from certkeeper.logging import security_events

if TYPE_CHECKING:
    from pypgkit import Database

    from certkeeper.config.settings import LoginThrottleSettings
    from certkeeper.models.user import User

log = logging.getLogger(__name__)

_TOKEN_SALT = "certkeeper.auth"


class TokenBlacklist:
    """Revoked-token store shared across workers.

    Stores revoked token signatures in ``revoked_tokens``.  Without a
    database (tests, ``--validate-only``) an in-process dict is used.
    """

    def __init__(self, db: Database | None = None) -> None:
        self._lock = threading.Lock()
        self._revoked: dict[str, float] = {}
        self._db = db

    def revoke_token(
        self,
        token: str,
        max_age_seconds: int = 3600,
    ) -> None:
        """Revoke a token by storing its signature portion."""
        sig = self._extract_signature(token)
        if self._db is not None:
            expires_at = datetime.now(UTC) + timedelta(seconds=max_age_seconds)
            self._db.execute(
                "INSERT INTO revoked_tokens (token_signature, expires_at) "
                "VALUES (%s, %s) "
                "ON CONFLICT (token_signature) DO NOTHING",
                (sig, expires_at),
            )
            return
        with self._lock:
            self._revoked[sig] = time.monotonic() + max_age_seconds

    def is_revoked(self, token: str) -> bool:
        """Check whether a token has been revoked."""
        sig = self._extract_signature(token)
        if self._db is not None:
            row = self._db.fetch_value(
                "SELECT 1 FROM revoked_tokens "
                "WHERE token_signature = %s AND expires_at > now()",
                (sig,),
            )
            return row is not None
        with self._lock:
            expires = self._revoked.get(sig)
            return expires is not None and expires > time.monotonic()

    def cleanup(self) -> int:
        """Drop expired entries and return how many were removed."""
        if self._db is not None:
            return self._db.execute(
                "DELETE FROM revoked_tokens WHERE expires_at < now()",
            )
        now = time.monotonic()
        with self._lock:
            expired = [sig for sig, exp in self._revoked.items() if exp <= now]
            for sig in expired:
                del self._revoked[sig]
        return len(expired)

    @staticmethod
    def _extract_signature(token: str) -> str:
        """Extract the signature part of an itsdangerous token."""
        # itsdangerous tokens are payload.timestamp.signature
        parts = token.rsplit(".", 1)
        return parts[-1] if len(parts) > 1 else token


class LoginRateLimiter:
    """In-memory throttle for login attempts.

    Tracks failed attempts per key (``ip:username``) and blocks after
    ``max_attempts`` within ``window_seconds``.  The lockout lasts
    ``lockout_seconds``.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        window_seconds: int = 300,
        lockout_seconds: int = 900,
    ) -> None:
        self._max_attempts = max_attempts
        self._window = window_seconds
        self._lockout = lockout_seconds
        self._attempts: dict[str, list[float]] = {}
        self._lockouts: dict[str, float] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: LoginThrottleSettings) -> LoginRateLimiter:
        return cls(
            max_attempts=settings.max_attempts,
            window_seconds=settings.window_seconds,
            lockout_seconds=settings.lockout_seconds,
        )

    def check(self, key: str) -> None:
        """Raise ``CertkeeperProblem`` (429) if the key is locked out."""
        now = time.monotonic()
        with self._lock:
            lockout_until = self._lockouts.get(key, 0)
        if now < lockout_until:
            remaining = int(lockout_until - now) + 1
            raise CertkeeperProblem(
                RATE_LIMITED,
                f"Too many failed login attempts. Try again in {remaining} seconds.",
                status=429,
                headers={"Retry-After": str(remaining)},
            )

    def record_failure(self, key: str) -> None:
        """Record a failed login attempt."""
        now = time.monotonic()
        with self._lock:
            cutoff = now - self._window
            attempts = [t for t in self._attempts.get(key, []) if t > cutoff]
            attempts.append(now)
            self._attempts[key] = attempts
            locked = len(attempts) >= self._max_attempts
            if locked:
                self._lockouts[key] = now + self._lockout
                del self._attempts[key]
        if locked:
            security_events.login_lockout(key)

    def record_success(self, key: str) -> None:
        """Clear attempts on successful login."""
        with self._lock:
            self._attempts.pop(key, None)
            self._lockouts.pop(key, None)


def create_token(user: User, secret: str) -> str:
    """Create a signed bearer token for *user*."""
    serializer = URLSafeTimedSerializer(secret, salt=_TOKEN_SALT)
    return serializer.dumps(
        {
            "user_id": str(user.id),
            "username": user.username,
            "role": user.role,
        },
    )


def decode_token(
    token: str,
    secret: str,
    max_age: int,
) -> dict[str, Any] | None:
    """Decode and validate a bearer token.

    Returns the payload dict or ``None`` if invalid/expired.
    """
    serializer = URLSafeTimedSerializer(secret, salt=_TOKEN_SALT)
    try:
        return serializer.loads(token, max_age=max_age)  # type: ignore[return-value]
    except SignatureExpired:
        log.debug("Rejected expired bearer token")
        return None
    except BadSignature:
        return None
