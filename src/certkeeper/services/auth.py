"""User authentication: login, bearer tokens, logout."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from certkeeper.app.errors import UNAUTHORIZED, CertkeeperProblem
from certkeeper.auth.password import verify_password
from certkeeper.auth.tokens import create_token, decode_token
from certkeeper.logging import security_events

if TYPE_CHECKING:
    from certkeeper.auth.tokens import LoginRateLimiter, TokenBlacklist
    from certkeeper.config.settings import AuthSettings
    from certkeeper.models.user import User
    from certkeeper.repositories.user import UserRepository

_BEARER_HEADERS = {"WWW-Authenticate": "Bearer"}


class AuthService:
    """Log users in and out and resolve bearer tokens to users."""

    def __init__(
        self,
        user_repo: UserRepository,
        settings: AuthSettings,
        blacklist: TokenBlacklist,
        limiter: LoginRateLimiter,
    ) -> None:
        self._users = user_repo
        self._settings = settings
        self._blacklist = blacklist
        self._limiter = limiter

    def authenticate(
        self,
        username: str,
        password: str,
        ip_address: str | None = None,
    ) -> tuple[User, str]:
        """Verify credentials and return ``(user, token)``.

        Failed attempts count towards the per ``ip:username`` lockout.

        Raises:
            CertkeeperProblem: 401 on bad credentials or a disabled
                account, 429 while locked out.
        """
        rate_key = f"{ip_address}:{username}"
        self._limiter.check(rate_key)

        user = self._users.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            self._limiter.record_failure(rate_key)
            security_events.login_failed(username, ip_address or "")
            raise CertkeeperProblem(
                UNAUTHORIZED,
                "Invalid username or password",
                401,
            )
        if not user.active:
            self._limiter.record_failure(rate_key)
            security_events.login_failed(username, ip_address or "")
            raise CertkeeperProblem(UNAUTHORIZED, "Account is disabled", 401)

        self._limiter.record_success(rate_key)
        self._users.update_last_login(user.id)
        token = create_token(user, self._settings.token_secret)
        security_events.login_succeeded(username, ip_address or "")
        return user, token

    def resolve_token(self, token: str) -> User:
        """Return the active user a bearer token was issued to."""
        if self._blacklist.is_revoked(token):
            raise CertkeeperProblem(
                UNAUTHORIZED,
                "Token has been revoked",
                401,
                headers=_BEARER_HEADERS,
            )
        payload = decode_token(
            token,
            self._settings.token_secret,
            self._settings.token_expiry_seconds,
        )
        if payload is None:
            raise CertkeeperProblem(
                UNAUTHORIZED,
                "Invalid or expired token",
                401,
                headers=_BEARER_HEADERS,
            )

        try:
            user_id = UUID(payload["user_id"])
        except (KeyError, ValueError):
            raise CertkeeperProblem(
                UNAUTHORIZED,
                "Malformed token payload",
                401,
                headers=_BEARER_HEADERS,
            ) from None

        user = self._users.find_by_id(user_id)
        if user is None or not user.active:
            raise CertkeeperProblem(
                UNAUTHORIZED,
                "Account disabled or not found",
                401,
            )
        return user

    def logout(self, token: str) -> None:
        self._blacklist.revoke_token(token, self._settings.token_expiry_seconds)

