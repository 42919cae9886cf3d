"""Request pipeline decorators for the CertKeeper API.

Provides:
- ``require_auth``: resolves the bearer token to a user on ``g.current_user``
- ``require_permission``: role-level permission gate, applied after
  ``require_auth``

Folder-level checks need the target folder and live in the services.
"""

from __future__ import annotations

import functools
import logging
from typing import TYPE_CHECKING, Any

from flask import g, request

from certkeeper.app.context import get_container
from certkeeper.app.errors import FORBIDDEN, UNAUTHORIZED, CertkeeperProblem
from certkeeper.logging import security_events

if TYPE_CHECKING:
    from collections.abc import Callable

log = logging.getLogger(__name__)


def bearer_token() -> str | None:
    """The bearer token of the current request, if any."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Enforce bearer token auth and store the user on ``g.current_user``."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        token = bearer_token()
        if token is None:
            raise CertkeeperProblem(
                UNAUTHORIZED,
                "Missing or invalid Authorization header",
                401,
                headers={"WWW-Authenticate": "Bearer"},
            )
        g.current_user = get_container().auth_service.resolve_token(token)
        g.bearer_token = token
        return fn(*args, **kwargs)

    return wrapper


def require_permission(
    *permissions: str,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Require every listed permission on the caller's role.

    Must be applied **after** ``@require_auth``.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            user = g.current_user
            policy = get_container().policy()
            for permission in permissions:
                if not policy.has_permission(user, permission):
                    security_events.access_denied(user.id, str(permission))
                    raise CertkeeperProblem(
                        FORBIDDEN,
                        f"Role '{user.role}' lacks permission '{permission}'",
                        403,
                    )
            return fn(*args, **kwargs)

        return wrapper

    return decorator
