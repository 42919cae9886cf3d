"""Structured security event logger.

Emits standardized security events for SIEM integration.
All events are logged to the ``certkeeper.security`` logger with
a consistent ``event_id`` field for filtering and alerting.

Sensitive material (PEM bodies, passwords, tokens) is automatically
redacted via :func:`~certkeeper.logging.sanitize.sanitize_for_logs`
before emission.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from certkeeper.logging.sanitize import sanitize_for_logs

if TYPE_CHECKING:
    from uuid import UUID

security_log = logging.getLogger("certkeeper.security")


def _emit(
    event_id: str,
    message: str,
    *args: Any,  # noqa: ANN401
    user_id: UUID | None = None,
    severity: str = "INFO",
    **extra: Any,  # noqa: ANN401
) -> None:
    """Emit a structured security event.

    All *extra* keyword arguments are sanitized to redact
    cryptographic material before logging.
    """
    sanitized_extra = sanitize_for_logs(extra)
    data: dict[str, object] = {
        "event_id": event_id,
        "severity": severity,
    }
    if user_id is not None:
        data["actor_id"] = str(user_id)
    data.update(sanitized_extra)
    level = getattr(logging, severity.upper(), logging.INFO)
    security_log.log(level, message, *args, extra=data)


# ── Certificates ──────────────────────────────────────────────────────


def certificate_uploaded(
    user_id: UUID,
    certificate_id: UUID,
    common_name: str,
    folder_id: str | None,
) -> None:
    """Log a successful certificate upload."""
    _emit(
        "certkeeper.security.certificate_uploaded",
        "Certificate uploaded: id=%s, cn=%s, folder=%s",
        certificate_id,
        common_name,
        folder_id,
        user_id=user_id,
        certificate_id=str(certificate_id),
        folder_id=folder_id,
    )


def certificate_rejected(
    user_id: UUID | None,
    filename: str | None,
    reason: str,
    detail: str,
) -> None:
    """Log an upload the parser refused."""
    _emit(
        "certkeeper.security.certificate_rejected",
        "Certificate upload rejected: file=%s, reason=%s",
        filename,
        reason,
        user_id=user_id,
        filename=filename,
        reason=reason,
        detail=detail,
        severity="WARNING",
    )


def certificate_renewed(
    user_id: UUID,
    certificate_id: UUID,
    renewal_count: int,
) -> None:
    """Log replacement of a certificate's validity window."""
    _emit(
        "certkeeper.security.certificate_renewed",
        "Certificate renewed: id=%s, renewal=%d",
        certificate_id,
        renewal_count,
        user_id=user_id,
        certificate_id=str(certificate_id),
    )


def certificate_moved(
    user_id: UUID,
    certificate_id: UUID,
    old_folder_id: str | None,
    new_folder_id: str | None,
) -> None:
    """Log reassignment of a certificate to another folder."""
    _emit(
        "certkeeper.security.certificate_moved",
        "Certificate moved: id=%s, %s -> %s",
        certificate_id,
        old_folder_id,
        new_folder_id,
        user_id=user_id,
        certificate_id=str(certificate_id),
    )


def certificate_deleted(user_id: UUID, certificate_id: UUID, common_name: str) -> None:
    """Log deletion of a certificate."""
    _emit(
        "certkeeper.security.certificate_deleted",
        "Certificate deleted: id=%s, cn=%s",
        certificate_id,
        common_name,
        user_id=user_id,
        certificate_id=str(certificate_id),
        severity="WARNING",
    )


def certificate_downloaded(user_id: UUID, certificate_id: UUID) -> None:
    """Log download of a certificate."""
    _emit(
        "certkeeper.security.certificate_downloaded",
        "Certificate downloaded: id=%s",
        certificate_id,
        user_id=user_id,
        certificate_id=str(certificate_id),
    )


# ── Folders ───────────────────────────────────────────────────────────


def folder_created(user_id: UUID, folder_id: str, parent_id: str | None) -> None:
    """Log creation of a custom folder."""
    _emit(
        "certkeeper.security.folder_created",
        "Folder created: id=%s, parent=%s",
        folder_id,
        parent_id,
        user_id=user_id,
        folder_id=folder_id,
    )


def folder_moved(
    user_id: UUID,
    folder_id: str,
    old_parent_id: str | None,
    new_parent_id: str | None,
) -> None:
    """Log re-parenting of a folder."""
    _emit(
        "certkeeper.security.folder_moved",
        "Folder moved: id=%s, %s -> %s",
        folder_id,
        old_parent_id,
        new_parent_id,
        user_id=user_id,
        folder_id=folder_id,
    )


def folder_deleted(user_id: UUID, folder_id: str, unassigned: int) -> None:
    """Log deletion of a folder and how many certificates it released."""
    _emit(
        "certkeeper.security.folder_deleted",
        "Folder deleted: id=%s, unassigned_certificates=%d",
        folder_id,
        unassigned,
        user_id=user_id,
        folder_id=folder_id,
        severity="WARNING",
    )


# ── Authentication / authorization ────────────────────────────────────


def access_denied(
    user_id: UUID,
    permission: str,
    *,
    folder_id: str | None = None,
) -> None:
    """Log a request refused by the access policy."""
    _emit(
        "certkeeper.security.access_denied",
        "Access denied: user=%s, permission=%s, folder=%s",
        user_id,
        permission,
        folder_id,
        user_id=user_id,
        permission=permission,
        folder_id=folder_id,
        severity="WARNING",
    )


def login_failed(username: str, ip_address: str) -> None:
    """Log a failed login attempt."""
    _emit(
        "certkeeper.security.login_failed",
        "Login failed: user=%s, ip=%s",
        username,
        ip_address,
        severity="WARNING",
    )


def login_succeeded(username: str, ip_address: str) -> None:
    """Log a successful login."""
    _emit(
        "certkeeper.security.login_succeeded",
        "Login succeeded: user=%s, ip=%s",
        username,
        ip_address,
    )


def login_lockout(key: str) -> None:
    """Log a login lockout event."""
    _emit(
        "certkeeper.security.login_lockout",
        "Login lockout triggered: %s",
        key,
        severity="WARNING",
    )


# ── Users ─────────────────────────────────────────────────────────────


def user_created(actor_id: UUID | None, target_id: UUID, username: str, role: str) -> None:
    """Log creation of a user account."""
    _emit(
        "certkeeper.security.user_created",
        "User created: user=%s, role=%s",
        username,
        role,
        user_id=actor_id,
        target_user_id=str(target_id),
        role=role,
    )


def user_updated(actor_id: UUID, target_id: UUID, changes: dict[str, Any]) -> None:
    """Log a change to a user's role, status or profile."""
    _emit(
        "certkeeper.security.user_updated",
        "User updated: target=%s, fields=%s",
        target_id,
        ",".join(sorted(changes)),
        user_id=actor_id,
        target_user_id=str(target_id),
        changes=changes,
        severity="WARNING" if "role" in changes or "active" in changes else "INFO",
    )


def user_deleted(actor_id: UUID, target_id: UUID, username: str) -> None:
    """Log deletion of a user account."""
    _emit(
        "certkeeper.security.user_deleted",
        "User deleted: user=%s",
        username,
        user_id=actor_id,
        target_user_id=str(target_id),
        severity="WARNING",
    )


def password_changed(actor_id: UUID, target_id: UUID) -> None:
    """Log a password change or administrative reset."""
    _emit(
        "certkeeper.security.password_changed",
        "Password changed: target=%s",
        target_id,
        user_id=actor_id,
        target_user_id=str(target_id),
    )
