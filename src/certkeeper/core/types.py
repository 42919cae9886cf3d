"""Enumerated types for the CertKeeper domain.

All enums inherit from ``StrEnum`` so their ``.value`` is a plain
string that psycopg serialises as TEXT and JSON round-trips naturally.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------


class CertificateStatus(StrEnum):
    VALID = "VALID"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


# ---------------------------------------------------------------------------
# Folder
# ---------------------------------------------------------------------------


class FolderType(StrEnum):
    SYSTEM = "system"
    CUSTOM = "custom"


class FolderAction(StrEnum):
    """Short folder actions accepted by the access policy."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class Permission(StrEnum):
    CERTIFICATES_READ = "certificates:read"
    CERTIFICATES_WRITE = "certificates:write"
    CERTIFICATES_DELETE = "certificates:delete"
    CERTIFICATES_RENEW = "certificates:renew"
    FOLDERS_READ = "folders:read"
    FOLDERS_WRITE = "folders:write"
    FOLDERS_DELETE = "folders:delete"
    SYSTEM_SETTINGS = "system:settings"
    NOTIFICATIONS_MANAGE = "notifications:manage"
    NOTIFICATIONS_VIEW = "notifications:view"
