"""Built-in roles and permission-string helpers."""

from __future__ import annotations

from types import MappingProxyType

from certkeeper.core.types import FolderAction, Permission
from certkeeper.models.user import Role

ADMIN = "admin"
MANAGER = "manager"
VIEWER = "viewer"

DEFAULT_ROLES: MappingProxyType[str, Role] = MappingProxyType(
    {
        ADMIN: Role(
            id=ADMIN,
            name="Administrator",
            description="Full access to certificates, folders and settings",
            permissions=frozenset(
                {
                    Permission.CERTIFICATES_READ,
                    Permission.CERTIFICATES_WRITE,
                    Permission.CERTIFICATES_DELETE,
                    Permission.CERTIFICATES_RENEW,
                    Permission.FOLDERS_READ,
                    Permission.FOLDERS_WRITE,
                    Permission.FOLDERS_DELETE,
                    Permission.SYSTEM_SETTINGS,
                    Permission.NOTIFICATIONS_MANAGE,
                },
            ),
        ),
        MANAGER: Role(
            id=MANAGER,
            name="Certificate Manager",
            description="Upload, renew and organise certificates",
            permissions=frozenset(
                {
                    Permission.CERTIFICATES_READ,
                    Permission.CERTIFICATES_WRITE,
                    Permission.CERTIFICATES_RENEW,
                    Permission.FOLDERS_READ,
                    Permission.FOLDERS_WRITE,
                    Permission.NOTIFICATIONS_VIEW,
                },
            ),
        ),
        VIEWER: Role(
            id=VIEWER,
            name="Viewer",
            description="Read-only access",
            permissions=frozenset(
                {
                    Permission.CERTIFICATES_READ,
                    Permission.FOLDERS_READ,
                },
            ),
        ),
    },
)

_FOLDER_ACTIONS = frozenset(a.value for a in FolderAction)


def folder_permission(action: str) -> str:
    """Qualify a bare folder action (``read``) as ``folders:read``.

    Already-qualified permission strings are returned unchanged.
    """
    if action in _FOLDER_ACTIONS:
        return f"folders:{action}"
    return str(action)
