"""Role- and folder-based permission checks.

:class:`AccessPolicy` answers "may this user do X" questions against a
snapshot of roles and folders.  Every predicate returns a boolean; a
denied check never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from certkeeper.access.roles import folder_permission
from certkeeper.core.types import FolderAction, Permission

if TYPE_CHECKING:
    from certkeeper.models.certificate import Certificate
    from certkeeper.models.folder import Folder
    from certkeeper.models.user import Role, User


class AccessPolicy:
    """Permission predicates over a role table and a folder snapshot.

    Parameters
    ----------
    roles:
        Role id to :class:`Role` mapping, or an iterable of roles.
    folders:
        Iterable of :class:`Folder` (a :class:`FolderTree` works too).

    """

    def __init__(
        self,
        roles: Mapping[str, Role] | Iterable[Role],
        folders: Iterable[Folder],
    ) -> None:
        if isinstance(roles, Mapping):
            self._roles = dict(roles)
        else:
            self._roles = {role.id: role for role in roles}
        self._folders = {folder.id: folder for folder in folders}

    # ------------------------------------------------------------------
    # Core predicates
    # ------------------------------------------------------------------

    def has_permission(self, user: User, permission: str) -> bool:
        """True if the user's role grants *permission*.

        Inactive users and users with an unknown role have no
        permissions.
        """
        if not user.active:
            return False
        role = self._roles.get(user.role)
        if role is None:
            return False
        return str(permission) in role.permissions

    def permissions_for(self, user: User) -> frozenset[str]:
        """Everything the user's role grants; empty for inactive users."""
        if not user.active:
            return frozenset()
        role = self._roles.get(user.role)
        return role.permissions if role is not None else frozenset()

    def has_folder_access(
        self,
        user: User,
        folder_id: str,
        permission: str = FolderAction.READ,
    ) -> bool:
        """True if *user* may exercise *permission* on the folder.

        *permission* is either a qualified string (``folders:write``)
        or a bare action (``write``).  A folder with an access-control
        list additionally requires the user's role or id to be listed.
        """
        folder = self._folders.get(folder_id)
        if folder is None:
            return False

        if not self.has_permission(user, folder_permission(permission)):
            return False

        acl = folder.access_control
        if acl is None:
            return True
        return user.role in acl.roles or str(user.id) in acl.users

    def accessible_folders(self, user: User) -> list[Folder]:
        return [
            folder
            for folder in self._folders.values()
            if self.has_folder_access(user, folder.id, FolderAction.READ)
        ]

    # ------------------------------------------------------------------
    # Convenience predicates
    # ------------------------------------------------------------------

    def can_manage_folder(self, user: User, folder_id: str) -> bool:
        return self.has_folder_access(user, folder_id, FolderAction.WRITE)

    def can_delete_folder(self, user: User, folder_id: str) -> bool:
        return self.has_permission(
            user, Permission.FOLDERS_DELETE,
        ) and self.has_folder_access(user, folder_id, FolderAction.DELETE)

    def can_upload_to_folder(self, user: User, folder_id: str) -> bool:
        return self.has_permission(
            user, Permission.CERTIFICATES_WRITE,
        ) and self.has_folder_access(user, folder_id, FolderAction.WRITE)

    def can_view_certificate(self, user: User, certificate: Certificate) -> bool:
        """Unassigned certificates are visible to anyone with ``certificates:read``."""
        if not self.has_permission(user, Permission.CERTIFICATES_READ):
            return False
        if certificate.folder_id is None:
            return True
        return self.has_folder_access(user, certificate.folder_id, FolderAction.READ)

    def can_delete_certificate(self, user: User) -> bool:
        return self.has_permission(user, Permission.CERTIFICATES_DELETE)

    def can_renew_certificate(self, user: User) -> bool:
        return self.has_permission(user, Permission.CERTIFICATES_RENEW)
