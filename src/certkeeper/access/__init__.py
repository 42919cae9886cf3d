"""Folder and access-control model.

Public API::

    from certkeeper.access import AccessPolicy, FolderTree

    policy = AccessPolicy(DEFAULT_ROLES, folders)
    policy.has_folder_access(user, "prod-servers", "write")
"""

from certkeeper.access.policy import AccessPolicy
from certkeeper.access.roles import DEFAULT_ROLES, folder_permission
from certkeeper.access.tree import (
    CycleError,
    DuplicateFolder,
    FolderError,
    FolderNotFound,
    FolderTree,
    SystemFolderProtected,
)

__all__ = [
    "DEFAULT_ROLES",
    "AccessPolicy",
    "CycleError",
    "DuplicateFolder",
    "FolderError",
    "FolderNotFound",
    "FolderTree",
    "SystemFolderProtected",
    "folder_permission",
]
