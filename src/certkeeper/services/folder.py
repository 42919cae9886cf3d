"""Folder management service.

Every structural change (create, rename, move, delete) runs inside a
single :class:`UnitOfWork` transaction that first takes a
``SHARE ROW EXCLUSIVE`` lock on ``folders`` and then reads a fresh
snapshot into a :class:`FolderTree`.  The tree validates the change;
only then are rows written.  A process-wide lock additionally
serialises mutations between threads of the same worker.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from psycopg.types.json import Jsonb

from certkeeper.access.tree import (
    DuplicateFolder,
    FolderNotFound,
    FolderTree,
    SystemFolderProtected,
)
from certkeeper.app.errors import BAD_REQUEST, FORBIDDEN, CertkeeperProblem
from certkeeper.core.types import FolderType, Permission
from certkeeper.db.unit_of_work import UnitOfWork
from certkeeper.logging import security_events
from certkeeper.models.folder import AccessControl, Folder

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from pypgkit import Database

    from certkeeper.access.policy import AccessPolicy
    from certkeeper.models.user import User
    from certkeeper.repositories.certificate import CertificateRepository
    from certkeeper.repositories.folder import FolderRepository

log = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

# Distinguishes "leave access control alone" from "clear it".
_UNSET: Any = object()


class FolderService:
    """Create, rename, move and delete folders."""

    def __init__(
        self,
        folder_repo: FolderRepository,
        cert_repo: CertificateRepository,
        policy_loader: Callable[[], AccessPolicy],
        db: Database | None = None,
    ) -> None:
        self._folders = folder_repo
        self._certs = cert_repo
        self._policy = policy_loader
        self._db = db
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_folders(self, user: User) -> list[Folder]:
        """Folders *user* can read, newest first."""
        folders = self._policy().accessible_folders(user)
        return sorted(folders, key=lambda f: f.created_at, reverse=True)

    def get_folder(self, user: User, folder_id: str) -> Folder:
        folder = self._folders.find_by_id(folder_id)
        if folder is None or not self._policy().has_folder_access(
            user, folder_id, Permission.FOLDERS_READ,
        ):
            msg = f"Folder '{folder_id}' not found"
            raise FolderNotFound(msg, folder_id=folder_id)
        return folder

    def folder_lineage(
        self,
        user: User,
        folder_id: str,
    ) -> tuple[list[Folder], list[Folder]]:
        """Breadcrumb path (root first) and subtree of *folder_id*.

        Both lists hold only folders *user* can read.
        """
        readable = {f.id for f in self._policy().accessible_folders(user)}
        tree = FolderTree(self._folders.find_all())
        path = [f for f in tree.path(folder_id) if f.id in readable]
        subtree = [f for f in tree.descendants(folder_id) if f.id in readable]
        return path, subtree

    def certificate_counts(self) -> dict[str, int]:
        return self._certs.counts_by_folder()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_folder(
        self,
        user: User,
        name: str,
        *,
        description: str = "",
        parent_id: str | None = None,
        access_control: AccessControl | None = None,
    ) -> Folder:
        """Create a custom folder, optionally below *parent_id*."""
        name = _validate_name(name)
        description = _validate_description(description)

        policy = self._policy()
        if not policy.has_permission(user, Permission.FOLDERS_WRITE):
            self._deny(user, Permission.FOLDERS_WRITE)
        if parent_id is not None:
            self._require_existing(parent_id)
            if not policy.can_manage_folder(user, parent_id):
                self._deny(user, Permission.FOLDERS_WRITE, folder_id=parent_id)

        folder = Folder(
            id=str(uuid4()),
            name=name,
            type=FolderType.CUSTOM,
            parent_id=parent_id,
            access_control=access_control,
            description=description,
            created_by=str(user.id),
        )

        with self._lock, UnitOfWork(self._db) as uow:
            tree = self._snapshot(uow)
            _check_name_free(tree, name)
            tree.add(folder)
            row = uow.insert("folders", self._folders.to_row(folder))

        created = self._folders.from_row(row)
        log.info("Created folder %s (%s) under %s", created.id, name, parent_id)
        security_events.folder_created(user.id, created.id, parent_id)
        return created

    def update_folder(
        self,
        user: User,
        folder_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        access_control: AccessControl | None = _UNSET,
    ) -> Folder:
        """Change a folder's name, description or access control.

        System folders keep their name.
        """
        self._require_existing(folder_id)
        if not self._policy().can_manage_folder(user, folder_id):
            self._deny(user, Permission.FOLDERS_WRITE, folder_id=folder_id)

        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = _validate_name(name)
        if description is not None:
            changes["description"] = _validate_description(description)
        if access_control is not _UNSET:
            changes["access_control"] = access_control

        with self._lock, UnitOfWork(self._db) as uow:
            tree = self._snapshot(uow)
            current = tree.get(folder_id)
            new_name = changes.get("name", current.name)
            if new_name != current.name:
                if current.is_system:
                    msg = f"System folder '{current.name}' cannot be renamed"
                    raise SystemFolderProtected(msg, folder_id=folder_id)
                _check_name_free(tree, new_name)
            updated = tree.replace(dataclasses.replace(current, **changes))
            acl = updated.access_control
            row = uow.update_where(
                "folders",
                set_values={
                    "name": updated.name,
                    "description": updated.description,
                    "access_control": Jsonb(acl.to_dict()) if acl is not None else None,
                },
                where={"id": folder_id},
            )

        if row is None:
            msg = f"Folder '{folder_id}' not found"
            raise FolderNotFound(msg, folder_id=folder_id)
        return self._folders.from_row(row)

    def move_folder(
        self,
        user: User,
        folder_id: str,
        new_parent_id: str | None,
    ) -> Folder:
        """Re-parent a folder; ``None`` moves it to the root.

        Requires write access on the folder and on the new parent.
        """
        self._require_existing(folder_id)
        policy = self._policy()
        if not policy.can_manage_folder(user, folder_id):
            self._deny(user, Permission.FOLDERS_WRITE, folder_id=folder_id)
        if new_parent_id is not None:
            self._require_existing(new_parent_id)
            if not policy.can_manage_folder(user, new_parent_id):
                self._deny(user, Permission.FOLDERS_WRITE, folder_id=new_parent_id)

        with self._lock, UnitOfWork(self._db) as uow:
            tree = self._snapshot(uow)
            old_parent_id = tree.get(folder_id).parent_id
            tree.move_folder(folder_id, new_parent_id)
            row = uow.update_where(
                "folders",
                set_values={"parent_id": new_parent_id},
                where={"id": folder_id},
            )

        if row is None:
            msg = f"Folder '{folder_id}' not found"
            raise FolderNotFound(msg, folder_id=folder_id)
        security_events.folder_moved(user.id, folder_id, old_parent_id, new_parent_id)
        return self._folders.from_row(row)

    def delete_folder(self, user: User, folder_id: str) -> frozenset[UUID]:
        """Delete a custom folder and unassign its certificates.

        Child folders move up to the deleted folder's parent.  Returns
        the ids of the certificates that were unassigned.
        """
        self._require_existing(folder_id)
        if not self._policy().can_delete_folder(user, folder_id):
            self._deny(user, Permission.FOLDERS_DELETE, folder_id=folder_id)

        with self._lock, UnitOfWork(self._db) as uow:
            tree = self._snapshot(uow)
            parent_id = tree.get(folder_id).parent_id
            cert_rows = uow.fetch_all(
                "SELECT * FROM certificates WHERE folder_id = %s FOR UPDATE",
                (folder_id,),
            )
            certs = [self._certs.from_row(r) for r in cert_rows]
            orphans = tree.delete_folder(folder_id, certs)

            if orphans:
                uow.execute(
                    "UPDATE certificates SET folder_id = NULL, updated_at = now() "
                    "WHERE id = ANY(%s)",
                    (list(orphans),),
                )
            uow.execute(
                "UPDATE folders SET parent_id = %s WHERE parent_id = %s",
                (parent_id, folder_id),
            )
            uow.execute("DELETE FROM folders WHERE id = %s", (folder_id,))

        log.info(
            "Deleted folder %s, unassigned %d certificate(s)",
            folder_id,
            len(orphans),
        )
        security_events.folder_deleted(user.id, folder_id, len(orphans))
        return orphans

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _snapshot(self, uow: UnitOfWork) -> FolderTree:
        uow.lock_table("folders")
        rows = uow.fetch_all("SELECT * FROM folders")
        return FolderTree(self._folders.from_row(r) for r in rows)

    def _require_existing(self, folder_id: str) -> None:
        if self._folders.find_by_id(folder_id) is None:
            msg = f"Folder '{folder_id}' not found"
            raise FolderNotFound(msg, folder_id=folder_id)

    @staticmethod
    def _deny(
        user: User,
        permission: str,
        *,
        folder_id: str | None = None,
    ) -> None:
        security_events.access_denied(user.id, str(permission), folder_id=folder_id)
        raise CertkeeperProblem(FORBIDDEN, "Insufficient permissions", 403)


def _validate_name(name: str) -> str:
    if name is not None and not isinstance(name, str):
        raise CertkeeperProblem(BAD_REQUEST, "Folder name must be a string", 400)
    name = (name or "").strip()
    if not name or len(name) > MAX_NAME_LENGTH:
        raise CertkeeperProblem(
            BAD_REQUEST,
            f"Folder name must be 1-{MAX_NAME_LENGTH} characters",
            400,
        )
    return name


def _validate_description(description: str | None) -> str:
    if description is not None and not isinstance(description, str):
        raise CertkeeperProblem(BAD_REQUEST, "Folder description must be a string", 400)
    description = description or ""
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise CertkeeperProblem(
            BAD_REQUEST,
            f"Folder description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            400,
        )
    return description


def _check_name_free(tree: FolderTree, name: str) -> None:
    for existing in tree:
        if existing.name == name:
            msg = f"Folder with name '{name}' already exists"
            raise DuplicateFolder(msg, folder_id=existing.id)
