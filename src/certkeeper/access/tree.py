"""In-memory folder hierarchy with structural invariants.

:class:`FolderTree` owns a snapshot of the folder graph and refuses any
mutation that would introduce a cycle or remove a system folder.  Every
operation validates before it mutates, so a rejected call leaves the
tree untouched.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from certkeeper.models.certificate import Certificate
    from certkeeper.models.folder import Folder


class FolderError(Exception):
    """Base class for rejected folder-structure operations."""

    def __init__(self, detail: str, *, folder_id: str | None = None) -> None:
        self.detail = detail
        self.folder_id = folder_id
        super().__init__(detail)


class FolderNotFound(FolderError):
    pass


class CycleError(FolderError):
    """The requested move would make a folder its own ancestor."""


class SystemFolderProtected(FolderError):
    """System folders cannot be deleted."""


class DuplicateFolder(FolderError):
    pass


class FolderTree:
    """Mutable view over a set of :class:`Folder` entities."""

    def __init__(self, folders: Iterable[Folder] = ()) -> None:
        self._folders: dict[str, Folder] = {}
        for folder in folders:
            self._folders[folder.id] = folder

    def __contains__(self, folder_id: object) -> bool:
        return folder_id in self._folders

    def __iter__(self) -> Iterator[Folder]:
        return iter(list(self._folders.values()))

    def __len__(self) -> int:
        return len(self._folders)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, folder_id: str) -> Folder:
        folder = self._folders.get(folder_id)
        if folder is None:
            msg = f"Folder '{folder_id}' not found"
            raise FolderNotFound(msg, folder_id=folder_id)
        return folder

    def children(self, folder_id: str | None) -> list[Folder]:
        """Direct children of *folder_id*; ``None`` lists the roots."""
        return [f for f in self._folders.values() if f.parent_id == folder_id]

    def ancestors(self, folder_id: str) -> list[Folder]:
        """Parents of *folder_id*, nearest first.

        Dangling parent references end the walk.  A pre-existing cycle
        in the snapshot also ends it rather than looping forever.
        """
        result: list[Folder] = []
        seen = {folder_id}
        parent_id = self.get(folder_id).parent_id
        while parent_id is not None and parent_id not in seen:
            parent = self._folders.get(parent_id)
            if parent is None:
                break
            result.append(parent)
            seen.add(parent_id)
            parent_id = parent.parent_id
        return result

    def descendants(self, folder_id: str) -> list[Folder]:
        """Every folder below *folder_id*, breadth first."""
        self.get(folder_id)
        result: list[Folder] = []
        seen = {folder_id}
        queue = [folder_id]
        while queue:
            current = queue.pop(0)
            for child in self.children(current):
                if child.id in seen:
                    continue
                seen.add(child.id)
                result.append(child)
                queue.append(child.id)
        return result

    def path(self, folder_id: str) -> list[Folder]:
        """Folders from the root down to *folder_id*, inclusive."""
        folder = self.get(folder_id)
        return [*reversed(self.ancestors(folder_id)), folder]

    def is_ancestor(self, candidate_id: str, folder_id: str) -> bool:
        """True if *candidate_id* lies on the parent chain of *folder_id*."""
        return any(f.id == candidate_id for f in self.ancestors(folder_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, folder: Folder) -> Folder:
        if folder.id in self._folders:
            msg = f"Folder '{folder.id}' already exists"
            raise DuplicateFolder(msg, folder_id=folder.id)
        if folder.parent_id is not None:
            self.get(folder.parent_id)
        self._folders[folder.id] = folder
        return folder

    def replace(self, folder: Folder) -> Folder:
        """Swap in an updated folder that keeps its id and parent."""
        current = self.get(folder.id)
        if current.parent_id != folder.parent_id:
            msg = "Use move_folder() to change a folder's parent"
            raise FolderError(msg, folder_id=folder.id)
        self._folders[folder.id] = folder
        return folder

    def move_folder(self, folder_id: str, new_parent_id: str | None) -> Folder:
        """Re-parent *folder_id* under *new_parent_id* (``None`` = root).

        Raises:
            FolderNotFound: Either id is unknown.
            CycleError: *new_parent_id* is the folder itself or one of
                its descendants.
        """
        folder = self.get(folder_id)

        if new_parent_id is not None:
            self.get(new_parent_id)
            if new_parent_id == folder_id:
                msg = f"Folder '{folder_id}' cannot be its own parent"
                raise CycleError(msg, folder_id=folder_id)
            # Walk up from the target: meeting folder_id means the target
            # sits inside the subtree being moved.
            if self.is_ancestor(folder_id, new_parent_id):
                msg = (
                    f"Cannot move folder '{folder_id}' into its own "
                    f"descendant '{new_parent_id}'"
                )
                raise CycleError(msg, folder_id=folder_id)

        moved = dataclasses.replace(folder, parent_id=new_parent_id)
        self._folders[folder_id] = moved
        return moved

    def delete_folder(
        self,
        folder_id: str,
        certificates: Iterable[Certificate] = (),
    ) -> frozenset[UUID]:
        """Remove a custom folder.

        Direct children are re-attached to the removed folder's parent.
        Certificates are never touched; the ids of those filed in the
        folder are returned so the caller can unassign them in the same
        transaction that deletes the folder.

        Raises:
            FolderNotFound: *folder_id* is unknown.
            SystemFolderProtected: The folder is a system folder.
        """
        folder = self.get(folder_id)
        if folder.is_system:
            msg = f"System folder '{folder.name}' cannot be deleted"
            raise SystemFolderProtected(msg, folder_id=folder_id)

        orphans = frozenset(c.id for c in certificates if c.folder_id == folder_id)

        for child in self.children(folder_id):
            self._folders[child.id] = dataclasses.replace(
                child, parent_id=folder.parent_id,
            )
        del self._folders[folder_id]
        return orphans
