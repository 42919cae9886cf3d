"""Folder repository."""

from __future__ import annotations

from psycopg.types.json import Jsonb
from pypgkit import BaseRepository, Database

from certkeeper.core.types import FolderType
from certkeeper.models.folder import AccessControl, Folder


class FolderRepository(BaseRepository[Folder]):
    table_name = "folders"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> Folder:
        return Folder(
            id=row["id"],
            name=row["name"],
            type=FolderType(row["type"]),
            parent_id=row.get("parent_id"),
            access_control=AccessControl.from_dict(row.get("access_control")),
            description=row.get("description") or "",
            created_by=row.get("created_by"),
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: Folder) -> dict:
        row = {
            "id": entity.id,
            "name": entity.name,
            "type": entity.type.value,
            "parent_id": entity.parent_id,
            "description": entity.description,
            "created_by": entity.created_by,
        }
        if entity.access_control is not None:
            row["access_control"] = Jsonb(entity.access_control.to_dict())
        return row

    def from_row(self, row: dict) -> Folder:
        """Build a :class:`Folder` from a row fetched outside the repository."""
        return self._row_to_entity(row)

    def to_row(self, folder: Folder) -> dict:
        return self._entity_to_row(folder)
