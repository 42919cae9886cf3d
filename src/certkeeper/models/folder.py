"""Folder entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from certkeeper.core.types import FolderType

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class AccessControl:
    """Per-folder allow list.  A caller matches on role OR user id."""

    roles: frozenset[str] = field(default_factory=frozenset)
    users: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AccessControl | None:
        if data is None:
            return None
        return cls(
            roles=frozenset(str(r) for r in data.get("roles") or ()),
            users=frozenset(str(u) for u in data.get("users") or ()),
        )

    def to_dict(self) -> dict[str, list[str]]:
        return {"roles": sorted(self.roles), "users": sorted(self.users)}


@dataclass(frozen=True)
class Folder:
    id: str
    name: str
    type: FolderType = FolderType.CUSTOM
    parent_id: str | None = None
    access_control: AccessControl | None = None
    description: str = ""
    created_by: str | None = None
    created_at: datetime = _EPOCH

    @property
    def is_system(self) -> bool:
        return self.type == FolderType.SYSTEM
