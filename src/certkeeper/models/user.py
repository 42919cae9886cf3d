"""Role and user entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class Role:
    id: str
    name: str = ""
    description: str = ""
    permissions: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class User:
    id: UUID
    username: str
    role: str
    active: bool = True
    email: str = ""
    display_name: str = ""
    password_hash: str = ""
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH
    last_login_at: datetime | None = None
