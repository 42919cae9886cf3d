"""User and role repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from certkeeper.models.user import Role, User

if TYPE_CHECKING:
    from uuid import UUID


class RoleRepository(BaseRepository[Role]):
    table_name = "roles"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> Role:
        return Role(
            id=row["id"],
            name=row["name"],
            description=row.get("description") or "",
            permissions=frozenset(row.get("permissions") or ()),
        )

    def _entity_to_row(self, entity: Role) -> dict:
        return {
            "id": entity.id,
            "name": entity.name,
            "description": entity.description,
            "permissions": sorted(entity.permissions),
        }


class UserRepository(BaseRepository[User]):
    table_name = "users"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            role=row["role"],
            active=row["active"],
            email=row.get("email") or "",
            display_name=row.get("display_name") or "",
            password_hash=row["password_hash"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            last_login_at=row.get("last_login_at"),
        )

    def _entity_to_row(self, entity: User) -> dict:
        return {
            "id": entity.id,
            "username": entity.username,
            "email": entity.email,
            "display_name": entity.display_name,
            "password_hash": entity.password_hash,
            "role": entity.role,
            "active": entity.active,
        }

    def find_by_username(self, username: str) -> User | None:
        """Find a user by username."""
        return self.find_one_by({"username": username})

    def find_by_email(self, email: str) -> User | None:
        return self.find_one_by({"email": email})

    def find_all_ordered(self) -> list[User]:
        """All users, alphabetically by username."""
        db = Database.get_instance()
        rows = db.fetch_all("SELECT * FROM users ORDER BY username", as_dict=True)
        return [self._row_to_entity(r) for r in rows]

    def update_profile(
        self,
        user_id: UUID,
        *,
        username: str,
        email: str,
        display_name: str,
        role: str,
        active: bool,
    ) -> User | None:
        """Full replacement update of a user's editable attributes."""
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE users "
            "SET username = %s, email = %s, display_name = %s, role = %s, "
            "    active = %s, updated_at = now() "
            "WHERE id = %s RETURNING *",
            (username, email, display_name, role, active, user_id),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None

    def update_password(self, user_id: UUID, password_hash: str) -> User | None:
        """Update a user's password hash."""
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE users SET password_hash = %s, updated_at = now() "
            "WHERE id = %s RETURNING *",
            (password_hash, user_id),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None

    def update_last_login(self, user_id: UUID) -> None:
        """Touch last_login_at timestamp."""
        db = Database.get_instance()
        db.execute(
            "UPDATE users SET last_login_at = now() WHERE id = %s",
            (user_id,),
        )

    def count_all(self) -> int:
        """Return the total number of users."""
        db = Database.get_instance()
        return db.fetch_value("SELECT count(*) FROM users")
