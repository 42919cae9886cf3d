"""User account management: creation, profile changes, passwords."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from certkeeper.access.roles import ADMIN, VIEWER
from certkeeper.app.errors import BAD_REQUEST, CONFLICT, NOT_FOUND, CertkeeperProblem
from certkeeper.auth.password import generate_password, hash_password, verify_password
from certkeeper.logging import security_events
from certkeeper.models.user import User

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

    from certkeeper.config.settings import AuthSettings
    from certkeeper.models.user import Role
    from certkeeper.repositories.certificate import CertificateRepository
    from certkeeper.repositories.user import UserRepository

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserService:
    """Manage user accounts.

    Valid roles are read through *role_loader* on every call, so roles
    added to the ``roles`` table are usable without a restart.
    """

    def __init__(
        self,
        user_repo: UserRepository,
        cert_repo: CertificateRepository,
        settings: AuthSettings,
        role_loader: Callable[[], Iterable[Role]],
    ) -> None:
        self._users = user_repo
        self._certs = cert_repo
        self._settings = settings
        self._roles = role_loader

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self._users.find_all_ordered()

    def get_user(self, user_id: UUID) -> User:
        user = self._users.find_by_id(user_id)
        if user is None:
            raise CertkeeperProblem(NOT_FOUND, "User not found", 404)
        return user

    def list_roles(self) -> list[Role]:
        return sorted(self._roles(), key=lambda r: r.id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        *,
        email: str = "",
        role: str = VIEWER,
        display_name: str = "",
        password: str | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[User, str | None]:
        """Create an active user.

        Without *password* one is generated.  Returns ``(user,
        generated_password)``; the second item is None when the caller
        supplied the password.

        Raises:
            CertkeeperProblem: 400 for a bad username, password or
                unknown role, 409 if the username or email is taken.
        """
        username = _validate_username(username)
        self._check_role(role)
        self._check_unique(username, email)

        generated = None
        if password is None:
            generated = generate_password(self._settings.password_length)
            password = generated
        else:
            _validate_password(password)

        user = User(
            id=uuid4(),
            username=username,
            role=role,
            active=True,
            email=email,
            display_name=display_name,
            password_hash=hash_password(password),
        )
        created = self._users.create(user)
        log.info("Created user %s with role %s", username, role)
        security_events.user_created(actor_id, created.id, username, role)
        return created, generated

    def update_user(
        self,
        actor: User,
        user_id: UUID,
        *,
        username: str | None = None,
        email: str | None = None,
        display_name: str | None = None,
        role: str | None = None,
        active: bool | None = None,
    ) -> User:
        """Change a user's profile, role or active flag.

        Only the attributes that are passed and differ from the stored
        values are written.
        """
        user = self.get_user(user_id)
        changes: dict[str, Any] = {}
        if username is not None and username != user.username:
            changes["username"] = _validate_username(username)
        if email is not None and email != user.email:
            changes["email"] = email
        if display_name is not None and display_name != user.display_name:
            changes["display_name"] = display_name
        if role is not None and role != user.role:
            self._check_role(role)
            changes["role"] = role
        if active is not None and active != user.active:
            changes["active"] = active
        if not changes:
            return user

        if actor.id == user.id and (changes.get("active") is False or "role" in changes):
            raise CertkeeperProblem(
                BAD_REQUEST,
                "You cannot change your own role or disable your own account",
                400,
            )
        self._check_unique(
            changes.get("username"),
            changes.get("email"),
            exclude=user.id,
        )

        updated = self._users.update_profile(
            user.id,
            username=changes.get("username", user.username),
            email=changes.get("email", user.email),
            display_name=changes.get("display_name", user.display_name),
            role=changes.get("role", user.role),
            active=changes.get("active", user.active),
        )
        if updated is None:
            raise CertkeeperProblem(NOT_FOUND, "User not found", 404)
        log.info("Updated user %s: %s", updated.username, ", ".join(sorted(changes)))
        security_events.user_updated(actor.id, user.id, changes)
        return updated

    def delete_user(self, actor: User, user_id: UUID) -> None:
        """Delete a user.

        Administrators and users who uploaded certificates are kept.
        """
        user = self.get_user(user_id)
        if user.id == actor.id:
            raise CertkeeperProblem(BAD_REQUEST, "You cannot delete your own account", 400)
        if user.role == ADMIN:
            raise CertkeeperProblem(BAD_REQUEST, "Cannot delete an admin user", 400)
        uploads = self._certs.count_uploaded_by(user.id)
        if uploads:
            raise CertkeeperProblem(
                BAD_REQUEST,
                f"Cannot delete user: {uploads} certificate(s) were uploaded by this user",
                400,
            )
        self._users.delete(user.id)
        log.info("Deleted user %s", user.username)
        security_events.user_deleted(actor.id, user.id, user.username)

    def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
    ) -> None:
        """Replace *user*'s password after checking the current one."""
        if not verify_password(current_password, user.password_hash):
            raise CertkeeperProblem(BAD_REQUEST, "Current password is incorrect", 400)
        _validate_password(new_password)
        self._users.update_password(user.id, hash_password(new_password))
        security_events.password_changed(user.id, user.id)

    def reset_password(self, actor: User, user_id: UUID) -> tuple[User, str]:
        """Give a user a new server-generated password.

        Returns ``(user, plain_password)``.
        """
        user = self.get_user(user_id)
        plain_password = generate_password(self._settings.password_length)
        updated = self._users.update_password(user.id, hash_password(plain_password))
        if updated is None:
            raise CertkeeperProblem(NOT_FOUND, "User not found", 404)
        security_events.password_changed(actor.id, user.id)
        return updated, plain_password

    def bootstrap_admin(self) -> str | None:
        """Create the initial admin user if no users exist.

        Returns the plain password if a user was created, None otherwise.
        """
        if self._users.count_all() > 0:
            return None
        _, plain_password = self.create_user(
            self._settings.initial_admin_username,
            email=self._settings.initial_admin_email,
            role=ADMIN,
            display_name="Administrator",
        )
        log.warning(
            "Bootstrapped initial admin user '%s'",
            self._settings.initial_admin_username,
        )
        return plain_password

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_role(self, role: str) -> None:
        if role not in {r.id for r in self._roles()}:
            raise CertkeeperProblem(BAD_REQUEST, f"Unknown role '{role}'", 400)

    def _check_unique(
        self,
        username: str | None,
        email: str | None,
        *,
        exclude: UUID | None = None,
    ) -> None:
        if username:
            existing = self._users.find_by_username(username)
            if existing is not None and existing.id != exclude:
                raise CertkeeperProblem(
                    CONFLICT,
                    f"Username '{username}' already exists",
                    409,
                )
        if email:
            existing = self._users.find_by_email(email)
            if existing is not None and existing.id != exclude:
                raise CertkeeperProblem(
                    CONFLICT,
                    f"Email '{email}' is already in use",
                    409,
                )


def _validate_username(username: str) -> str:
    username = (username or "").strip()
    if not username:
        raise CertkeeperProblem(BAD_REQUEST, "Username is required", 400)
    return username


def _validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise CertkeeperProblem(
            BAD_REQUEST,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            400,
        )
