"""Dependency injection container for CertKeeper.

Created once during application startup and stored on the Flask app
via ``app.extensions["container"]``.  Accessible from any request
context with :func:`get_container`.

Usage::

    from certkeeper.app.context import get_container

    c = get_container()
    cert = c.certificate_service.get_certificate(user, cert_id)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import current_app

if TYPE_CHECKING:
    from pypgkit import Database

    from certkeeper.access.policy import AccessPolicy
    from certkeeper.auth.tokens import LoginRateLimiter, TokenBlacklist
    from certkeeper.config.settings import CertkeeperSettings
    from certkeeper.models.user import Role
    from certkeeper.repositories import (
        CertificateRepository,
        FolderRepository,
        RoleRepository,
        UserRepository,
    )
    from certkeeper.services import (
        AuthService,
        CertificateService,
        FolderService,
        UserService,
    )


class Container:
    """Application-wide dependency container.

    Holds a reference to the :class:`Database` singleton, pre-built
    repositories and the services wired on top of them.  All
    repositories share the same connection pool.
    """

    def __init__(
        self,
        db: Database,
        settings: CertkeeperSettings,
    ) -> None:
        from certkeeper.access.roles import DEFAULT_ROLES  # noqa: PLC0415
        from certkeeper.auth.tokens import (  # noqa: PLC0415
            LoginRateLimiter as _LRL,  # noqa: N814
        )
        from certkeeper.auth.tokens import (  # noqa: PLC0415
            TokenBlacklist as _TB,  # noqa: N814
        )
        from certkeeper.repositories import (  # noqa: PLC0415
            CertificateRepository as _CeR,  # noqa: N814
        )
        from certkeeper.repositories import (  # noqa: PLC0415
            FolderRepository as _FR,  # noqa: N814
        )
        from certkeeper.repositories import (  # noqa: PLC0415
            RoleRepository as _RR,  # noqa: N814
        )
        from certkeeper.repositories import (  # noqa: PLC0415
            UserRepository as _UR,  # noqa: N814
        )
        from certkeeper.services import (  # noqa: PLC0415
            AuthService as _AuS,  # noqa: N814
        )
        from certkeeper.services import (  # noqa: PLC0415
            CertificateService as _CeS,  # noqa: N814
        )
        from certkeeper.services import (  # noqa: PLC0415
            FolderService as _FS,  # noqa: N814
        )
        from certkeeper.services import (  # noqa: PLC0415
            UserService as _US,  # noqa: N814
        )

        self.db: Database = db
        self.settings: CertkeeperSettings = settings

        # Repositories
        self.certificates: CertificateRepository = _CeR(db)
        self.folders: FolderRepository = _FR(db)
        self.roles: RoleRepository = _RR(db)
        self.users: UserRepository = _UR(db)
        self._default_roles = DEFAULT_ROLES

        # Authentication state shared by all requests of this worker
        self.token_blacklist: TokenBlacklist = _TB(db)
        self.login_limiter: LoginRateLimiter = _LRL.from_settings(
            settings.security.login,
        )

        # Services
        self.auth_service: AuthService = _AuS(
            self.users,
            settings.auth,
            self.token_blacklist,
            self.login_limiter,
        )
        self.user_service: UserService = _US(
            self.users,
            self.certificates,
            settings.auth,
            self.role_table,
        )
        self.certificate_service: CertificateService = _CeS(
            self.certificates,
            self.folders,
            settings.certificates,
            settings.folders,
            self.policy,
        )
        self.folder_service: FolderService = _FS(
            self.folders,
            self.certificates,
            self.policy,
            db,
        )

    def role_table(self) -> list[Role]:
        """Roles from the ``roles`` table, or the built-in roles when it is empty."""
        return self.roles.find_all() or list(self._default_roles.values())

    def policy(self) -> AccessPolicy:
        """Build an :class:`AccessPolicy` over the current roles and folders."""
        from certkeeper.access.policy import AccessPolicy  # noqa: PLC0415

        return AccessPolicy(self.role_table(), self.folders.find_all())


def get_container() -> Container:
    """Return the :class:`Container` from the current Flask app.

    Raises :class:`RuntimeError` if the database was not
    initialised (i.e. ``create_app`` was called without a
    ``database`` argument).
    """
    container = current_app.extensions.get("container")
    if container is None:
        msg = (
            "Dependency container not available -- "
            "was the database initialised before "
            "create_app()?"
        )
        raise RuntimeError(msg)
    return container
