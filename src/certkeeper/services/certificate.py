"""Certificate inventory service.

Handles upload (screening, parsing, filing), listing with derived
status, download, folder reassignment, renewal and deletion.  Status is
never read from storage: it is recomputed from ``valid_to`` every time
a certificate is handed back to a caller.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from certkeeper.app.errors import (
    BAD_REQUEST,
    FORBIDDEN,
    NOT_FOUND,
    PAYLOAD_TOO_LARGE,
    UNSUPPORTED_FILE_TYPE,
    CertkeeperProblem,
)
from certkeeper.certs.errors import CertificateParseError
from certkeeper.certs.parser import parse_certificate
from certkeeper.core.status import classify
from certkeeper.core.types import CertificateStatus, Permission
from certkeeper.logging import security_events
from certkeeper.models.certificate import Certificate

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from certkeeper.access.policy import AccessPolicy
    from certkeeper.config.settings import CertificateSettings, FolderSettings
    from certkeeper.models.user import User
    from certkeeper.repositories.certificate import CertificateRepository
    from certkeeper.repositories.folder import FolderRepository

log = logging.getLogger(__name__)

ALL_CERTIFICATES = "all-certificates"


class CertificateService:
    """Manage the certificate inventory on behalf of a user."""

    def __init__(  # noqa: PLR0913
        self,
        cert_repo: CertificateRepository,
        folder_repo: FolderRepository,
        settings: CertificateSettings,
        folder_settings: FolderSettings,
        policy_loader: Callable[[], AccessPolicy],
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._certs = cert_repo
        self._folders = folder_repo
        self._settings = settings
        self._folder_settings = folder_settings
        self._policy = policy_loader
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status_of(self, cert: Certificate) -> CertificateStatus:
        """Current lifecycle status of *cert*."""
        return classify(
            cert.valid_to,
            self._clock(),
            self._settings.expiring_soon_days,
        )

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_certificates(
        self,
        user: User,
        *,
        folder_id: str | None = None,
        status: str | None = None,
        search: str | None = None,
    ) -> list[Certificate]:
        """Certificates visible to *user*, newest upload first.

        ``folder_id`` of ``all-certificates`` means no folder filter.
        ``status`` filters on the derived status.
        """
        wanted: CertificateStatus | None = None
        if status:
            try:
                wanted = CertificateStatus(status)
            except ValueError:
                raise CertkeeperProblem(
                    BAD_REQUEST,
                    f"Unknown status filter '{status}'",
                    400,
                ) from None

        if folder_id == ALL_CERTIFICATES:
            folder_id = None

        policy = self._policy()
        if folder_id is not None and not policy.has_folder_access(
            user, folder_id, Permission.FOLDERS_READ,
        ):
            self._deny(user, Permission.FOLDERS_READ, folder_id=folder_id)

        certs = self._certs.search(folder_id=folder_id, text=search or None)
        visible = [c for c in certs if policy.can_view_certificate(user, c)]
        if wanted is not None:
            visible = [c for c in visible if self.status_of(c) == wanted]
        return visible

    def get_certificate(self, user: User, certificate_id: UUID) -> Certificate:
        """Fetch one certificate, enforcing read access.

        A certificate the user may not see is reported as not found.
        """
        cert = self._certs.find_by_id(certificate_id)
        if cert is None or not self._policy().can_view_certificate(user, cert):
            raise CertkeeperProblem(NOT_FOUND, "Certificate not found", 404)
        return cert

    def download(self, user: User, certificate_id: UUID) -> tuple[str, str]:
        """Return ``(filename, pem)`` for a certificate."""
        cert = self.get_certificate(user, certificate_id)
        security_events.certificate_downloaded(user.id, cert.id)
        return f"{cert.common_name}.pem", cert.pem

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upload(
        self,
        user: User,
        filename: str | None,
        data: bytes,
        folder_id: str | None = None,
    ) -> Certificate:
        """Parse and store an uploaded certificate file.

        Without *folder_id* (or with the ``all-certificates`` alias)
        the certificate is filed in the default upload folder.

        Raises:
            CertkeeperProblem: Bad extension (400), oversize (413),
                unknown folder (404) or missing permission (403).
            CertificateParseError: The file is not a usable certificate.
        """
        self._check_file(filename, data)

        if not folder_id or folder_id == ALL_CERTIFICATES:
            folder_id = self._folder_settings.default_upload_folder

        if self._folders.find_by_id(folder_id) is None:
            raise CertkeeperProblem(
                NOT_FOUND,
                f"Folder '{folder_id}' not found",
                404,
            )
        if not self._policy().can_upload_to_folder(user, folder_id):
            self._deny(user, Permission.CERTIFICATES_WRITE, folder_id=folder_id)

        try:
            record = parse_certificate(
                data,
                filename,
                now=self._clock(),
                soon_window_days=self._settings.expiring_soon_days,
            )
        except CertificateParseError as exc:
            security_events.certificate_rejected(
                user.id, filename, exc.reason, exc.detail,
            )
            raise

        existing = self._certs.find_by_fingerprint(record.fingerprint)
        if existing is not None:
            log.info(
                "Certificate %s uploaded again (existing id=%s)",
                record.fingerprint,
                existing.id,
            )

        now = self._clock()
        cert = Certificate(
            id=uuid4(),
            common_name=record.common_name,
            subject=record.subject,
            issuer=record.issuer,
            valid_from=record.valid_from,
            valid_to=record.valid_to,
            algorithm=record.algorithm,
            serial_number=record.serial_number,
            fingerprint=record.fingerprint,
            pem=record.pem,
            folder_id=folder_id,
            san_dns_names=record.san_dns_names,
            uploaded_by=user.id,
            uploaded_at=now,
            updated_at=now,
        )
        created = self._certs.create(cert)
        log.info(
            "Stored certificate %s (cn=%s, status=%s) in folder %s",
            created.id,
            created.common_name,
            record.status,
            folder_id,
        )
        security_events.certificate_uploaded(
            user.id, created.id, created.common_name, folder_id,
        )
        return created

    def assign_folder(
        self,
        user: User,
        certificate_id: UUID,
        folder_id: str | None,
    ) -> Certificate:
        """File a certificate in *folder_id* (``None`` unassigns it)."""
        cert = self.get_certificate(user, certificate_id)
        policy = self._policy()

        if not policy.has_permission(user, Permission.CERTIFICATES_WRITE):
            self._deny(user, Permission.CERTIFICATES_WRITE)
        if folder_id is not None:
            if self._folders.find_by_id(folder_id) is None:
                raise CertkeeperProblem(
                    NOT_FOUND,
                    f"Folder '{folder_id}' not found",
                    404,
                )
            if not policy.can_upload_to_folder(user, folder_id):
                self._deny(
                    user, Permission.CERTIFICATES_WRITE, folder_id=folder_id,
                )

        updated = self._certs.assign_folder(cert.id, folder_id)
        if updated is None:
            raise CertkeeperProblem(NOT_FOUND, "Certificate not found", 404)
        security_events.certificate_moved(
            user.id, cert.id, cert.folder_id, folder_id,
        )
        return updated

    def renew(
        self,
        user: User,
        certificate_id: UUID,
        filename: str | None,
        data: bytes,
    ) -> Certificate:
        """Replace a certificate's validity window with a renewed file."""
        if not self._policy().can_renew_certificate(user):
            self._deny(user, Permission.CERTIFICATES_RENEW)
        cert = self.get_certificate(user, certificate_id)
        self._check_file(filename, data)

        try:
            record = parse_certificate(
                data,
                filename,
                now=self._clock(),
                soon_window_days=self._settings.expiring_soon_days,
            )
        except CertificateParseError as exc:
            security_events.certificate_rejected(
                user.id, filename, exc.reason, exc.detail,
            )
            raise

        if record.subject != cert.subject:
            log.warning(
                "Renewal of %s changes subject from '%s' to '%s'",
                cert.id,
                cert.subject,
                record.subject,
            )

        updated = self._certs.renew(cert.id, record)
        if updated is None:
            raise CertkeeperProblem(NOT_FOUND, "Certificate not found", 404)
        security_events.certificate_renewed(
            user.id, updated.id, updated.renewal_count,
        )
        return updated

    def delete(self, user: User, certificate_id: UUID) -> None:
        if not self._policy().can_delete_certificate(user):
            self._deny(user, Permission.CERTIFICATES_DELETE)
        cert = self.get_certificate(user, certificate_id)
        self._certs.delete(cert.id)
        security_events.certificate_deleted(user.id, cert.id, cert.common_name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_file(self, filename: str | None, data: bytes) -> None:
        name = (filename or "").lower()
        if not any(name.endswith(ext) for ext in self._settings.allowed_extensions):
            allowed = ", ".join(self._settings.allowed_extensions)
            raise CertkeeperProblem(
                UNSUPPORTED_FILE_TYPE,
                f"Only certificate files ({allowed}) are allowed",
                400,
            )
        if len(data) > self._settings.max_upload_bytes:
            raise CertkeeperProblem(
                PAYLOAD_TOO_LARGE,
                f"Certificate file exceeds {self._settings.max_upload_bytes} bytes",
                413,
            )

    @staticmethod
    def _deny(
        user: User,
        permission: str,
        *,
        folder_id: str | None = None,
    ) -> None:
        security_events.access_denied(user.id, str(permission), folder_id=folder_id)
        raise CertkeeperProblem(
            FORBIDDEN,
            "Insufficient permissions",
            403,
        )
