"""Certificate entities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from certkeeper.core.types import CertificateStatus

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class CertificateRecord:
    """Metadata extracted from an uploaded certificate.

    ``status`` reflects the instant the record was parsed and must not
    be persisted.
    """

    common_name: str
    subject: str
    issuer: str
    valid_from: datetime
    valid_to: datetime
    algorithm: str
    serial_number: str
    status: CertificateStatus
    fingerprint: str
    pem: str
    san_dns_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class Certificate:
    id: UUID
    common_name: str
    subject: str
    issuer: str
    valid_from: datetime
    valid_to: datetime
    algorithm: str
    serial_number: str
    fingerprint: str
    pem: str
    folder_id: str | None = None
    san_dns_names: tuple[str, ...] = ()
    uploaded_by: UUID | None = None
    renewal_count: int = 0
    uploaded_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH
