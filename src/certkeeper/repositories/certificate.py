"""Certificate repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from certkeeper.models.certificate import Certificate

if TYPE_CHECKING:
    from uuid import UUID

    from certkeeper.models.certificate import CertificateRecord


class CertificateRepository(BaseRepository[Certificate]):
    table_name = "certificates"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> Certificate:
        return Certificate(
            id=row["id"],
            common_name=row["common_name"],
            subject=row["subject"],
            issuer=row["issuer"],
            valid_from=row["valid_from"],
            valid_to=row["valid_to"],
            algorithm=row["algorithm"],
            serial_number=row["serial_number"],
            fingerprint=row["fingerprint"],
            pem=row["pem"],
            folder_id=row.get("folder_id"),
            san_dns_names=tuple(row.get("san_dns_names") or ()),
            uploaded_by=row.get("uploaded_by"),
            renewal_count=row.get("renewal_count", 0),
            uploaded_at=row["uploaded_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: Certificate) -> dict:
        return {
            "id": entity.id,
            "common_name": entity.common_name,
            "subject": entity.subject,
            "issuer": entity.issuer,
            "valid_from": entity.valid_from,
            "valid_to": entity.valid_to,
            "algorithm": entity.algorithm,
            "serial_number": entity.serial_number,
            "fingerprint": entity.fingerprint,
            "pem": entity.pem,
            "san_dns_names": list(entity.san_dns_names),
            "folder_id": entity.folder_id,
            "uploaded_by": entity.uploaded_by,
            "renewal_count": entity.renewal_count,
        }

    def from_row(self, row: dict) -> Certificate:
        """Build a :class:`Certificate` from a row fetched outside the repository."""
        return self._row_to_entity(row)

    def counts_by_folder(self) -> dict[str, int]:
        """Number of certificates filed in each folder."""
        db = Database.get_instance()
        rows = db.fetch_all(
            "SELECT folder_id, count(*) AS n FROM certificates "
            "WHERE folder_id IS NOT NULL GROUP BY folder_id",
            as_dict=True,
        )
        return {r["folder_id"]: r["n"] for r in rows}

    def count_uploaded_by(self, user_id: UUID) -> int:
        """Number of certificates uploaded by *user_id*."""
        db = Database.get_instance()
        return db.fetch_value(
            "SELECT count(*) FROM certificates WHERE uploaded_by = %s",
            (user_id,),
        )

    def find_by_fingerprint(self, fingerprint: str) -> Certificate | None:
        """Find a certificate by its SHA-256 fingerprint."""
        return self.find_one_by({"fingerprint": fingerprint})

    def search(
        self,
        *,
        folder_id: str | None = None,
        text: str | None = None,
    ) -> list[Certificate]:
        """List certificates, newest upload first.

        *text* is matched case-insensitively against the common name,
        issuer and subject.
        """
        clauses = []
        params: list = []
        if folder_id is not None:
            clauses.append("folder_id = %s")
            params.append(folder_id)
        if text:
            clauses.append(
                "(common_name ILIKE %s OR issuer ILIKE %s OR subject ILIKE %s)",
            )
            pattern = f"%{_escape_like(text)}%"
            params.extend([pattern, pattern, pattern])

        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        db = Database.get_instance()
        rows = db.fetch_all(
            f"SELECT * FROM certificates {where}ORDER BY uploaded_at DESC",  # noqa: S608
            tuple(params),
            as_dict=True,
        )
        return [self._row_to_entity(r) for r in rows]

    def assign_folder(
        self,
        certificate_id: UUID,
        folder_id: str | None,
    ) -> Certificate | None:
        """Move a certificate to *folder_id* (``None`` unassigns)."""
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE certificates SET folder_id = %s, updated_at = now() "
            "WHERE id = %s RETURNING *",
            (folder_id, certificate_id),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None

    def renew(
        self,
        certificate_id: UUID,
        record: CertificateRecord,
    ) -> Certificate | None:
        """Replace the validity window and PEM with a freshly parsed record.

        Identity fields (subject, issuer, serial) are left untouched.
        """
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE certificates "
            "SET valid_from = %s, valid_to = %s, pem = %s, fingerprint = %s, "
            "    renewal_count = renewal_count + 1, updated_at = now() "
            "WHERE id = %s RETURNING *",
            (
                record.valid_from,
                record.valid_to,
                record.pem,
                record.fingerprint,
                certificate_id,
            ),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
