"""Response serializers for API entities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from certkeeper.core.status import classify, days_until_expiry

if TYPE_CHECKING:
    from datetime import datetime

    from certkeeper.models.certificate import Certificate
    from certkeeper.models.folder import Folder
    from certkeeper.models.user import Role, User


def serialize_user(user: User, permissions: frozenset[str] = frozenset()) -> dict:
    """Serialize a user (excludes password_hash)."""
    return {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "role": user.role,
        "active": user.active,
        "permissions": sorted(permissions),
        "last_login_at": (user.last_login_at.isoformat() if user.last_login_at else None),
    }


def serialize_role(role: Role) -> dict:
    return {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "permissions": sorted(role.permissions),
    }


def serialize_certificate(
    cert: Certificate,
    now: datetime,
    soon_window_days: int,
) -> dict:
    """Serialize a certificate with its status derived at *now*.

    The PEM body is only returned by the download endpoint.
    """
    return {
        "id": str(cert.id),
        "common_name": cert.common_name,
        "subject": cert.subject,
        "issuer": cert.issuer,
        "valid_from": cert.valid_from.isoformat(),
        "valid_to": cert.valid_to.isoformat(),
        "algorithm": cert.algorithm,
        "serial_number": cert.serial_number,
        "fingerprint": cert.fingerprint,
        "san_dns_names": list(cert.san_dns_names),
        "status": classify(cert.valid_to, now, soon_window_days).value,
        "days_until_expiry": days_until_expiry(cert.valid_to, now),
        "folder_id": cert.folder_id,
        "uploaded_by": str(cert.uploaded_by) if cert.uploaded_by else None,
        "renewal_count": cert.renewal_count,
        "uploaded_at": cert.uploaded_at.isoformat(),
        "updated_at": cert.updated_at.isoformat(),
    }


def serialize_folder(folder: Folder, certificate_count: int | None = None) -> dict:
    acl = folder.access_control
    result = {
        "id": folder.id,
        "name": folder.name,
        "description": folder.description,
        "type": folder.type.value,
        "parent_id": folder.parent_id,
        "access_control": acl.to_dict() if acl is not None else None,
        "created_by": folder.created_by,
        "created_at": folder.created_at.isoformat(),
    }
    if certificate_count is not None:
        result["certificate_count"] = certificate_count
    return result


def serialize_login_response(user: User, token: str, expires_in: int) -> dict:
    return {
        "token": token,
        "token_type": "Bearer",
        "expires_in": expires_in,
        "user": serialize_user(user),
    }
