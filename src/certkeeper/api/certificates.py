"""Certificate inventory routes.

Role-level permissions are enforced by decorators; folder access is
checked by :class:`CertificateService` against the target folder.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flask import Blueprint, Response, g, jsonify, request

from certkeeper.api.decorators import require_auth, require_permission
from certkeeper.api.serializers import serialize_certificate
from certkeeper.app.context import get_container
from certkeeper.app.errors import BAD_REQUEST, CertkeeperProblem
from certkeeper.core.types import Permission

if TYPE_CHECKING:
    from uuid import UUID

    from flask.typing import ResponseReturnValue

    from certkeeper.models.certificate import Certificate

log = logging.getLogger(__name__)

certificates_bp = Blueprint("certificates", __name__)


def _serialize(cert: Certificate) -> dict:
    container = get_container()
    return serialize_certificate(
        cert,
        container.certificate_service.now(),
        container.settings.certificates.expiring_soon_days,
    )


def _uploaded_file() -> tuple[str | None, bytes]:
    upload = request.files.get("certificate")
    if upload is None:
        raise CertkeeperProblem(
            BAD_REQUEST,
            "Certificate file is required (multipart field 'certificate')",
            400,
        )
    return upload.filename, upload.read()


@certificates_bp.route("/certificates", methods=["GET"])
@require_auth
@require_permission(Permission.CERTIFICATES_READ)
def list_certificates() -> ResponseReturnValue:
    certs = get_container().certificate_service.list_certificates(
        g.current_user,
        folder_id=request.args.get("folderId") or None,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
    )
    return jsonify([_serialize(c) for c in certs])


@certificates_bp.route("/certificates/<uuid:cert_id>", methods=["GET"])
@require_auth
@require_permission(Permission.CERTIFICATES_READ)
def get_certificate(cert_id: UUID) -> ResponseReturnValue:
    cert = get_container().certificate_service.get_certificate(g.current_user, cert_id)
    return jsonify(_serialize(cert))


@certificates_bp.route("/certificates", methods=["POST"])
@require_auth
@require_permission(Permission.CERTIFICATES_WRITE)
def upload_certificate() -> ResponseReturnValue:
    """Upload a PEM/DER certificate file."""
    filename, data = _uploaded_file()
    cert = get_container().certificate_service.upload(
        g.current_user,
        filename,
        data,
        folder_id=request.form.get("folderId") or None,
    )
    return jsonify(_serialize(cert)), 201


@certificates_bp.route("/certificates/<uuid:cert_id>/download", methods=["GET"])
@require_auth
@require_permission(Permission.CERTIFICATES_READ)
def download_certificate(cert_id: UUID) -> ResponseReturnValue:
    filename, pem = get_container().certificate_service.download(
        g.current_user, cert_id,
    )
    safe_name = filename.replace('"', "").replace("\r", "").replace("\n", "")
    return Response(
        pem,
        status=200,
        content_type="application/x-pem-file",
        headers={"Content-Disposition": f'attachment; filename="{safe_name}"'},
    )


@certificates_bp.route("/certificates/<uuid:cert_id>/renew", methods=["POST"])
@require_auth
@require_permission(Permission.CERTIFICATES_RENEW)
def renew_certificate(cert_id: UUID) -> ResponseReturnValue:
    filename, data = _uploaded_file()
    cert = get_container().certificate_service.renew(
        g.current_user, cert_id, filename, data,
    )
    return jsonify(_serialize(cert))


@certificates_bp.route("/certificates/<uuid:cert_id>/folder", methods=["PATCH"])
@require_auth
@require_permission(Permission.CERTIFICATES_WRITE)
def assign_folder(cert_id: UUID) -> ResponseReturnValue:
    """File a certificate in a folder; ``{"folderId": null}`` unassigns it."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or "folderId" not in data:
        raise CertkeeperProblem(
            BAD_REQUEST,
            "Request body must be JSON with a 'folderId' member",
            400,
        )
    cert = get_container().certificate_service.assign_folder(
        g.current_user, cert_id, data["folderId"],
    )
    return jsonify(_serialize(cert))


@certificates_bp.route("/certificates/<uuid:cert_id>", methods=["DELETE"])
@require_auth
@require_permission(Permission.CERTIFICATES_DELETE)
def delete_certificate(cert_id: UUID) -> ResponseReturnValue:
    get_container().certificate_service.delete(g.current_user, cert_id)
    return "", 204
