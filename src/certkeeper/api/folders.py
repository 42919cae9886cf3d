"""Folder routes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flask import Blueprint, g, jsonify, request

from certkeeper.api.decorators import require_auth, require_permission
from certkeeper.api.serializers import serialize_certificate, serialize_folder
from certkeeper.app.context import get_container
from certkeeper.app.errors import BAD_REQUEST, CertkeeperProblem
from certkeeper.core.types import Permission
from certkeeper.models.folder import AccessControl

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

log = logging.getLogger(__name__)

folders_bp = Blueprint("folders", __name__)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise CertkeeperProblem(BAD_REQUEST, "Request body must be a JSON object", 400)
    return data


def _string_field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise CertkeeperProblem(BAD_REQUEST, f"'{key}' must be a string", 400)
    return value


def _access_control(value: Any) -> AccessControl | None:  # noqa: ANN401
    if value is None:
        return None
    if not isinstance(value, dict):
        raise CertkeeperProblem(
            BAD_REQUEST,
            "'accessControl' must be an object with 'roles' and 'users' lists",
            400,
        )
    for key in ("roles", "users"):
        if not isinstance(value.get(key, []), list):
            raise CertkeeperProblem(
                BAD_REQUEST,
                f"'accessControl.{key}' must be a list",
                400,
            )
    return AccessControl.from_dict(value)


@folders_bp.route("/folders", methods=["GET"])
@require_auth
def list_folders() -> ResponseReturnValue:
    """Folders the caller can read, with certificate counts."""
    service = get_container().folder_service
    counts = service.certificate_counts()
    folders = service.list_folders(g.current_user)
    return jsonify([serialize_folder(f, counts.get(f.id, 0)) for f in folders])


@folders_bp.route("/folders/<folder_id>", methods=["GET"])
@require_auth
def get_folder(folder_id: str) -> ResponseReturnValue:
    """One folder with its breadcrumb path and the folders below it."""
    service = get_container().folder_service
    folder = service.get_folder(g.current_user, folder_id)
    count = service.certificate_counts().get(folder.id, 0)
    path, subtree = service.folder_lineage(g.current_user, folder.id)
    body = serialize_folder(folder, count)
    body["path"] = [{"id": f.id, "name": f.name} for f in path]
    body["descendants"] = [f.id for f in subtree]
    return jsonify(body)


@folders_bp.route("/folders/<folder_id>/certificates", methods=["GET"])
@require_auth
@require_permission(Permission.CERTIFICATES_READ)
def folder_certificates(folder_id: str) -> ResponseReturnValue:
    container = get_container()
    container.folder_service.get_folder(g.current_user, folder_id)
    service = container.certificate_service
    certs = service.list_certificates(
        g.current_user,
        folder_id=folder_id,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
    )
    now = service.now()
    window = container.settings.certificates.expiring_soon_days
    return jsonify([serialize_certificate(c, now, window) for c in certs])


@folders_bp.route("/folders", methods=["POST"])
@require_auth
@require_permission(Permission.FOLDERS_WRITE)
def create_folder() -> ResponseReturnValue:
    data = _json_body()
    folder = get_container().folder_service.create_folder(
        g.current_user,
        _string_field(data, "name") or "",
        description=_string_field(data, "description") or "",
        parent_id=_string_field(data, "parentId"),
        access_control=_access_control(data.get("accessControl")),
    )
    return jsonify(serialize_folder(folder, 0)), 201


@folders_bp.route("/folders/<folder_id>", methods=["PUT"])
@require_auth
def update_folder(folder_id: str) -> ResponseReturnValue:
    data = _json_body()
    kwargs: dict[str, Any] = {
        "name": _string_field(data, "name"),
        "description": _string_field(data, "description"),
    }
    if "accessControl" in data:
        kwargs["access_control"] = _access_control(data["accessControl"])
    folder = get_container().folder_service.update_folder(
        g.current_user, folder_id, **kwargs,
    )
    return jsonify(serialize_folder(folder))


@folders_bp.route("/folders/<folder_id>/move", methods=["POST"])
@require_auth
def move_folder(folder_id: str) -> ResponseReturnValue:
    """Re-parent a folder; ``{"parentId": null}`` moves it to the root."""
    data = _json_body()
    if "parentId" not in data:
        raise CertkeeperProblem(BAD_REQUEST, "'parentId' is required", 400)
    folder = get_container().folder_service.move_folder(
        g.current_user, folder_id, _string_field(data, "parentId"),
    )
    return jsonify(serialize_folder(folder))


@folders_bp.route("/folders/<folder_id>", methods=["DELETE"])
@require_auth
def delete_folder(folder_id: str) -> ResponseReturnValue:
    unassigned = get_container().folder_service.delete_folder(
        g.current_user, folder_id,
    )
    return jsonify(
        {
            "deleted": folder_id,
            "unassigned_certificates": sorted(str(c) for c in unassigned),
        },
    )
