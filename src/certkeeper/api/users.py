"""User administration routes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from flask import Blueprint, g, jsonify, request

from certkeeper.api.decorators import require_auth, require_permission
from certkeeper.api.serializers import serialize_role, serialize_user
from certkeeper.app.context import get_container
from certkeeper.app.errors import BAD_REQUEST, CertkeeperProblem
from certkeeper.core.types import Permission

if TYPE_CHECKING:
    from uuid import UUID

    from flask.typing import ResponseReturnValue

log = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__)

# Request field name to service keyword
_PROFILE_FIELDS = {
    "username": "username",
    "email": "email",
    "displayName": "display_name",
    "role": "role",
}


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise CertkeeperProblem(BAD_REQUEST, "Request body must be a JSON object", 400)
    return data


def _profile_fields(data: dict[str, Any]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for field, keyword in _PROFILE_FIELDS.items():
        if field not in data:
            continue
        if not isinstance(data[field], str):
            raise CertkeeperProblem(BAD_REQUEST, f"'{field}' must be a string", 400)
        kwargs[keyword] = data[field]
    return kwargs


@users_bp.route("/users", methods=["GET"])
@require_auth
@require_permission(Permission.SYSTEM_SETTINGS)
def list_users() -> ResponseReturnValue:
    container = get_container()
    policy = container.policy()
    users = container.user_service.list_users()
    return jsonify([serialize_user(u, policy.permissions_for(u)) for u in users])


@users_bp.route("/users/<uuid:user_id>", methods=["GET"])
@require_auth
@require_permission(Permission.SYSTEM_SETTINGS)
def get_user(user_id: UUID) -> ResponseReturnValue:
    container = get_container()
    user = container.user_service.get_user(user_id)
    return jsonify(serialize_user(user, container.policy().permissions_for(user)))


@users_bp.route("/users", methods=["POST"])
@require_auth
@require_permission(Permission.SYSTEM_SETTINGS)
def create_user() -> ResponseReturnValue:
    """Create a user.

    Without a ``password`` field one is generated and returned once in
    the response.
    """
    data = _json_body()
    kwargs = _profile_fields(data)
    if not kwargs.get("username"):
        raise CertkeeperProblem(BAD_REQUEST, "'username' is required", 400)
    password = data.get("password")
    if password is not None and not isinstance(password, str):
        raise CertkeeperProblem(BAD_REQUEST, "'password' must be a string", 400)

    user, generated = get_container().user_service.create_user(
        kwargs.pop("username"),
        password=password,
        actor_id=g.current_user.id,
        **kwargs,
    )
    body = serialize_user(user)
    if generated is not None:
        body["password"] = generated
    return jsonify(body), 201


@users_bp.route("/users/<uuid:user_id>", methods=["PUT", "PATCH"])
@require_auth
@require_permission(Permission.SYSTEM_SETTINGS)
def update_user(user_id: UUID) -> ResponseReturnValue:
    data = _json_body()
    kwargs = _profile_fields(data)
    if "active" in data:
        if not isinstance(data["active"], bool):
            raise CertkeeperProblem(BAD_REQUEST, "'active' must be a boolean", 400)
        kwargs["active"] = data["active"]
    user = get_container().user_service.update_user(g.current_user, user_id, **kwargs)
    return jsonify(serialize_user(user))


@users_bp.route("/users/<uuid:user_id>", methods=["DELETE"])
@require_auth
@require_permission(Permission.SYSTEM_SETTINGS)
def delete_user(user_id: UUID) -> ResponseReturnValue:
    get_container().user_service.delete_user(g.current_user, user_id)
    return "", 204


@users_bp.route("/users/<uuid:user_id>/reset-password", methods=["POST"])
@require_auth
@require_permission(Permission.SYSTEM_SETTINGS)
def reset_password(user_id: UUID) -> ResponseReturnValue:
    """Replace a user's password with a generated one."""
    user, password = get_container().user_service.reset_password(g.current_user, user_id)
    body = serialize_user(user)
    body["password"] = password
    return jsonify(body)


@users_bp.route("/users/me/permissions", methods=["GET"])
@require_auth
def my_permissions() -> ResponseReturnValue:
    user = g.current_user
    permissions = get_container().policy().permissions_for(user)
    return jsonify({"role": user.role, "permissions": sorted(permissions)})


@users_bp.route("/roles", methods=["GET"])
@require_auth
def list_roles() -> ResponseReturnValue:
    roles = get_container().user_service.list_roles()
    return jsonify([serialize_role(r) for r in roles])

