"""Login, logout, password change and current-user routes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flask import Blueprint, g, jsonify, request

from certkeeper.api.decorators import require_auth
from certkeeper.api.serializers import serialize_login_response, serialize_user
from certkeeper.app.context import get_container
from certkeeper.app.errors import BAD_REQUEST, CertkeeperProblem

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

log = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/auth/login", methods=["POST"])
def login() -> ResponseReturnValue:
    """Authenticate and return a bearer token."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise CertkeeperProblem(BAD_REQUEST, "Request body must be a JSON object", 400)

    username = data.get("username", "")
    password = data.get("password", "")
    if not username or not password:
        raise CertkeeperProblem(
            BAD_REQUEST,
            "Both 'username' and 'password' are required",
            400,
        )

    container = get_container()
    user, token = container.auth_service.authenticate(
        username,
        password,
        ip_address=request.remote_addr,
    )
    expires_in = container.settings.auth.token_expiry_seconds
    return jsonify(serialize_login_response(user, token, expires_in))


@auth_bp.route("/auth/logout", methods=["POST"])
@require_auth
def logout() -> ResponseReturnValue:
    """Revoke the current bearer token."""
    get_container().auth_service.logout(g.bearer_token)
    return jsonify({"status": "logged_out"}), 200


@auth_bp.route("/auth/me", methods=["GET"])
@require_auth
def me() -> ResponseReturnValue:
    user = g.current_user
    policy = get_container().policy()
    return jsonify(serialize_user(user, policy.permissions_for(user)))


@auth_bp.route("/auth/change-password", methods=["POST"])
@require_auth
def change_password() -> ResponseReturnValue:
    """Change the caller's own password."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise CertkeeperProblem(BAD_REQUEST, "Request body must be a JSON object", 400)

    current = data.get("currentPassword")
    new = data.get("newPassword")
    if not (isinstance(current, str) and current and isinstance(new, str) and new):
        raise CertkeeperProblem(
            BAD_REQUEST,
            "Both 'currentPassword' and 'newPassword' are required",
            400,
        )

    get_container().user_service.change_password(g.current_user, current, new)
    return jsonify({"status": "password_changed"})
