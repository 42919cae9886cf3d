"""Route tests for user administration and password change."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from flask import Flask

from certkeeper.access.policy import AccessPolicy
from certkeeper.access.roles import ADMIN, DEFAULT_ROLES, MANAGER, VIEWER
from certkeeper.app.errors import BAD_REQUEST, CertkeeperProblem, register_error_handlers
from certkeeper.models.user import User

_AUTH = {"Authorization": "Bearer good-token"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user(role=ADMIN, username=None):
    return User(id=uuid4(), username=username or role, role=role)


def _container(user=None):
    container = MagicMock()
    container.auth_service.resolve_token.return_value = user or _user()
    container.policy.return_value = AccessPolicy(DEFAULT_ROLES, [])
    return container


def _make_app(container) -> Flask:
    from certkeeper.api.auth import auth_bp
    from certkeeper.api.users import users_bp

    app = Flask(__name__)
    app.config["TESTING"] = True
    register_error_handlers(app)
    app.extensions["container"] = container
    app.register_blueprint(auth_bp, url_prefix="/api")
    app.register_blueprint(users_bp, url_prefix="/api")
    return app


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@patch("certkeeper.api.decorators.security_events")
class TestUserAdministration:
    def test_list_requires_settings_permission(self, mock_se):
        container = _container(_user(MANAGER))
        with _make_app(container).test_client() as client:
            resp = client.get("/api/users", headers=_AUTH)
        assert resp.status_code == 403
        container.user_service.list_users.assert_not_called()

    def test_list(self, mock_se):
        container = _container()
        container.user_service.list_users.return_value = [_user(ADMIN), _user(VIEWER)]
        with _make_app(container).test_client() as client:
            resp = client.get("/api/users", headers=_AUTH)
        body = json.loads(resp.data)
        assert [u["role"] for u in body] == [ADMIN, VIEWER]
        assert body[1]["permissions"] == ["certificates:read", "folders:read"]
        assert "password_hash" not in body[0]

    def test_get_one(self, mock_se):
        container = _container()
        target = _user(MANAGER, "bob")
        container.user_service.get_user.return_value = target
        with _make_app(container).test_client() as client:
            resp = client.get(f"/api/users/{target.id}", headers=_AUTH)
        assert json.loads(resp.data)["username"] == "bob"
        assert container.user_service.get_user.call_args.args[0] == target.id

    def test_create_returns_generated_password(self, mock_se):
        container = _container()
        created = _user(MANAGER, "bob")
        container.user_service.create_user.return_value = (created, "Gen3rated-Pass")
        with _make_app(container).test_client() as client:
            resp = client.post(
                "/api/users",
                headers=_AUTH,
                json={"username": "bob", "email": "bob@example.com", "role": "manager"},
            )
        assert resp.status_code == 201
        assert json.loads(resp.data)["password"] == "Gen3rated-Pass"
        call = container.user_service.create_user.call_args
        assert call.args == ("bob",)
        assert call.kwargs["email"] == "bob@example.com"
        assert call.kwargs["role"] == MANAGER
        assert call.kwargs["password"] is None

    def test_create_with_chosen_password(self, mock_se):
        container = _container()
        container.user_service.create_user.return_value = (_user(VIEWER, "bob"), None)
        with _make_app(container).test_client() as client:
            resp = client.post(
                "/api/users",
                headers=_AUTH,
                json={"username": "bob", "password": "s3cret-pass", "displayName": "Bob"},
            )
        assert "password" not in json.loads(resp.data)
        kwargs = container.user_service.create_user.call_args.kwargs
        assert kwargs["password"] == "s3cret-pass"
        assert kwargs["display_name"] == "Bob"

    @pytest.mark.parametrize(
        "body",
        [{}, {"username": 5}, {"username": "bob", "role": ["admin"]}, {"username": "bob", "password": 1}],
    )
    def test_create_rejects_bad_fields(self, mock_se, body):
        container = _container()
        with _make_app(container).test_client() as client:
            resp = client.post("/api/users", headers=_AUTH, json=body)
        assert resp.status_code == 400
        container.user_service.create_user.assert_not_called()

    def test_update(self, mock_se):
        container = _container()
        target = _user(VIEWER, "bob")
        container.user_service.update_user.return_value = target
        with _make_app(container).test_client() as client:
            resp = client.put(
                f"/api/users/{target.id}",
                headers=_AUTH,
                json={"role": "manager", "active": False},
            )
        assert resp.status_code == 200
        call = container.user_service.update_user.call_args
        assert call.args[1] == target.id
        assert call.kwargs == {"role": MANAGER, "active": False}

    def test_update_active_must_be_boolean(self, mock_se):
        container = _container()
        with _make_app(container).test_client() as client:
            resp = client.patch(f"/api/users/{uuid4()}", headers=_AUTH, json={"active": "no"})
        assert resp.status_code == 400
        container.user_service.update_user.assert_not_called()

    def test_delete(self, mock_se):
        container = _container()
        target_id = uuid4()
        with _make_app(container).test_client() as client:
            resp = client.delete(f"/api/users/{target_id}", headers=_AUTH)
        assert resp.status_code == 204
        assert container.user_service.delete_user.call_args.args[1] == target_id

    def test_delete_refused_is_problem(self, mock_se):
        container = _container()
        container.user_service.delete_user.side_effect = CertkeeperProblem(
            BAD_REQUEST, "Cannot delete an admin user", 400,
        )
        with _make_app(container).test_client() as client:
            resp = client.delete(f"/api/users/{uuid4()}", headers=_AUTH)
        assert resp.status_code == 400
        assert json.loads(resp.data)["detail"] == "Cannot delete an admin user"

    def test_reset_password(self, mock_se):
        container = _container()
        target = _user(VIEWER, "bob")
        container.user_service.reset_password.return_value = (target, "N3w-Generated")
        with _make_app(container).test_client() as client:
            resp = client.post(f"/api/users/{target.id}/reset-password", headers=_AUTH)
        assert json.loads(resp.data)["password"] == "N3w-Generated"

    def test_non_uuid_id_is_not_found(self, mock_se):
        with _make_app(_container()).test_client() as client:
            resp = client.get("/api/users/not-a-uuid", headers=_AUTH)
        assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Self service
# ---------------------------------------------------------------------------


class TestSelfService:
    def test_my_permissions(self):
        container = _container(_user(VIEWER))
        with _make_app(container).test_client() as client:
            resp = client.get("/api/users/me/permissions", headers=_AUTH)
        assert json.loads(resp.data) == {
            "role": VIEWER,
            "permissions": ["certificates:read", "folders:read"],
        }

    def test_roles_listed_for_any_user(self):
        container = _container(_user(VIEWER))
        container.user_service.list_roles.return_value = [DEFAULT_ROLES[MANAGER]]
        with _make_app(container).test_client() as client:
            resp = client.get("/api/roles", headers=_AUTH)
        body = json.loads(resp.data)
        assert body[0]["id"] == MANAGER
        assert "certificates:renew" in body[0]["permissions"]

    def test_change_password(self):
        user = _user(VIEWER)
        container = _container(user)
        with _make_app(container).test_client() as client:
            resp = client.post(
                "/api/auth/change-password",
                headers=_AUTH,
                json={"currentPassword": "old-pass", "newPassword": "new-pass-123"},
            )
        assert resp.status_code == 200
        container.user_service.change_password.assert_called_once_with(
            user, "old-pass", "new-pass-123",
        )

    def test_change_password_wrong_current(self):
        container = _container(_user(VIEWER))
        container.user_service.change_password.side_effect = CertkeeperProblem(
            BAD_REQUEST, "Current password is incorrect", 400,
        )
        with _make_app(container).test_client() as client:
            resp = client.post(
                "/api/auth/change-password",
                headers=_AUTH,
                json={"currentPassword": "nope", "newPassword": "new-pass-123"},
            )
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [{}, {"currentPassword": "old"}, {"currentPassword": 1, "newPassword": "x"}],
    )
    def test_change_password_requires_both_fields(self, body):
        container = _container(_user(VIEWER))
        with _make_app(container).test_client() as client:
            resp = client.post("/api/auth/change-password", headers=_AUTH, json=body)
        assert resp.status_code == 400
        container.user_service.change_password.assert_not_called()

    def test_requires_authentication(self):
        with _make_app(_container()).test_client() as client:
            resp = client.get("/api/users/me/permissions")
        assert resp.status_code == 401
