"""Route tests for the folder blueprint."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from flask import Flask

from certkeeper.access.policy import AccessPolicy
from certkeeper.access.roles import ADMIN, DEFAULT_ROLES, MANAGER, VIEWER
from certkeeper.access.tree import CycleError, SystemFolderProtected
from certkeeper.app.errors import FOLDER_CYCLE, SYSTEM_FOLDER_PROTECTED, register_error_handlers
from certkeeper.core.types import FolderType
from certkeeper.models.certificate import Certificate
from certkeeper.models.folder import AccessControl, Folder
from certkeeper.models.user import User

NOW = datetime(2024, 1, 1, tzinfo=UTC)
_AUTH = {"Authorization": "Bearer good-token"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _user(role=ADMIN):
    return User(id=uuid4(), username=role, role=role)


def _folder(folder_id="prod", **overrides):
    values = {"id": folder_id, "name": folder_id.title(), "created_at": NOW}
    values.update(overrides)
    return Folder(**values)


def _container(user=None):
    container = MagicMock()
    container.auth_service.resolve_token.return_value = user or _user()
    container.policy.return_value = AccessPolicy(DEFAULT_ROLES, [])
    container.settings.certificates.expiring_soon_days = 30
    container.certificate_service.now.return_value = NOW
    container.folder_service.certificate_counts.return_value = {"prod": 3}
    return container


def _make_app(container) -> Flask:
    from certkeeper.api.folders import folders_bp

    app = Flask(__name__)
    app.config["TESTING"] = True
    register_error_handlers(app)
    app.extensions["container"] = container
    app.register_blueprint(folders_bp, url_prefix="/api")
    return app


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


class TestReadRoutes:
    def test_list_with_counts(self):
        container = _container(_user(VIEWER))
        container.folder_service.list_folders.return_value = [
            _folder("prod"),
            _folder("temp-uploads", type=FolderType.SYSTEM),
        ]
        with _make_app(container).test_client() as client:
            resp = client.get("/api/folders", headers=_AUTH)
        body = json.loads(resp.data)
        assert [f["certificate_count"] for f in body] == [3, 0]
        assert body[1]["type"] == "system"
        assert body[0]["access_control"] is None

    def test_get_one(self):
        container = _container()
        container.folder_service.get_folder.return_value = _folder(
            "prod", access_control=AccessControl(roles=frozenset({MANAGER})),
        )
        container.folder_service.folder_lineage.return_value = (
            [_folder("root"), _folder("prod", parent_id="root")],
            [_folder("child", parent_id="prod")],
        )
        with _make_app(container).test_client() as client:
            resp = client.get("/api/folders/prod", headers=_AUTH)
        body = json.loads(resp.data)
        assert body["certificate_count"] == 3
        assert body["access_control"] == {"roles": [MANAGER], "users": []}
        assert body["path"] == [
            {"id": "root", "name": "Root"},
            {"id": "prod", "name": "Prod"},
        ]
        assert body["descendants"] == ["child"]
        assert container.folder_service.folder_lineage.call_args.args[1] == "prod"

    def test_folder_certificates(self):
        container = _container()
        container.folder_service.get_folder.return_value = _folder("prod")
        container.certificate_service.list_certificates.return_value = [
            Certificate(
                id=uuid4(),
                common_name="a.example",
                subject="CN=a.example",
                issuer="CN=a.example",
                valid_from=NOW - timedelta(days=1),
                valid_to=NOW + timedelta(days=400),
                algorithm="ed25519",
                serial_number="01",
                fingerprint="AA",
                pem="",
                folder_id="prod",
            ),
        ]
        with _make_app(container).test_client() as client:
            resp = client.get("/api/folders/prod/certificates?status=VALID", headers=_AUTH)
        body = json.loads(resp.data)
        assert body[0]["status"] == "VALID"
        kwargs = container.certificate_service.list_certificates.call_args.kwargs
        assert kwargs["folder_id"] == "prod"
        assert kwargs["status"] == "VALID"


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestCreateRoute:
    def test_create(self):
        container = _container(_user(MANAGER))
        container.folder_service.create_folder.return_value = _folder("new")
        with _make_app(container).test_client() as client:
            resp = client.post(
                "/api/folders",
                headers=_AUTH,
                json={
                    "name": "New",
                    "description": "d",
                    "parentId": "prod",
                    "accessControl": {"roles": ["manager"], "users": []},
                },
            )
        assert resp.status_code == 201
        assert json.loads(resp.data)["certificate_count"] == 0
        call = container.folder_service.create_folder.call_args
        assert call.args[1] == "New"
        assert call.kwargs["parent_id"] == "prod"
        assert call.kwargs["access_control"] == AccessControl(roles=frozenset({"manager"}))

    def test_viewer_rejected_by_role(self):
        container = _container(_user(VIEWER))
        with _make_app(container).test_client() as client:
            resp = client.post("/api/folders", headers=_AUTH, json={"name": "x"})
        assert resp.status_code == 403
        container.folder_service.create_folder.assert_not_called()

    def test_bad_access_control(self):
        with _make_app(_container()).test_client() as client:
            resp = client.post(
                "/api/folders",
                headers=_AUTH,
                json={"name": "x", "accessControl": {"roles": "admin"}},
            )
        assert resp.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [
            {"name": 5},
            {"name": "x", "description": 5},
            {"name": "x", "parentId": [1]},
            {"name": {"first": "x"}},
        ],
    )
    def test_non_string_fields_rejected(self, body):
        container = _container()
        with _make_app(container).test_client() as client:
            resp = client.post("/api/folders", headers=_AUTH, json=body)
        assert resp.status_code == 400
        assert "must be a string" in json.loads(resp.data)["detail"]
        container.folder_service.create_folder.assert_not_called()

    def test_body_must_be_object(self):
        with _make_app(_container()).test_client() as client:
            resp = client.post("/api/folders", headers=_AUTH, data="nope")
        assert resp.status_code == 400


class TestUpdateRoute:
    def test_update_without_acl_leaves_it(self):
        container = _container()
        container.folder_service.update_folder.return_value = _folder("prod")
        with _make_app(container).test_client() as client:
            resp = client.put("/api/folders/prod", headers=_AUTH, json={"name": "Prod"})
        assert resp.status_code == 200
        kwargs = container.folder_service.update_folder.call_args.kwargs
        assert kwargs == {"name": "Prod", "description": None}

    def test_update_clears_acl(self):
        container = _container()
        container.folder_service.update_folder.return_value = _folder("prod")
        with _make_app(container).test_client() as client:
            client.put("/api/folders/prod", headers=_AUTH, json={"accessControl": None})
        kwargs = container.folder_service.update_folder.call_args.kwargs
        assert kwargs["access_control"] is None

    def test_non_string_name_rejected(self):
        container = _container()
        with _make_app(container).test_client() as client:
            resp = client.put("/api/folders/prod", headers=_AUTH, json={"name": 42})
        assert resp.status_code == 400
        container.folder_service.update_folder.assert_not_called()

    def test_system_folder_rename(self):
        container = _container()
        container.folder_service.update_folder.side_effect = SystemFolderProtected(
            "nope", folder_id="temp-uploads",
        )
        with _make_app(container).test_client() as client:
            resp = client.put("/api/folders/temp-uploads", headers=_AUTH, json={"name": "x"})
        assert resp.status_code == 400
        assert json.loads(resp.data)["type"] == SYSTEM_FOLDER_PROTECTED


class TestMoveRoute:
    def test_move(self):
        container = _container()
        container.folder_service.move_folder.return_value = _folder("b", parent_id="a")
        with _make_app(container).test_client() as client:
            resp = client.post("/api/folders/b/move", headers=_AUTH, json={"parentId": "a"})
        assert json.loads(resp.data)["parent_id"] == "a"
        assert container.folder_service.move_folder.call_args.args[1:] == ("b", "a")

    def test_move_to_root(self):
        container = _container()
        container.folder_service.move_folder.return_value = _folder("b")
        with _make_app(container).test_client() as client:
            client.post("/api/folders/b/move", headers=_AUTH, json={"parentId": None})
        assert container.folder_service.move_folder.call_args.args[2] is None

    def test_parent_id_required(self):
        with _make_app(_container()).test_client() as client:
            resp = client.post("/api/folders/b/move", headers=_AUTH, json={})
        assert resp.status_code == 400

    def test_non_string_parent_rejected(self):
        container = _container()
        with _make_app(container).test_client() as client:
            resp = client.post("/api/folders/b/move", headers=_AUTH, json={"parentId": 5})
        assert resp.status_code == 400
        container.folder_service.move_folder.assert_not_called()

    def test_cycle_is_conflict(self):
        container = _container()
        container.folder_service.move_folder.side_effect = CycleError("loop", folder_id="a")
        with _make_app(container).test_client() as client:
            resp = client.post("/api/folders/a/move", headers=_AUTH, json={"parentId": "d"})
        assert resp.status_code == 409
        body = json.loads(resp.data)
        assert body["type"] == FOLDER_CYCLE
        assert body["folderId"] == "a"


class TestDeleteRoute:
    def test_delete_lists_unassigned(self):
        container = _container()
        ids = [uuid4(), uuid4()]
        container.folder_service.delete_folder.return_value = frozenset(ids)
        with _make_app(container).test_client() as client:
            resp = client.delete("/api/folders/prod", headers=_AUTH)
        body = json.loads(resp.data)
        assert body["deleted"] == "prod"
        assert body["unassigned_certificates"] == sorted(str(i) for i in ids)
