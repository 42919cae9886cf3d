"""Tests for certkeeper.app.factory and certkeeper.app.middleware."""

from __future__ import annotations

import json
import logging
from unittest.mock import MagicMock, patch

import pytest
import yaml

from certkeeper import __version__
from certkeeper.access.roles import DEFAULT_ROLES
from certkeeper.app import create_app
from certkeeper.app.context import Container, get_container
from certkeeper.app.middleware import TrustedProxyMiddleware
from certkeeper.config import CertkeeperConfig
from certkeeper.db.init import EXPECTED_TABLES
from certkeeper.models.user import Role

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def config(tmp_config_file):
    return CertkeeperConfig(config_file=tmp_config_file)


def _config_with(tmp_path, data):
    path = tmp_path / "override.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return CertkeeperConfig(config_file=path)


def _fake_container(db_ok=True):
    container = MagicMock()
    container.db._pool = None
    container.db.fetch_all.return_value = [{"table_name": t} for t in EXPECTED_TABLES]
    if not db_ok:
        container.db.fetch_value.side_effect = OSError("connection refused")
    container.user_service.bootstrap_admin.return_value = None
    return container


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateApp:
    def test_without_database(self, config):
        app = create_app(config=config)
        assert app.config["CERTKEEPER_SETTINGS"] is config.settings
        assert "container" not in app.extensions
        with app.app_context(), pytest.raises(RuntimeError, match="container"):
            get_container()

    def test_falls_back_to_global_config(self, config):
        app = create_app()
        assert app.config["CERTKEEPER_CONFIG"] is config

    def test_max_content_length_covers_uploads(self, config):
        app = create_app(config=config)
        expected = config.settings.certificates.max_upload_bytes + 64 * 1024
        assert app.config["MAX_CONTENT_LENGTH"] == expected

    def test_container_and_blueprints(self, config):
        container = _fake_container()
        with patch("certkeeper.app.context.Container", return_value=container):
            app = create_app(config=config, database=MagicMock())
        assert app.extensions["container"] is container
        assert {"auth", "certificates", "folders", "users"} <= set(app.blueprints)
        rules = {r.rule for r in app.url_map.iter_rules()}
        assert "/api/certificates" in rules
        assert "/api/folders/<folder_id>/move" in rules
        assert "/api/users/<uuid:user_id>" in rules
        assert "/api/auth/change-password" in rules

    def test_bootstrap_banner(self, config, capsys):
        container = _fake_container()
        container.user_service.bootstrap_admin.return_value = "Init1al-Pass!"
        with patch("certkeeper.app.context.Container", return_value=container):
            create_app(config=config, database=MagicMock())
        err = capsys.readouterr().err
        assert "INITIAL ADMIN USER CREATED" in err
        assert "Init1al-Pass!" in err

    def test_proxy_middleware_installed(self, tmp_path, minimal_config_data):
        data = dict(minimal_config_data, proxy={"enabled": True, "trusted_proxies": ["10.0.0.0/8"]})
        app = create_app(config=_config_with(tmp_path, data))
        assert isinstance(app.wsgi_app, TrustedProxyMiddleware)


# -{75}
# Container
# -{75}


class TestContainerRoles:
    def test_builtin_roles_when_table_empty(self, config):
        container = Container(MagicMock(), config.settings)
        with patch.object(container.roles, "find_all", return_value=[]):
            assert {r.id for r in container.role_table()} == set(DEFAULT_ROLES)

    def test_roles_table_reaches_user_service_and_policy(self, config):
        container = Container(MagicMock(), config.settings)
        auditor = Role(id="auditor", name="Auditor", permissions=frozenset({"certificates:read"}))
        with (
            patch.object(container.roles, "find_all", return_value=[auditor]),
            patch.object(container.folders, "find_all", return_value=[]),
        ):
            assert container.user_service.list_roles() == [auditor]
            user = MagicMock(role="auditor", active=True)
            assert container.policy().has_permission(user, "certificates:read")


# ---------------------------------------------------------------------------
# Health endpoints
# ---------------------------------------------------------------------------


class TestHealth:
    def test_livez(self, config):
        with create_app(config=config).test_client() as client:
            resp = client.get("/livez")
        assert resp.status_code == 200
        assert json.loads(resp.data) == {"alive": True, "version": __version__}

    def test_healthz_without_database(self, config):
        with create_app(config=config).test_client() as client:
            resp = client.get("/healthz")
        body = json.loads(resp.data)
        assert resp.status_code == 200
        assert body["checks"]["database"] == "not_configured"

    def test_healthz_connected(self, config):
        container = _fake_container()
        container.db._pool = MagicMock()
        container.db._pool.get_stats.return_value = {"pool_size": 4, "pool_available": 3}
        with patch("certkeeper.app.context.Container", return_value=container):
            app = create_app(config=config, database=MagicMock())
        with app.test_client() as client:
            resp = client.get("/healthz")
        body = json.loads(resp.data)
        assert body["status"] == "ok"
        assert body["checks"]["database"] == "connected"
        assert body["pool"] == {"size": 4, "available": 3, "waiting": 0}

    def test_healthz_degraded(self, config):
        with patch("certkeeper.app.context.Container", return_value=_fake_container(False)):
            app = create_app(config=config, database=MagicMock())
        with app.test_client() as client:
            resp = client.get("/healthz")
        assert resp.status_code == 503
        assert json.loads(resp.data)["status"] == "degraded"

    def test_healthz_missing_tables(self, config):
        container = _fake_container()
        container.db.fetch_all.return_value = [{"table_name": "users"}]
        with patch("certkeeper.app.context.Container", return_value=container):
            app = create_app(config=config, database=MagicMock())
        with app.test_client() as client:
            resp = client.get("/healthz")
        body = json.loads(resp.data)
        assert resp.status_code == 503
        assert body["checks"]["schema"].startswith("missing: roles")


# ---------------------------------------------------------------------------
# Request hooks
# ---------------------------------------------------------------------------


class TestRequestHooks:
    def test_security_headers_and_hsts(self, config):
        with create_app(config=config).test_client() as client:
            resp = client.get("/livez")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"
        assert resp.headers["Strict-Transport-Security"].startswith("max-age=63072000")
        assert resp.headers["X-Request-ID"]

    def test_no_hsts_for_plain_http(self, tmp_path, minimal_config_data):
        data = dict(minimal_config_data, server={"external_url": "http://certs.local"})
        with create_app(config=_config_with(tmp_path, data)).test_client() as client:
            resp = client.get("/livez")
        assert "Strict-Transport-Security" not in resp.headers

    def test_api_responses_not_cached(self, config):
        with create_app(config=config).test_client() as client:
            api = client.get("/api/certificates")
            health = client.get("/livez")
        assert api.headers["Cache-Control"] == "no-store"
        assert "Cache-Control" not in health.headers

    def test_request_id_passthrough(self, config):
        with create_app(config=config).test_client() as client:
            resp = client.get("/livez", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"

    def test_access_log(self, config, caplog):
        with caplog.at_level(logging.INFO, logger="certkeeper.access"):
            with create_app(config=config).test_client() as client:
                client.get("/nowhere")
        record = next(r for r in caplog.records if r.name == "certkeeper.access")
        assert record.status == 404
        assert record.levelno == logging.WARNING
        assert "GET /nowhere 404" in record.getMessage()


# ---------------------------------------------------------------------------
# Trusted proxy middleware
# ---------------------------------------------------------------------------


class TestTrustedProxyMiddleware:
    def _call(self, mw, environ):
        seen = {}

        def app(env, start_response):
            seen.update(env)
            return []

        mw.app = app
        mw(environ, lambda *a: None)
        return seen

    def test_trusted_proxy_rewrites(self):
        mw = TrustedProxyMiddleware(None, trusted_proxies=["10.0.0.0/8"])
        env = self._call(
            mw,
            {
                "REMOTE_ADDR": "10.0.0.5",
                "HTTP_X_FORWARDED_FOR": "203.0.113.7, 10.0.0.9",
                "HTTP_X_FORWARDED_PROTO": "HTTPS",
                "wsgi.url_scheme": "http",
            },
        )
        assert env["REMOTE_ADDR"] == "203.0.113.7"
        assert env["wsgi.url_scheme"] == "https"

    def test_untrusted_peer_ignored(self):
        mw = TrustedProxyMiddleware(None, trusted_proxies=["10.0.0.0/8"])
        env = self._call(
            mw,
            {"REMOTE_ADDR": "198.51.100.1", "HTTP_X_FORWARDED_FOR": "1.2.3.4"},
        )
        assert env["REMOTE_ADDR"] == "198.51.100.1"

    def test_empty_allowlist_trusts_nobody(self):
        mw = TrustedProxyMiddleware(None, trusted_proxies=["not-a-cidr"])
        env = self._call(
            mw,
            {"REMOTE_ADDR": "127.0.0.1", "HTTP_X_FORWARDED_FOR": "1.2.3.4"},
        )
        assert env["REMOTE_ADDR"] == "127.0.0.1"
