"""Unit tests for certkeeper.config -- loading, validation and settings."""

from __future__ import annotations

import copy
import json
import logging

import pytest
import yaml

from certkeeper.config import (
    CertkeeperConfig,
    ConfigValidationError,
    build_settings,
    get_config,
)
from certkeeper.config.certkeeper_config import _resolve_env_vars, load_config_file

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _deep_merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _write(tmp_path, data, name="config.yaml"):
    path = tmp_path / name
    if name.endswith(".json"):
        path.write_text(json.dumps(data), encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def _load(tmp_path, minimal, **overrides):
    return CertkeeperConfig(config_file=_write(tmp_path, _deep_merge(minimal, overrides)))


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoading:
    def test_minimal_config_loads(self, tmp_config_file):
        cfg = CertkeeperConfig(config_file=tmp_config_file)
        assert cfg.settings.database.database == "certkeeper_test"
        assert cfg.settings.certificates.expiring_soon_days == 30
        assert cfg.settings.folders.default_upload_folder == "temp-uploads"

    def test_get_config_returns_singleton(self, tmp_config_file):
        cfg = CertkeeperConfig(config_file=tmp_config_file)
        assert get_config() is cfg

    def test_get_config_before_init(self):
        with pytest.raises(RuntimeError, match="not initialised"):
            get_config()

    def test_json_file(self, tmp_path, minimal_config_data):
        path = _write(tmp_path, minimal_config_data, "config.json")
        cfg = CertkeeperConfig(config_file=path)
        assert cfg.settings.auth.base_path == "/api"

    def test_dotted_get(self, tmp_config_file):
        cfg = CertkeeperConfig(config_file=tmp_config_file)
        assert cfg.get("database.user") == "testuser"
        assert cfg.get("database.missing", default="x") == "x"
        assert cfg.get("auth.token_secret.deeper") is None

    def test_source_recorded(self, tmp_config_file):
        cfg = CertkeeperConfig(config_file=tmp_config_file)
        assert cfg.data["_source"] == str(tmp_config_file)
        assert str(tmp_config_file) in repr(cfg)

    def test_empty_file_fails_schema(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="database"):
            CertkeeperConfig(config_file=path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigValidationError, match="mapping"):
            load_config_file(path)

    def test_extensions_lowercased(self, tmp_path, minimal_config_data):
        cfg = _load(
            tmp_path, minimal_config_data,
            certificates={"allowed_extensions": [".PEM", ".Crt"]},
        )
        assert cfg.settings.certificates.allowed_extensions == (".pem", ".crt")


# ---------------------------------------------------------------------------
# Environment variables
# ---------------------------------------------------------------------------


class TestEnvVars:
    def test_variable_substituted(self, monkeypatch):
        monkeypatch.setenv("CK_DB_HOST", "db.internal")
        data = {"database": {"host": "${CK_DB_HOST}"}}
        _resolve_env_vars(data)
        assert data["database"]["host"] == "db.internal"

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("CK_PORT", raising=False)
        data = {"server": {"port": "${CK_PORT:-8443}"}}
        _resolve_env_vars(data)
        assert data["server"]["port"] == 8443

    def test_numeric_strings_coerced(self, monkeypatch):
        monkeypatch.setenv("CK_WORKERS", "8")
        monkeypatch.setenv("CK_PROXY", "true")
        data = {"server": {"workers": "${CK_WORKERS}"}, "proxy": {"enabled": "${CK_PROXY}"}}
        _resolve_env_vars(data)
        assert data["server"]["workers"] == 8
        assert data["proxy"]["enabled"] is True

    def test_plain_strings_kept(self, monkeypatch):
        monkeypatch.setenv("CK_SECRET", "0123: not yaml {")
        data = {"auth": {"token_secret": "${CK_SECRET}"}}
        _resolve_env_vars(data)
        assert data["auth"]["token_secret"] == "0123: not yaml {"

    def test_lists_resolved(self, monkeypatch):
        monkeypatch.setenv("CK_PROXY_CIDR", "10.0.0.0/8")
        data = {"proxy": {"trusted_proxies": ["${CK_PROXY_CIDR}", "127.0.0.1"]}}
        _resolve_env_vars(data)
        assert data["proxy"]["trusted_proxies"] == ["10.0.0.0/8", "127.0.0.1"]

    def test_unset_without_default(self, monkeypatch):
        monkeypatch.delenv("CK_NOPE", raising=False)
        with pytest.raises(ConfigValidationError) as exc_info:
            _resolve_env_vars({"database": {"password": "${CK_NOPE}"}})
        assert "database.password" in exc_info.value.errors[0]

    def test_env_resolved_before_schema(self, tmp_path, minimal_config_data, monkeypatch):
        monkeypatch.setenv("CK_LEVEL", "LOUD")
        with pytest.raises(ConfigValidationError, match="logging.level"):
            _load(tmp_path, minimal_config_data, logging={"level": "${CK_LEVEL}"})


# ---------------------------------------------------------------------------
# Schema validation
# ---------------------------------------------------------------------------


class TestSchema:
    def test_unknown_top_level_key(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="Additional properties"):
            _load(tmp_path, minimal_config_data, nonsense=True)

    def test_missing_database_user(self, tmp_path, minimal_config_data):
        data = copy.deepcopy(minimal_config_data)
        del data["database"]["user"]
        with pytest.raises(ConfigValidationError, match="user"):
            CertkeeperConfig(config_file=_write(tmp_path, data))

    def test_port_out_of_range(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="server.port"):
            _load(tmp_path, minimal_config_data, server={"port": 70000})

    def test_all_errors_reported(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError) as exc_info:
            _load(
                tmp_path, minimal_config_data,
                server={"port": 0, "workers": 0},
            )
        assert len(exc_info.value.errors) == 2


# ---------------------------------------------------------------------------
# Cross-field checks
# ---------------------------------------------------------------------------


class TestAdditionalChecks:
    def test_trailing_slash_external_url(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="must not end with '/'"):
            _load(tmp_path, minimal_config_data, server={"external_url": "https://x/"})

    def test_token_secret_required(self, tmp_path, minimal_config_data):
        data = copy.deepcopy(minimal_config_data)
        del data["auth"]
        with pytest.raises(ConfigValidationError, match="token_secret is required"):
            CertkeeperConfig(config_file=_write(tmp_path, data))

    def test_token_secret_too_short(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="too short"):
            _load(tmp_path, minimal_config_data, auth={"token_secret": "short"})

    @pytest.mark.parametrize("base_path", ["/", "/healthz", "/livez/"])
    def test_base_path_collisions(self, tmp_path, minimal_config_data, base_path):
        with pytest.raises(ConfigValidationError, match="base_path"):
            _load(tmp_path, minimal_config_data, auth={"base_path": base_path})

    def test_extension_without_dot(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="must start with '.'"):
            _load(
                tmp_path, minimal_config_data,
                certificates={"allowed_extensions": ["pem"]},
            )

    def test_pool_bounds(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="min_connections"):
            _load(
                tmp_path, minimal_config_data,
                database={"min_connections": 5, "max_connections": 2},
            )

    def test_proxy_without_trusted_cidrs(self, tmp_path, minimal_config_data):
        with pytest.raises(ConfigValidationError, match="trusted_proxies"):
            _load(tmp_path, minimal_config_data, proxy={"enabled": True})

    def test_short_hsts_is_a_warning(self, tmp_path, minimal_config_data, caplog):
        with caplog.at_level(logging.WARNING):
            cfg = _load(
                tmp_path, minimal_config_data,
                security={"hsts_max_age_seconds": 60},
            )
        assert cfg.settings.security.hsts_max_age_seconds == 60
        assert "hsts_max_age_seconds" in caplog.text

    def test_low_pool_is_a_warning(self, tmp_path, minimal_config_data, caplog):
        with caplog.at_level(logging.WARNING):
            _load(
                tmp_path, minimal_config_data,
                server={"workers": 8},
                database={"max_connections": 4, "min_connections": 1},
            )
        assert "max_connections" in caplog.text


# ---------------------------------------------------------------------------
# Settings builders
# ---------------------------------------------------------------------------


class TestBuildSettings:
    def test_defaults(self, minimal_config_data):
        settings = build_settings(minimal_config_data)
        assert settings.server.port == 8080
        assert settings.security.login.max_attempts == 5
        assert settings.auth.token_expiry_seconds == 3600
        assert settings.logging.audit.enabled is True
        assert settings.certificates.max_upload_bytes == 5 * 1024 * 1024

    def test_settings_are_frozen(self, minimal_config_data):
        from dataclasses import FrozenInstanceError

        settings = build_settings(minimal_config_data)
        with pytest.raises(FrozenInstanceError):
            settings.server.port = 1

    def test_trusted_proxies_are_tuple(self, minimal_config_data):
        data = _deep_merge(minimal_config_data, {"proxy": {"trusted_proxies": ["10.0.0.1"]}})
        assert build_settings(data).proxy.trusted_proxies == ("10.0.0.1",)
