"""CertKeeper configuration loader.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    CertkeeperConfig(config_file="/etc/certkeeper/config.yaml")

    # 2. Any module retrieves it afterwards
    from certkeeper.config import get_config
    cfg = get_config()
    cfg.settings.certificates.expiring_soon_days  # typed access

    # 3. Dynamic access
    cfg.get("database.host", default="localhost")

Loading runs in four steps: read YAML/JSON, resolve ``${VAR}`` /
``${VAR:-default}`` references, validate against the bundled
``schema.json``, then run cross-field checks.  Every problem found by a
step is reported at once through :class:`ConfigValidationError`.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from certkeeper.config.settings import CertkeeperSettings, build_settings

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MIN_TOKEN_SECRET_LENGTH = 16
_MIN_HSTS_ONE_DAY = 86400
_YAML_SUFFIXES = (".yaml", ".yml")

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: CertkeeperConfig | None = None


def get_config() -> CertkeeperConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`CertkeeperConfig` has not
    been created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "CertkeeperConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(
            msg,
        )
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(Exception):
    """Raised when schema or cross-field validation finds problems."""

    def __init__(self, errors: list[str]) -> None:
        """Store *errors* and build a human-readable message."""
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _coerce_env_scalar(value: str) -> Any:  # noqa: ANN401
    """Read a substituted string as a YAML scalar (``"8080"`` -> ``8080``).

    Environment variables are always strings; without this a
    ``port: ${PORT:-8080}`` entry would fail the schema's integer type.
    """
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    if isinstance(parsed, (bool, int, float)):
        return parsed
    return value


def _resolve_value(value: str, path: str) -> Any:  # noqa: ANN401
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return _coerce_env_scalar(resolved)
    if fallback is not None:
        return _coerce_env_scalar(fallback)
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML or JSON config file into a dict."""
    source = Path(path)
    with source.open(encoding="utf-8") as f:
        if source.suffix in _YAML_SUFFIXES:
            data = yaml.safe_load(f)
        else:
            data = json.load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Configuration root in {source} must be a mapping"
        raise ConfigValidationError([msg])
    return data


def load_schema() -> dict[str, Any]:
    return json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))


def validate_schema(data: dict[str, Any]) -> None:
    """Validate *data* against the bundled JSON schema.

    Raises:
        ConfigValidationError: Listing every schema violation.
    """
    validator = Draft202012Validator(load_schema())
    errors = []
    for err in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        location = ".".join(str(p) for p in err.absolute_path) or "<root>"
        errors.append(f"{location}: {err.message}")
    if errors:
        raise ConfigValidationError(errors)


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CertkeeperConfig:
    """Central configuration for the CertKeeper server.

    The JSON schema is bundled at ``config/schema.json``; users supply
    only ``config_file``.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.
    """

    def __init__(self, *, config_file: str | Path) -> None:
        """Load, validate and publish the configuration singleton.

        Parameters
        ----------
        config_file:
            Path to the YAML/JSON configuration file.

        """
        global _instance  # noqa: PLW0603

        self._data = self._load(config_file)
        validate_schema(self._data)
        self.additional_checks()
        self._settings: CertkeeperSettings = build_settings(self._data)
        _instance = self

    # -- lifecycle ----------------------------------------------------------

    @staticmethod
    def _load(config_file: str | Path) -> dict[str, Any]:
        """Load config file then resolve ``${VAR}`` env-var references.

        Runs env-var resolution **before** schema validation so that
        substituted values (e.g. ``${LOG_LEVEL:-INFO}``) are checked
        against enum constraints in the schema.
        """
        data = load_config_file(config_file)
        _resolve_env_vars(data)
        data["_source"] = str(config_file)
        return data

    # -- access -------------------------------------------------------------

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    @property
    def settings(self) -> CertkeeperSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    def get(self, path: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a dotted path in the raw data (``"database.host"``)."""
        node: Any = self._data
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- cross-field validation ---------------------------------------------

    def additional_checks(self) -> None:
        """Semantic & cross-field validation.

        Runs after schema validation.  Errors are fatal; warnings are
        logged.
        """
        errors: list[str] = []
        warnings: list[str] = []

        server = self.data.get("server") or {}
        security = self.data.get("security") or {}
        auth = self.data.get("auth") or {}
        certificates = self.data.get("certificates") or {}
        proxy = self.data.get("proxy") or {}

        # -- server --
        ext_url = server.get("external_url", "")
        if ext_url.endswith("/"):
            errors.append(
                f"server.external_url must not end with '/' (got '{ext_url}')",
            )

        # -- auth --
        token_secret = auth.get("token_secret", "")
        if not token_secret:
            errors.append(
                "auth.token_secret is required "
                f"(min {_MIN_TOKEN_SECRET_LENGTH} characters)",
            )
        elif len(token_secret) < _MIN_TOKEN_SECRET_LENGTH:
            errors.append(
                "auth.token_secret is too short "
                f"({len(token_secret)} chars) "
                f"- minimum {_MIN_TOKEN_SECRET_LENGTH} characters required",
            )
        base_path = auth.get("base_path", "/api")
        if base_path.rstrip("/") in {"", "/livez", "/healthz"}:
            errors.append(
                f"auth.base_path ({base_path!r}) must be a non-root prefix "
                "that does not collide with the health endpoints",
            )

        # -- certificates --
        for ext in certificates.get("allowed_extensions", []):
            if not ext.startswith("."):
                errors.append(
                    f"certificates.allowed_extensions entry '{ext}' must start with '.'",
                )

        max_upload = certificates.get("max_upload_bytes", 5 * 1024 * 1024)
        max_body = security.get("max_request_body_bytes", 65536)
        if max_body > max_upload:
            warnings.append(
                f"security.max_request_body_bytes ({max_body}) exceeds "
                f"certificates.max_upload_bytes ({max_upload}); JSON bodies "
                "may be larger than certificate uploads",
            )

        # -- database --
        db = self.data.get("database") or {}
        min_conn = db.get("min_connections", 2)
        max_conn = db.get("max_connections", 10)
        if min_conn > max_conn:
            errors.append(
                f"database.min_connections ({min_conn}) must be <= "
                f"database.max_connections ({max_conn})",
            )
        workers = server.get("workers", 4)
        if max_conn < workers:
            warnings.append(
                f"database.max_connections ({max_conn}) is low relative to "
                f"server.workers ({workers}); recommended at least 1 "
                "connection per worker",
            )

        # -- proxy --
        if proxy.get("enabled") and not proxy.get("trusted_proxies"):
            errors.append(
                "proxy.enabled is true but proxy.trusted_proxies is empty; "
                "configure trusted proxy CIDRs or disable proxy",
            )

        # -- HSTS --
        hsts_max_age = security.get("hsts_max_age_seconds", 63072000)
        if 0 < hsts_max_age < _MIN_HSTS_ONE_DAY:
            warnings.append(
                f"security.hsts_max_age_seconds ({hsts_max_age}) is "
                f"less than 1 day ({_MIN_HSTS_ONE_DAY}); consider a "
                "longer duration for effective HSTS",
            )

        for w in warnings:
            log.warning("Config warning: %s", w)

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        """Return a developer-friendly representation."""
        source = self.data.get("_source", "?")
        return f"<CertkeeperConfig config_file={source}>"
