"""Flask application factory for CertKeeper.

Usage::

    from certkeeper.app import create_app
    from certkeeper.config import get_config
    from certkeeper.db import init_database

    db  = init_database(get_config().settings.database)
    app = create_app(config=get_config(), database=db)
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

from flask import Flask, jsonify

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue
    from pypgkit import Database

    from certkeeper.config.certkeeper_config import CertkeeperConfig
    from certkeeper.config.settings import CertkeeperSettings, ProxySettings

log = logging.getLogger(__name__)

# Room for multipart boundaries and form fields around the file itself.
_MULTIPART_OVERHEAD_BYTES = 64 * 1024


def create_app(
    config: CertkeeperConfig | None = None,
    database: Database | None = None,
) -> Flask:
    """Create and configure the CertKeeper Flask application.

    Parameters
    ----------
    config:
        Loaded :class:`CertkeeperConfig`.  Falls back to
        :func:`get_config` when ``None``.
    database:
        Initialised :class:`Database` singleton.  When provided, the
        dependency container is wired up and the API blueprints are
        registered.  When ``None`` only the health endpoints exist
        (useful for ``--validate-only`` or testing).

    Returns
    -------
    Flask
        Fully configured WSGI application.

    """
    if config is None:
        from certkeeper.config import get_config  # noqa: PLC0415

        config = get_config()

    settings = config.settings

    app = Flask("certkeeper")
    app.config["CERTKEEPER_SETTINGS"] = settings
    app.config["CERTKEEPER_CONFIG"] = config
    app.config["MAX_CONTENT_LENGTH"] = max(
        settings.security.max_request_body_bytes,
        settings.certificates.max_upload_bytes + _MULTIPART_OVERHEAD_BYTES,
    )

    if settings.proxy.enabled:
        _install_proxy(app, settings.proxy)

    from certkeeper.app.errors import register_error_handlers  # noqa: PLC0415
    from certkeeper.app.middleware import register_request_hooks  # noqa: PLC0415

    register_error_handlers(app)
    register_request_hooks(app)
    _register_health(app)

    if database is not None:
        _wire_api(app, database, settings)

    log.info("Flask application created")
    return app


def _install_proxy(app: Flask, proxy: ProxySettings) -> None:
    from certkeeper.app.middleware import TrustedProxyMiddleware  # noqa: PLC0415

    app.wsgi_app = TrustedProxyMiddleware(  # type: ignore[method-assign]
        app.wsgi_app,
        trusted_proxies=proxy.trusted_proxies,
        for_header=proxy.forwarded_for_header,
        proto_header=proxy.forwarded_proto_header,
    )
    log.info("Proxy middleware enabled (trusted: %s)", list(proxy.trusted_proxies))


def _wire_api(app: Flask, database: Database, settings: CertkeeperSettings) -> None:
    """Build the container, mount the blueprints and seed the first admin."""
    from certkeeper.api import register_blueprints  # noqa: PLC0415
    from certkeeper.app.context import Container  # noqa: PLC0415

    container = Container(database, settings)
    app.extensions["container"] = container
    register_blueprints(app)
    log.info("API registered at %s", settings.auth.base_path)

    password = container.user_service.bootstrap_admin()
    if password is not None:
        log.warning("Initial admin user created -- password printed to stderr")
        _announce_initial_admin(settings.auth.initial_admin_username, password)


def _announce_initial_admin(username: str, password: str) -> None:
    lines = (
        "INITIAL ADMIN USER CREATED",
        "",
        f"Username: {username}",
        f"Password: {password}",
        "",
        "Change this password after the first login.",
    )
    width = max(len(line) for line in lines) + 4
    border = "+" + "-" * width + "+"
    body = "\n".join(f"|  {line:<{width - 2}}|" for line in lines)
    sys.stderr.write(f"\n{border}\n{body}\n{border}\n\n")
    sys.stderr.flush()


# ---------------------------------------------------------------------------
# Infrastructure endpoints
# ---------------------------------------------------------------------------


def _register_health(app: Flask) -> None:
    """Register the ``/livez`` and ``/healthz`` endpoints."""
    from certkeeper import __version__  # noqa: PLC0415

    @app.route("/livez")
    def livez() -> ResponseReturnValue:
        """Minimal liveness check."""
        return jsonify({"alive": True, "version": __version__}), 200

    @app.route("/healthz")
    def healthz() -> ResponseReturnValue:
        """Report database reachability, schema completeness and pool usage."""
        result: dict = {"status": "ok", "version": __version__, "checks": {}}
        container = app.extensions.get("container")
        if container is None:
            result["checks"]["database"] = "not_configured"
            return jsonify(result), 200

        checks = result["checks"]
        checks.update(_database_checks(container.db))
        if checks["database"] != "connected" or checks.get("schema") != "complete":
            result["status"] = "degraded"
        pool = _pool_stats(container.db)
        if pool is not None:
            result["pool"] = pool

        return jsonify(result), 200 if result["status"] == "ok" else 503


def _database_checks(db: Database) -> dict[str, str]:
    from certkeeper.db import missing_tables  # noqa: PLC0415

    try:
        db.fetch_value("SELECT 1")
        missing = missing_tables(db)
    except Exception:  # noqa: BLE001
        log.warning("Health check could not reach the database")
        return {"database": "disconnected"}
    if missing:
        return {"database": "connected", "schema": "missing: " + ", ".join(missing)}
    return {"database": "connected", "schema": "complete"}


def _pool_stats(db: Database) -> dict[str, int] | None:
    pool = getattr(db, "_pool", None)
    if pool is None or not hasattr(pool, "get_stats"):
        return None
    try:
        stats = pool.get_stats()
    except Exception:  # noqa: BLE001
        log.debug("Failed to retrieve connection pool stats")
        return None
    return {
        "size": stats.get("pool_size", 0),
        "available": stats.get("pool_available", 0),
        "waiting": stats.get("requests_waiting", 0),
    }
