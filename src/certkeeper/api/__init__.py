"""REST API layer: Flask blueprint registration.

Call :func:`register_blueprints` during application startup to wire
the API blueprints into the Flask app.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints under ``auth.base_path``."""
    settings = app.config["CERTKEEPER_SETTINGS"]
    base = settings.auth.base_path.rstrip("/")

    from certkeeper.api.auth import auth_bp  # noqa: PLC0415
    from certkeeper.api.certificates import certificates_bp  # noqa: PLC0415
    from certkeeper.api.folders import folders_bp  # noqa: PLC0415
    from certkeeper.api.users import users_bp  # noqa: PLC0415

    app.register_blueprint(auth_bp, url_prefix=base)
    app.register_blueprint(certificates_bp, url_prefix=base)
    app.register_blueprint(folders_bp, url_prefix=base)
    app.register_blueprint(users_bp, url_prefix=base)
    log.debug("Registered API blueprints at %s", base or "/")
