"""WSGI entry point for external servers (gunicorn, uWSGI, etc.).

The config file path is read from the ``CERTKEEPER_CONFIG`` environment
variable.

Example::

    export CERTKEEPER_CONFIG=/etc/certkeeper/config.yaml
    gunicorn "certkeeper.server.wsgi:app"
"""

from __future__ import annotations

import os
import sys

_config_path = os.environ.get("CERTKEEPER_CONFIG")
if _config_path is None:
    sys.stderr.write("CERTKEEPER_CONFIG is not set\n")
    sys.exit(1)

# Bootstrap the singleton before anything else imports it.
from certkeeper.config import CertkeeperConfig  # noqa: E402

_config = CertkeeperConfig(config_file=_config_path)

from certkeeper.logging import configure_logging  # noqa: E402

configure_logging(_config.settings.logging)

from certkeeper.db import init_database  # noqa: E402

_db = init_database(_config.settings.database)

from certkeeper.app import create_app  # noqa: E402

app = create_app(config=_config, database=_db)
