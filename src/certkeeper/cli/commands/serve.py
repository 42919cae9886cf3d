"""Server startup subcommand."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_serve(config, args) -> None:
    """Initialise the database and start gunicorn (or the dev server)."""
    try:
        from certkeeper.db import init_database

        db = init_database(config.settings.database)
    except Exception as exc:
        if args.debug:
            raise
        sys.stderr.write(f"certkeeper: error: database initialisation failed: {exc}\n")
        sys.exit(1)

    from certkeeper.app import create_app

    app = create_app(config=config, database=db)

    if args.dev:
        log.info("Starting development server (not for production)")
        app.run(
            host=config.settings.server.bind,
            port=config.settings.server.port,
            debug=True,
            use_reloader=True,
        )
        return

    try:
        from certkeeper.server.gunicorn_app import run_gunicorn

        run_gunicorn(app, config.settings.server)
    except RuntimeError as exc:
        sys.stderr.write(f"certkeeper: error: {exc}\n")
        sys.exit(1)
