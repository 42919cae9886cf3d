"""Database management subcommands."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_db(config, args) -> None:
    """Handle db subcommands."""
    if args.db_command == "status":
        _db_status(config)
    elif args.db_command == "migrate":
        _db_migrate(config)
    elif args.db_command == "cleanup":
        _db_cleanup(config)
    else:
        sys.stderr.write(
            "certkeeper: error: expected 'db status', 'db migrate' or 'db cleanup'\n",
        )
        sys.exit(1)


def _db_status(config) -> None:
    """Check database connectivity and that every table exists."""
    from certkeeper.db import init_database, missing_tables

    try:
        db = init_database(config.settings.database)
        db.fetch_value("SELECT 1")
        missing = missing_tables(db)
    except Exception:
        log.exception("Database status check failed")
        sys.exit(1)

    if missing:
        sys.stdout.write(f"connected; missing tables: {', '.join(missing)}\n")
        sys.exit(2)
    sys.stdout.write("connected; schema complete\n")


def _db_migrate(config) -> None:
    """Apply the bundled idempotent schema."""
    from certkeeper.db import apply_schema, init_database

    try:
        db = init_database(config.settings.database)
        apply_schema(db)
    except Exception:
        log.exception("Schema migration failed")
        sys.exit(1)
    sys.stdout.write("schema applied\n")


def _db_cleanup(config) -> None:
    """Delete revocation entries for tokens that have expired anyway."""
    from certkeeper.auth.tokens import TokenBlacklist
    from certkeeper.db import init_database

    try:
        db = init_database(config.settings.database)
        removed = TokenBlacklist(db).cleanup()
    except Exception:
        log.exception("Revoked token cleanup failed")
        sys.exit(1)
    log.info("Removed %d expired revoked token(s)", removed)
    sys.stdout.write(f"removed {removed} expired revoked token(s)\n")
