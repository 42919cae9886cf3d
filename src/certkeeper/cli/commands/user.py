"""User management subcommands."""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_user(config, args) -> None:
    """Handle user subcommands."""
    if args.user_command == "create":
        _create_user(config, args)
    else:
        sys.stderr.write("certkeeper: error: expected 'user create'\n")
        sys.exit(1)


def _create_user(config, args) -> None:
    """Create a user and print the generated password once."""
    from certkeeper.app import create_app
    from certkeeper.app.errors import CertkeeperProblem
    from certkeeper.db import init_database

    db = init_database(config.settings.database)
    app = create_app(config=config, database=db)

    with app.app_context():
        from certkeeper.app.context import get_container

        try:
            user, password = get_container().user_service.create_user(
                args.username,
                email=args.email,
                role=args.role,
            )
        except CertkeeperProblem as exc:
            sys.stderr.write(f"certkeeper: error: {exc.detail}\n")
            sys.exit(1)

    sys.stdout.write(
        f"Created user '{user.username}' (role {user.role})\n"
        f"Password: {password}\n",
    )
