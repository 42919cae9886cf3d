"""CertKeeper command-line entry point.

Usage::

    certkeeper -c /etc/certkeeper/config.yaml
    certkeeper -c config.yaml --dev
    certkeeper -c config.yaml --validate-only
    certkeeper -c config.yaml serve --dev
    certkeeper -c config.yaml db status
    certkeeper -c config.yaml db migrate
    certkeeper -c config.yaml db cleanup
    certkeeper -c config.yaml user create --username alice --role manager
    certkeeper -c config.yaml inspect server.crt
    python -m certkeeper -c config.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from certkeeper import __version__

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certkeeper",
        description="CertKeeper: enterprise X.509 certificate inventory",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        default=False,
        help="Use Flask's development server instead of gunicorn.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the CertKeeper server")
    serve_parser.add_argument("--dev", action="store_true", default=False, dest="dev")

    # db
    db_parser = subparsers.add_parser("db", help="Database management")
    db_sub = db_parser.add_subparsers(dest="db_command")
    db_sub.add_parser("status", help="Check database connectivity and tables")
    db_sub.add_parser("migrate", help="Apply the bundled schema")
    db_sub.add_parser("cleanup", help="Purge expired entries from the token revocation list")

    # user
    user_parser = subparsers.add_parser("user", help="User management")
    user_sub = user_parser.add_subparsers(dest="user_command")
    create_user = user_sub.add_parser("create", help="Create a user")
    create_user.add_argument("--username", required=True, help="Username")
    create_user.add_argument("--email", default="", help="Email address")
    create_user.add_argument(
        "--role",
        default="viewer",
        help="Role id (admin/manager/viewer)",
    )

    # inspect
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Parse a local certificate file and print its metadata",
    )
    inspect_parser.add_argument("file", help="PEM or DER certificate file")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    sys.stderr.write(f"certkeeper: error: {message}\n")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        from certkeeper.config import CertkeeperConfig, ConfigValidationError

        config = CertkeeperConfig(config_file=str(config_path))
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except Exception as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    from certkeeper.logging import configure_logging

    configure_logging(config.settings.logging)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command

    if command == "db":
        from certkeeper.cli.commands.db import run_db

        run_db(config, args)
    elif command == "user":
        from certkeeper.cli.commands.user import run_user

        run_user(config, args)
    elif command == "inspect":
        from certkeeper.cli.commands.inspect import run_inspect

        run_inspect(config, args)
    else:
        # No subcommand = serve
        _print_settings_summary(config)
        from certkeeper.cli.commands.serve import run_serve

        run_serve(config, args)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    sys.stderr.write(
        f"CertKeeper {_get_version()}\n"
        f"  config:    {config.data.get('_source', '?')}\n"
        f"  listen:    {s.server.bind}:{s.server.port} "
        f"({s.server.workers} workers)\n"
        f"  database:  {s.database.user}@{s.database.host}:"
        f"{s.database.port}/{s.database.database}\n"
        f"  api:       {s.auth.base_path}\n"
        f"  expiring:  {s.certificates.expiring_soon_days} days\n",
    )
