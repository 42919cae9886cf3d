"""Database initialisation from CertKeeper configuration.

Usage::

    from certkeeper.config import get_config
    from certkeeper.db.init import init_database

    init_database(get_config().settings.database)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pypgkit import Database, DatabaseConfig

if TYPE_CHECKING:
    from certkeeper.config.settings import DatabaseSettings

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

EXPECTED_TABLES = ("roles", "users", "folders", "certificates", "revoked_tokens")

log = logging.getLogger(__name__)


def _settings_to_config(settings: DatabaseSettings) -> DatabaseConfig:
    """Map CertKeeper DatabaseSettings to PyPGKit DatabaseConfig."""
    return DatabaseConfig(
        host=settings.host,
        port=settings.port,
        database=settings.database,
        user=settings.user,
        password=settings.password,
        sslmode=settings.sslmode,
        min_connections=settings.min_connections,
        max_connections=settings.max_connections,
        connection_timeout=settings.connection_timeout,
    )


def init_database(settings: DatabaseSettings) -> Database:
    """Initialise the :class:`Database` singleton from config settings.

    If the singleton is already initialised, returns the existing instance.

    Parameters
    ----------
    settings:
        The ``database`` section from :class:`CertkeeperSettings`.

    Returns
    -------
    Database
        The ready-to-use database instance.

    """
    if Database.is_initialized():
        log.debug("Database already initialised, returning existing instance")
        return Database.get_instance()

    config = _settings_to_config(settings)

    log.info(
        "Initialising database connection: %s@%s:%s/%s",
        settings.user,
        settings.host,
        settings.port,
        settings.database,
    )

    db = Database.init(
        config=config,
        schema_path=SCHEMA_PATH if settings.auto_setup else None,
        auto_setup=settings.auto_setup,
        interactive=False,
    )

    log.info("Database initialised successfully")
    return db


def apply_schema(db: Database) -> None:
    """Run ``schema.sql`` against *db*.

    Every statement is idempotent, so this doubles as the upgrade path.
    """
    log.info("Applying schema from %s", SCHEMA_PATH)
    db.execute(SCHEMA_PATH.read_text(encoding="utf-8"))


def missing_tables(db: Database) -> list[str]:
    """Names from :data:`EXPECTED_TABLES` not present in ``public``."""
    rows = db.fetch_all(
        "SELECT table_name FROM information_schema.tables "
        "WHERE table_schema = 'public' AND table_name = ANY(%s)",
        (list(EXPECTED_TABLES),),
        as_dict=True,
    )
    present = {r["table_name"] for r in rows}
    return [t for t in EXPECTED_TABLES if t not in present]
