"""Database subsystem for CertKeeper.

Public API::

    from certkeeper.db import init_database, UnitOfWork
"""

from certkeeper.db.init import apply_schema, init_database, missing_tables
from certkeeper.db.unit_of_work import UnitOfWork

__all__ = [
    "UnitOfWork",
    "apply_schema",
    "init_database",
    "missing_tables",
]
