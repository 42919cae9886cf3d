"""Single-transaction writes for folder-structure changes.

Repository CRUD calls each borrow their own pooled connection.  Moving
or deleting a folder has to read the folder table under a lock, rewrite
folder rows and unassign certificates in one transaction, so
:class:`FolderService` goes through a :class:`UnitOfWork` instead::

    with UnitOfWork(db) as uow:
        uow.lock_table("folders")
        uow.execute("UPDATE certificates SET folder_id = NULL WHERE folder_id = %s", (fid,))
        uow.execute("DELETE FROM folders WHERE id = %s", (fid,))

The transaction commits on a clean exit and rolls back on an exception.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Self

from psycopg.rows import dict_row
from pypgkit import Database

if TYPE_CHECKING:
    from collections.abc import Iterator

Params = tuple | list | None

# PostgreSQL table lock modes, weakest first
_LOCK_MODES = (
    "ACCESS SHARE",
    "ROW SHARE",
    "ROW EXCLUSIVE",
    "SHARE UPDATE EXCLUSIVE",
    "SHARE",
    "SHARE ROW EXCLUSIVE",
    "EXCLUSIVE",
    "ACCESS EXCLUSIVE",
)


class UnitOfWork:
    """Run several statements on one connection inside one transaction.

    Table and column names are interpolated as given; only values are
    parameterised.
    """

    def __init__(self, database: Database | None = None) -> None:
        self._db = database or Database.get_instance()
        self._tx = None
        self._conn = None

    def __enter__(self) -> Self:
        self._tx = self._db.transaction()
        self._conn = self._tx.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            self._tx.__exit__(exc_type, exc_val, exc_tb)
        finally:
            self._tx = None
            self._conn = None

    @contextmanager
    def _cursor(self, *, as_dict: bool = True) -> Iterator[Any]:
        assert self._conn is not None, "UnitOfWork must be used as a context manager"
        if as_dict:
            with self._conn.cursor(row_factory=dict_row) as cur:
                yield cur
        else:
            with self._conn.cursor() as cur:
                yield cur

    def lock_table(self, table: str, mode: str = "SHARE ROW EXCLUSIVE") -> None:
        """Lock *table* until the transaction ends."""
        if mode not in _LOCK_MODES:
            msg = f"Unknown lock mode {mode!r}"
            raise ValueError(msg)
        self.execute(f"LOCK TABLE {table} IN {mode} MODE")

    def execute(self, sql: str, params: Params = None) -> int:
        """Run a statement and return its rowcount."""
        with self._cursor(as_dict=False) as cur:
            cur.execute(sql, params)
            return cur.rowcount

    def fetch_all(self, sql: str, params: Params = None) -> list[dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return cur.fetchall()

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert *row* and return it as stored."""
        columns = ", ".join(row)
        values = ", ".join(["%s"] * len(row))
        sql = f"INSERT INTO {table} ({columns}) VALUES ({values}) RETURNING *"
        with self._cursor() as cur:
            cur.execute(sql, list(row.values()))
            return cur.fetchone()

    def update_where(
        self,
        table: str,
        set_values: dict[str, Any],
        where: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Update rows matching every *where* column; return the first, or None."""
        assignments = ", ".join(f"{col} = %s" for col in set_values)
        conditions = " AND ".join(f"{col} = %s" for col in where)
        sql = f"UPDATE {table} SET {assignments} WHERE {conditions} RETURNING *"
        with self._cursor() as cur:
            cur.execute(sql, [*set_values.values(), *where.values()])
            return cur.fetchone()
