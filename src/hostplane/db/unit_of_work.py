"""Transaction-scoped SQL helper.

:class:`pypgkit.BaseRepository` methods each borrow their own pooled
connection, so a sequence of them is not atomic.  Replacing a zone's
record rows (panel ``dns_records`` or PowerDNS ``records``) must be, so
those writes go through a :class:`UnitOfWork`::

    with UnitOfWork() as uow:
        uow.delete_where("pdns.records", {"domain_id": 7})
        uow.insert_many("pdns.records", rows)
        # COMMIT on clean exit; ROLLBACK on exception
"""

from __future__ import annotations

from typing import Any, Self

from psycopg.rows import dict_row
from pypgkit import Database


class UnitOfWork:
    """Run several statements on one connection inside one transaction.

    Table and column names are interpolated verbatim; only values are
    parameterised.  Callers pass identifiers from code, never from input.
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
        self._tx.__exit__(exc_type, exc_val, exc_tb)
        self._tx = None
        self._conn = None

    def _cursor(self, *, rows: bool = False):
        if self._conn is None:
            msg = "UnitOfWork must be used as a context manager"
            raise RuntimeError(msg)
        if rows:
            return self._conn.cursor(row_factory=dict_row)
        return self._conn.cursor()

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """INSERT one row and return it via ``RETURNING *``."""
        columns = ", ".join(row)
        placeholders = ", ".join(["%s"] * len(row))
        sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *"  # noqa: S608
        with self._cursor(rows=True) as cur:
            cur.execute(sql, list(row.values()))
            return cur.fetchone()

    def insert_many(self, table: str, rows: list[dict[str, Any]]) -> int:
        """INSERT rows sharing the column set of the first one.

        Returns
        -------
        int
            Number of rows written.

        """
        if not rows:
            return 0
        columns = list(rows[0])
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "  # noqa: S608
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        with self._cursor() as cur:
            cur.executemany(sql, [[row[c] for c in columns] for row in rows])
        return len(rows)

    def delete_where(self, table: str, where: dict[str, Any]) -> int:
        """DELETE rows matching every column in *where*; return the rowcount."""
        clause = " AND ".join(f"{col} = %s" for col in where)
        with self._cursor() as cur:
            cur.execute(f"DELETE FROM {table} WHERE {clause}", list(where.values()))  # noqa: S608
            return cur.rowcount

    def execute(self, sql: str, params: tuple | list | None = None) -> int:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return cur.rowcount

    def fetch_one(self, sql: str, params: tuple | list | None = None) -> dict[str, Any] | None:
        with self._cursor(rows=True) as cur:
            cur.execute(sql, params)
            return cur.fetchone()

    def fetch_all(self, sql: str, params: tuple | list | None = None) -> list[dict[str, Any]]:
        with self._cursor(rows=True) as cur:
            cur.execute(sql, params)
            return cur.fetchall()
