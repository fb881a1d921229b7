from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Protocol, Sequence

from opsconsole.core.database import Database, db


_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(RuntimeError):
    """Raised when the backing record store cannot satisfy a request."""


class AmbiguousResultError(StoreError):
    """Raised when a nullable-single fetch matches more than one row."""


@dataclass(frozen=True)
class TableQuery:
    """A single-table read.

    ``equals`` filters are AND-ed together; ``any_of`` filters form one OR
    group that is AND-ed with the rest.
    """

    table: str
    columns: Sequence[str] = ("*",)
    equals: Mapping[str, Any] = field(default_factory=dict)
    any_of: Mapping[str, Any] = field(default_factory=dict)
    not_null: Sequence[str] = ()
    order_by: str | None = None
    limit: int | None = None


class RecordStore(Protocol):
    async def query(self, query: TableQuery) -> list[dict[str, Any]]: ...

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: str,
    ) -> int: ...


async def fetch_maybe_single(store: RecordStore, query: TableQuery) -> dict[str, Any] | None:
    limit = query.limit if query.limit is not None and query.limit < 2 else 2
    rows = await store.query(replace(query, limit=limit))
    if not rows:
        return None
    if len(rows) > 1:
        raise AmbiguousResultError(f"Expected at most one row from {query.table}")
    return rows[0]


def _identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise StoreError(f"Invalid identifier {name!r}")
    return name


def build_select(query: TableQuery) -> tuple[str, tuple[Any, ...]]:
    table = _identifier(query.table)
    columns = ", ".join(
        "*" if column == "*" else _identifier(column) for column in query.columns
    ) or "*"

    conditions: list[str] = []
    params: list[Any] = []
    for column, value in query.equals.items():
        if value is None:
            conditions.append(f"{_identifier(column)} IS NULL")
        else:
            conditions.append(f"{_identifier(column)} = %s")
            params.append(value)
    if query.any_of:
        alternatives = []
        for column, value in query.any_of.items():
            alternatives.append(f"{_identifier(column)} = %s")
            params.append(value)
        conditions.append("(" + " OR ".join(alternatives) + ")")
    for column in query.not_null:
        conditions.append(f"{_identifier(column)} IS NOT NULL")

    sql = f"SELECT {columns} FROM {table}"
    if conditions:
        sql += " WHERE " + " AND ".join(conditions)
    if query.order_by:
        sql += f" ORDER BY {_identifier(query.order_by)}"
    if query.limit is not None:
        sql += f" LIMIT {int(query.limit)}"
    return sql, tuple(params)


def build_upsert(
    table: str,
    columns: Sequence[str],
    *,
    on_conflict: str,
    dialect: str,
) -> str:
    table = _identifier(table)
    conflict = _identifier(on_conflict)
    names = [_identifier(column) for column in columns]
    if conflict not in names:
        raise StoreError(f"Upsert rows for {table} must include {conflict}")
    placeholders = ", ".join("%s" for _ in names)
    updates = [name for name in names if name != conflict]

    sql = f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})"
    if dialect == "sqlite":
        if updates:
            assignments = ", ".join(f"{name} = excluded.{name}" for name in updates)
            return f"{sql} ON CONFLICT({conflict}) DO UPDATE SET {assignments}"
        return f"{sql} ON CONFLICT({conflict}) DO NOTHING"
    if not updates:
        updates = [conflict]
    assignments = ", ".join(f"{name} = VALUES({name})" for name in updates)
    return f"{sql} ON DUPLICATE KEY UPDATE {assignments}"


class DatabaseRecordStore:
    """``RecordStore`` backed by the shared MySQL/SQLite ``Database``."""

    def __init__(self, database: Database | None = None) -> None:
        self._db = database or db

    async def query(self, query: TableQuery) -> list[dict[str, Any]]:
        sql, params = build_select(query)
        try:
            rows = await self._db.fetch_all(sql, params)
        except Exception as exc:
            raise StoreError(f"Query against {query.table} failed: {exc}") from exc
        return [dict(row) for row in rows or []]

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: str,
    ) -> int:
        written = 0
        for row in rows:
            columns = list(row.keys())
            sql = build_upsert(table, columns, on_conflict=on_conflict, dialect=self._db.dialect)
            try:
                await self._db.execute(sql, tuple(row[column] for column in columns))
            except Exception as exc:
                raise StoreError(f"Upsert into {table} failed: {exc}") from exc
            written += 1
        return written
