import os
import sys
from pathlib import Path
from typing import Any, Mapping, Sequence

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("CREDENTIAL_ENCRYPTION_KEY", "test-credential-key")
os.environ.setdefault("API_KEY", "test-api-key")
for _name in ("DB_HOST", "DB_USER", "DB_PASSWORD", "DB_NAME", "LOG_FILE_PATH"):
    os.environ.pop(_name, None)

from opsconsole.repositories.store import StoreError, TableQuery  # noqa: E402


class InMemoryRecordStore:
    """Record store over plain dicts that applies ``TableQuery`` filters."""

    def __init__(self, tables: Mapping[str, list[dict[str, Any]]] | None = None) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {
            name: [dict(row) for row in rows] for name, rows in (tables or {}).items()
        }
        self.queries: list[TableQuery] = []
        self.failing: set[str] = set()

    def fail(self, *tables: str) -> "InMemoryRecordStore":
        self.failing.update(tables)
        return self

    @staticmethod
    def _matches(row: Mapping[str, Any], query: TableQuery) -> bool:
        for column, value in query.equals.items():
            if value is None:
                if row.get(column) is not None:
                    return False
            elif row.get(column) != value:
                return False
        if query.any_of and not any(
            row.get(column) == value for column, value in query.any_of.items()
        ):
            return False
        return all(row.get(column) is not None for column in query.not_null)

    async def query(self, query: TableQuery) -> list[dict[str, Any]]:
        self.queries.append(query)
        if query.table in self.failing:
            raise StoreError(f"{query.table} is unavailable")
        rows = [row for row in self.tables.get(query.table, []) if self._matches(row, query)]
        if query.order_by:
            rows.sort(key=lambda row: str(row.get(query.order_by) or ""))
        if query.limit is not None:
            rows = rows[: query.limit]
        if tuple(query.columns) != ("*",):
            rows = [{column: row.get(column) for column in query.columns} for row in rows]
        return [dict(row) for row in rows]

    async def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        *,
        on_conflict: str,
    ) -> int:
        if table in self.failing:
            raise StoreError(f"{table} is unavailable")
        existing = self.tables.setdefault(table, [])
        for row in rows:
            for current in existing:
                if current.get(on_conflict) == row[on_conflict]:
                    current.update(row)
                    break
            else:
                existing.append(dict(row))
        return len(rows)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def make_store():
    return InMemoryRecordStore
