from __future__ import annotations

from opsconsole.models.rows import BranchRow
from opsconsole.repositories.store import RecordStore, TableQuery, fetch_maybe_single


BRANCH_TABLE = "branches"


async def get_branch_by_id(store: RecordStore, branch_id: str) -> BranchRow | None:
    row = await fetch_maybe_single(
        store, TableQuery(BRANCH_TABLE, columns=("id", "name"), equals={"id": branch_id})
    )
    return BranchRow.model_validate(row) if row else None


async def get_branch_by_name(store: RecordStore, name: str) -> BranchRow | None:
    row = await fetch_maybe_single(
        store, TableQuery(BRANCH_TABLE, columns=("id", "name"), equals={"name": name})
    )
    return BranchRow.model_validate(row) if row else None
