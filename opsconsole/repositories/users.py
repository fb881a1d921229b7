from __future__ import annotations

from typing import Any, Mapping, Sequence

from opsconsole.models.rows import DirectoryUserRow, MasterUserRow, ProfileRow
from opsconsole.repositories.store import RecordStore, TableQuery, fetch_maybe_single


MASTER_USER_TABLE = "master_user_list"
DIRECTORY_USER_TABLE = "directory_users"
PROFILE_TABLE = "profiles"


async def get_master_user(
    store: RecordStore, *, user_id: str | None = None, email: str | None = None
) -> MasterUserRow | None:
    equals = {"id": user_id} if user_id is not None else {"email": email}
    row = await fetch_maybe_single(store, TableQuery(MASTER_USER_TABLE, equals=equals))
    return MasterUserRow.model_validate(row) if row else None


async def get_directory_user(
    store: RecordStore, *, user_id: str | None = None, email: str | None = None
) -> DirectoryUserRow | None:
    equals = {"id": user_id} if user_id is not None else {"email": email}
    row = await fetch_maybe_single(store, TableQuery(DIRECTORY_USER_TABLE, equals=equals))
    return DirectoryUserRow.model_validate(row) if row else None


async def get_directory_user_by_aad_id(
    store: RecordStore, aad_id: str
) -> DirectoryUserRow | None:
    row = await fetch_maybe_single(
        store,
        TableQuery(
            DIRECTORY_USER_TABLE,
            columns=("id", "deleted_manually"),
            equals={"aad_id": aad_id},
        ),
    )
    return DirectoryUserRow.model_validate(row) if row else None


async def list_active_master_identities(store: RecordStore) -> list[dict[str, Any]]:
    return await store.query(
        TableQuery(MASTER_USER_TABLE, columns=("id", "email"), equals={"is_active": True})
    )


async def list_directory_identities(store: RecordStore) -> list[dict[str, Any]]:
    return await store.query(TableQuery(DIRECTORY_USER_TABLE, columns=("id", "email")))


async def get_profile_by_email(store: RecordStore, email: str) -> ProfileRow | None:
    row = await fetch_maybe_single(
        store,
        TableQuery(PROFILE_TABLE, columns=("id", "email", "branch_id"), equals={"email": email}),
    )
    return ProfileRow.model_validate(row) if row else None


async def upsert_directory_users(
    store: RecordStore, rows: Sequence[Mapping[str, Any]]
) -> int:
    return await store.upsert(DIRECTORY_USER_TABLE, rows, on_conflict="aad_id")
