from __future__ import annotations

from typing import Any, Mapping

from opsconsole.models.rows import CredentialRow
from opsconsole.repositories.store import RecordStore, TableQuery


CREDENTIAL_TABLE = "vpn_rdp_credentials"


async def list_credentials_for_email(store: RecordStore, email: str) -> list[CredentialRow]:
    rows = await store.query(
        TableQuery(
            CREDENTIAL_TABLE,
            columns=("id", "username", "service_type", "notes", "created_at", "updated_at"),
            equals={"email": email},
        )
    )
    return [CredentialRow.model_validate(row) for row in rows]


async def list_credentials(
    store: RecordStore,
    *,
    service_type: str | None = None,
    with_email_only: bool = False,
) -> list[CredentialRow]:
    equals: dict[str, Any] = {}
    if service_type:
        equals["service_type"] = service_type
    rows = await store.query(
        TableQuery(
            CREDENTIAL_TABLE,
            equals=equals,
            not_null=("email",) if with_email_only else (),
            order_by="username",
        )
    )
    return [CredentialRow.model_validate(row) for row in rows]


async def upsert_credential(store: RecordStore, row: Mapping[str, Any]) -> int:
    return await store.upsert(CREDENTIAL_TABLE, [row], on_conflict="id")
