from __future__ import annotations

from opsconsole.core.database import db
from opsconsole.repositories.store import DatabaseRecordStore, RecordStore


async def require_database() -> None:
    if not db.is_connected():
        await db.connect()
    return None


def get_record_store() -> RecordStore:
    return DatabaseRecordStore(db)
