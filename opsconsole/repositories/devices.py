from __future__ import annotations

from typing import Any, Mapping, Sequence

from opsconsole.models.rows import DeviceAssignmentRow, HardwareInventoryRow, ManualDeviceRow
from opsconsole.repositories.store import RecordStore, TableQuery, fetch_maybe_single


HARDWARE_TABLE = "hardware_inventory"
ASSIGNMENT_TABLE = "device_user_assignments"
MANUAL_DEVICE_TABLE = "manual_devices"


def _owner_filter(email: str, user_principal_name: str | None) -> dict[str, Any]:
    return {
        "m365_user_email": email,
        "m365_user_principal_name": user_principal_name or email,
    }


async def get_hardware_branch_name(
    store: RecordStore, *, email: str, user_principal_name: str | None
) -> str | None:
    row = await fetch_maybe_single(
        store,
        TableQuery(
            HARDWARE_TABLE,
            columns=("branch",),
            any_of=_owner_filter(email, user_principal_name),
            not_null=("branch",),
            limit=1,
        ),
    )
    if not row:
        return None
    return HardwareInventoryRow.model_validate(row).branch or None


async def list_hardware_for_user(
    store: RecordStore, *, email: str, user_principal_name: str | None
) -> list[HardwareInventoryRow]:
    rows = await store.query(
        TableQuery(
            HARDWARE_TABLE,
            columns=("serial_number", "device_name", "device_type", "model", "manufacturer", "status"),
            any_of=_owner_filter(email, user_principal_name),
        )
    )
    return [HardwareInventoryRow.model_validate(row) for row in rows]


async def list_current_assignments(store: RecordStore, email: str) -> list[DeviceAssignmentRow]:
    rows = await store.query(
        TableQuery(
            ASSIGNMENT_TABLE,
            columns=("device_serial_number", "device_name", "device_model"),
            equals={"user_email": email, "is_current": True},
        )
    )
    return [DeviceAssignmentRow.model_validate(row) for row in rows]


async def list_active_manual_devices(store: RecordStore, email: str) -> list[ManualDeviceRow]:
    rows = await store.query(
        TableQuery(
            MANUAL_DEVICE_TABLE,
            columns=("device_serial_number", "device_name", "device_type", "device_model"),
            equals={"assigned_user_email": email, "is_active": True},
        )
    )
    return [ManualDeviceRow.model_validate(row) for row in rows]


async def upsert_hardware_devices(
    store: RecordStore, rows: Sequence[Mapping[str, Any]]
) -> int:
    return await store.upsert(HARDWARE_TABLE, rows, on_conflict="m365_device_id")
