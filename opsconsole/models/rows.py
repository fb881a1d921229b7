"""Typed views over rows returned by the record store.

Each model maps one table; unknown columns are ignored so that wider
``SELECT *`` results validate cleanly.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator


def _serialize_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


class _Row(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class _TimestampedRow(_Row):
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _timestamp_to_text(cls, value: Any) -> Any:
        return _serialize_datetime(value)


class BranchRow(_Row):
    id: str
    name: Optional[str] = None


class MasterUserRow(_TimestampedRow):
    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    user_principal_name: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    branch_id: Optional[str] = None
    vpn_username: Optional[str] = None
    rdp_username: Optional[str] = None
    is_active: Optional[bool] = None


class DirectoryUserRow(_TimestampedRow):
    id: str
    aad_id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    user_principal_name: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    account_enabled: Optional[bool] = None
    deleted_manually: bool = False


class ProfileRow(_Row):
    id: Optional[str] = None
    email: Optional[str] = None
    branch_id: Optional[str] = None


class CredentialRow(_TimestampedRow):
    id: str
    username: str
    password: Optional[str] = None
    service_type: str
    email: Optional[str] = None
    notes: Optional[str] = None


class HardwareInventoryRow(_Row):
    serial_number: Optional[str] = None
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    status: Optional[str] = None
    branch: Optional[str] = None


class DeviceAssignmentRow(_Row):
    device_serial_number: Optional[str] = None
    device_name: Optional[str] = None
    device_model: Optional[str] = None


class ManualDeviceRow(_Row):
    device_serial_number: Optional[str] = None
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    device_model: Optional[str] = None
