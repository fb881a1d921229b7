from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from opsconsole.core.config import get_settings
from opsconsole.core.logging import log_audit_event, log_error, log_info
from opsconsole.repositories import devices as devices_repo
from opsconsole.repositories import users as users_repo
from opsconsole.repositories.store import RecordStore


_GRAPH_SCOPE = "https://graph.microsoft.com/.default"
_GRAPH_BASE = "https://graph.microsoft.com/v1.0"

_USER_FIELDS = (
    "id",
    "displayName",
    "mail",
    "userPrincipalName",
    "jobTitle",
    "department",
    "officeLocation",
    "mobilePhone",
    "accountEnabled",
)
_DEVICE_FIELDS = (
    "id",
    "deviceName",
    "operatingSystem",
    "osVersion",
    "manufacturer",
    "model",
    "serialNumber",
    "totalStorageSpaceInBytes",
    "freeStorageSpaceInBytes",
    "physicalMemoryInBytes",
    "managedDeviceOwnerType",
    "enrolledDateTime",
    "lastSyncDateTime",
    "complianceState",
    "userPrincipalName",
)

SYNC_ACTIONS = ("sync_users", "sync_devices", "sync_licenses", "full_sync")


class M365Error(RuntimeError):
    """Raised when Microsoft 365 operations fail."""


class M365ConfigurationError(M365Error):
    """Raised when the Microsoft 365 app registration settings are incomplete."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            "Microsoft 365 integration is not configured. Missing settings: "
            + ", ".join(missing)
        )


@dataclass(slots=True)
class SyncResult:
    synced: int = 0
    errors: int = 0
    total: int = 0


@dataclass(slots=True)
class LicenseTotal:
    total: int = 0


@dataclass(slots=True)
class SyncSummary:
    action: str
    devices: SyncResult | None = None
    users: SyncResult | None = None
    licenses: LicenseTotal | None = None
    errors: list[str] = field(default_factory=list)


def _utc_now_db() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).strftime("%Y-%m-%d %H:%M:%S")


def missing_configuration() -> list[str]:
    settings = get_settings()
    missing: list[str] = []
    if not settings.microsoft_tenant_id:
        missing.append("MICROSOFT_TENANT_ID")
    if not settings.microsoft_client_id:
        missing.append("MICROSOFT_CLIENT_ID")
    if not settings.microsoft_client_secret:
        missing.append("MICROSOFT_CLIENT_SECRET")
    return missing


async def acquire_access_token() -> str:
    missing = missing_configuration()
    if missing:
        raise M365ConfigurationError(missing)
    settings = get_settings()
    token_endpoint = (
        f"https://login.microsoftonline.com/{settings.microsoft_tenant_id}/oauth2/v2.0/token"
    )
    data = {
        "client_id": settings.microsoft_client_id,
        "client_secret": settings.microsoft_client_secret,
        "scope": _GRAPH_SCOPE,
        "grant_type": "client_credentials",
    }
    async with httpx.AsyncClient(timeout=settings.graph_timeout_seconds) as client:
        response = await client.post(token_endpoint, data=data)
    if response.status_code != 200:
        log_error(
            "Failed to acquire Microsoft 365 token",
            status=response.status_code,
            body=response.text,
        )
        raise M365Error("Unable to acquire Microsoft 365 access token")
    access_token = response.json().get("access_token")
    if not access_token:
        raise M365Error("Microsoft 365 token response did not include an access token")
    return str(access_token)


async def _graph_get_all(access_token: str, url: str, *, permission: str) -> list[dict[str, Any]]:
    """Follow ``@odata.nextLink`` until every page has been read."""
    headers = {"Authorization": f"Bearer {access_token}", "Content-Type": "application/json"}
    items: list[dict[str, Any]] = []
    next_link: str | None = url
    async with httpx.AsyncClient(timeout=get_settings().graph_timeout_seconds) as client:
        while next_link:
            response = await client.get(next_link, headers=headers)
            if response.status_code == 403:
                raise M365Error(f"Access denied. Ensure the app has {permission} permission.")
            if response.status_code != 200:
                log_error(
                    "Microsoft Graph request failed",
                    url=next_link,
                    status=response.status_code,
                    body=response.text,
                )
                raise M365Error(f"Microsoft Graph request failed with status {response.status_code}")
            payload = response.json()
            items.extend(payload.get("value") or [])
            next_link = payload.get("@odata.nextLink") or None
    return items


async def fetch_users(access_token: str) -> list[dict[str, Any]]:
    url = f"{_GRAPH_BASE}/users?" + urlencode({"$select": ",".join(_USER_FIELDS)})
    return await _graph_get_all(access_token, url, permission="User.Read.All")


async def fetch_devices(access_token: str) -> list[dict[str, Any]]:
    url = f"{_GRAPH_BASE}/deviceManagement/managedDevices?" + urlencode(
        {"$select": ",".join(_DEVICE_FIELDS)}
    )
    return await _graph_get_all(
        access_token, url, permission="DeviceManagementManagedDevices.Read.All"
    )


async def fetch_licenses(access_token: str) -> list[dict[str, Any]]:
    return await _graph_get_all(
        access_token, f"{_GRAPH_BASE}/subscribedSkus", permission="Organization.Read.All"
    )


def bytes_to_gb(value: Any) -> int | None:
    if not value:
        return None
    return int(float(value) / (1024 ** 3) + 0.5)


def map_device_type(operating_system: str | None) -> str:
    if not operating_system:
        return "Other"
    os_lower = operating_system.lower()
    if "windows" in os_lower:
        return "Desktop"
    if "macos" in os_lower or "mac os" in os_lower:
        return "Desktop"
    if "ios" in os_lower or "iphone" in os_lower:
        return "Phone"
    if "android" in os_lower:
        return "Phone"
    if "ipad" in os_lower:
        return "Tablet"
    return "Desktop"


async def sync_users_to_directory(
    store: RecordStore, users: list[dict[str, Any]]
) -> SyncResult:
    result = SyncResult(total=len(users))
    for user in users:
        aad_id = user.get("id")
        if not aad_id:
            result.errors += 1
            continue
        try:
            existing = await users_repo.get_directory_user_by_aad_id(store, str(aad_id))
            if existing and existing.deleted_manually:
                continue
            row: dict[str, Any] = {
                "id": existing.id if existing else str(uuid.uuid4()),
                "aad_id": str(aad_id),
                "display_name": user.get("displayName") or None,
                "email": user.get("mail") or None,
                "user_principal_name": user.get("userPrincipalName") or None,
                "job_title": user.get("jobTitle") or None,
                "department": user.get("department") or None,
                "account_enabled": user.get("accountEnabled"),
                "updated_at": _utc_now_db(),
            }
            if not existing:
                row["deleted_manually"] = False
            await users_repo.upsert_directory_users(store, [row])
            result.synced += 1
        except Exception as exc:
            log_error("Error syncing directory user", aad_id=aad_id, error=str(exc))
            result.errors += 1
    return result


async def sync_devices_to_inventory(
    store: RecordStore,
    devices: list[dict[str, Any]],
    branch: str | None = None,
) -> SyncResult:
    result = SyncResult(total=len(devices))
    for device in devices:
        device_id = device.get("id")
        if not device_id:
            result.errors += 1
            continue
        row = {
            "device_name": device.get("deviceName"),
            "device_type": map_device_type(device.get("operatingSystem")),
            "manufacturer": device.get("manufacturer") or None,
            "model": device.get("model") or None,
            "serial_number": device.get("serialNumber") or None,
            "os": device.get("operatingSystem") or None,
            "os_version": device.get("osVersion") or None,
            "ram_gb": bytes_to_gb(device.get("physicalMemoryInBytes")),
            "storage_gb": bytes_to_gb(device.get("totalStorageSpaceInBytes")),
            "status": "active" if device.get("complianceState") == "compliant" else "inactive",
            "branch": branch or None,
            "m365_device_id": str(device_id),
            "m365_user_principal_name": device.get("userPrincipalName") or None,
            "m365_last_sync": device.get("lastSyncDateTime") or None,
            "m365_enrolled_date": device.get("enrolledDateTime") or None,
            "synced_from_m365": True,
            "deleted_manually": False,
        }
        try:
            await devices_repo.upsert_hardware_devices(store, [row])
            result.synced += 1
        except Exception as exc:
            log_error("Error syncing managed device", device_id=device_id, error=str(exc))
            result.errors += 1
    return result


async def run_sync(
    store: RecordStore,
    action: str,
    *,
    branch: str | None = None,
    actor: str | None = None,
) -> SyncSummary:
    """Run a directory sync action.

    A device failure aborts the run. User and license failures abort
    ``sync_users`` and ``sync_licenses`` but are only recorded on the summary
    during ``full_sync``. Licenses are counted, not stored.
    """
    if action not in SYNC_ACTIONS:
        raise ValueError(f"Unsupported sync action {action!r}")

    access_token = await acquire_access_token()
    summary = SyncSummary(action=action)

    if action in ("sync_devices", "full_sync"):
        devices = await fetch_devices(access_token)
        summary.devices = await sync_devices_to_inventory(store, devices, branch)

    if action in ("sync_users", "full_sync"):
        try:
            users = await fetch_users(access_token)
        except M365Error as exc:
            if action == "sync_users":
                raise
            log_error("User sync failed during full sync", error=str(exc))
            summary.errors.append(str(exc))
        else:
            summary.users = await sync_users_to_directory(store, users)

    if action in ("sync_licenses", "full_sync"):
        try:
            licenses = await fetch_licenses(access_token)
        except M365Error as exc:
            if action == "sync_licenses":
                raise
            log_error("License sync failed during full sync", error=str(exc))
            summary.errors.append(str(exc))
        else:
            summary.licenses = LicenseTotal(total=len(licenses))

    log_audit_event(
        "M365 SYNC",
        action,
        actor=actor,
        entity_type="directory",
        devices_synced=summary.devices.synced if summary.devices else 0,
        users_synced=summary.users.synced if summary.users else 0,
        licenses_total=summary.licenses.total if summary.licenses else 0,
    )
    log_info("Microsoft 365 sync completed", action=action, errors=len(summary.errors))
    return summary
