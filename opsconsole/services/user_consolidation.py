"""Consolidate a user's identity, branch, credentials and devices.

A user is resolved from the master user list or, failing that, the
directory-sync list. Branch assignments, VPN/RDP credentials and devices are
then gathered from their own tables, deduplicated and merged into a single
``ConsolidatedUserData`` record. Nothing is cached; every call reads the
store afresh.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Literal, TypeVar

from opsconsole.core.config import get_settings
from opsconsole.core.logging import log_debug, log_error, log_warning
from opsconsole.models.rows import DirectoryUserRow, MasterUserRow
from opsconsole.repositories import branches as branches_repo
from opsconsole.repositories import credentials as credentials_repo
from opsconsole.repositories import devices as devices_repo
from opsconsole.repositories import users as users_repo
from opsconsole.repositories.store import AmbiguousResultError, RecordStore


T = TypeVar("T")

Confidence = Literal["high", "medium", "low"]
BranchSource = Literal["profile", "hardware", "directory", "master_list"]
ServiceType = Literal["VPN", "RDP"]

MASTER_SOURCE = "master_user_list"
DIRECTORY_SOURCE = "directory_users"
PROFILE_SOURCE = "profiles"

_CONFIDENCE_RANK: dict[str, int] = {"high": 0, "medium": 1, "low": 2}


class ConsolidationRequestError(ValueError):
    """Raised when neither a user id nor an email is supplied."""


class ConsolidationBackendError(RuntimeError):
    """Raised when the store fails while resolving the base identity."""


@dataclass(slots=True)
class ConsolidatedBranchInfo:
    branch_id: str | None
    branch_name: str | None
    source: BranchSource
    confidence: Confidence


@dataclass(slots=True)
class ConsolidatedCredential:
    id: str
    username: str
    service_type: ServiceType
    notes: str | None
    source: Literal["vpn_rdp_credentials", "master_user_list"]


@dataclass(slots=True)
class ConsolidatedDevice:
    serial_number: str
    device_name: str | None
    device_type: str | None
    model: str | None
    manufacturer: str | None
    status: str | None
    source: Literal["hardware_inventory", "device_user_assignments", "manual_devices"]


@dataclass(slots=True)
class ConsolidatedUserData:
    id: str
    display_name: str | None
    email: str | None
    user_principal_name: str | None
    job_title: str | None
    department: str | None
    account_enabled: bool | None
    branch: ConsolidatedBranchInfo | None
    all_branch_sources: list[ConsolidatedBranchInfo] = field(default_factory=list)
    vpn_credentials: list[ConsolidatedCredential] = field(default_factory=list)
    rdp_credentials: list[ConsolidatedCredential] = field(default_factory=list)
    devices: list[ConsolidatedDevice] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


BaseUser = MasterUserRow | DirectoryUserRow


async def _degrade(facet: str, awaitable: Awaitable[T], default: T) -> T:
    """Await an enrichment lookup, returning ``default`` if it fails."""
    try:
        return await awaitable
    except Exception as exc:
        log_warning("User consolidation lookup failed", facet=facet, error=str(exc))
        return default


async def _lookup_base(lookup: Awaitable[BaseUser | None], *, table: str, key: str) -> BaseUser | None:
    try:
        return await lookup
    except AmbiguousResultError:
        log_warning("Multiple base records matched identity", table=table, key=key)
        return None
    except Exception as exc:
        log_error("Base identity lookup failed", table=table, key=key, error=str(exc))
        raise ConsolidationBackendError(f"Unable to read {table}") from exc


async def _resolve_base_user(
    store: RecordStore, user_id: str | None, email: str | None
) -> tuple[BaseUser, str, str | None] | None:
    if user_id:
        master = await _lookup_base(
            users_repo.get_master_user(store, user_id=user_id), table=MASTER_SOURCE, key=user_id
        )
        if master:
            return master, MASTER_SOURCE, master.email or email
        directory = await _lookup_base(
            users_repo.get_directory_user(store, user_id=user_id), table=DIRECTORY_SOURCE, key=user_id
        )
        if directory:
            return directory, DIRECTORY_SOURCE, directory.email or email

    if email:
        master = await _lookup_base(
            users_repo.get_master_user(store, email=email), table=MASTER_SOURCE, key=email
        )
        if master:
            return master, MASTER_SOURCE, email
        directory = await _lookup_base(
            users_repo.get_directory_user(store, email=email), table=DIRECTORY_SOURCE, key=email
        )
        if directory:
            return directory, DIRECTORY_SOURCE, email

    return None


async def _branch_name(store: RecordStore, branch_id: str) -> str | None:
    branch = await _degrade("branch", branches_repo.get_branch_by_id(store, branch_id), None)
    return branch.name if branch else None


async def _master_list_branch(store: RecordStore, base: BaseUser) -> ConsolidatedBranchInfo | None:
    branch_id = getattr(base, "branch_id", None)
    if not branch_id:
        return None
    return ConsolidatedBranchInfo(
        branch_id=branch_id,
        branch_name=await _branch_name(store, branch_id),
        source="master_list",
        confidence="high",
    )


async def _profile_branch(store: RecordStore, email: str) -> ConsolidatedBranchInfo | None:
    profile = await _degrade("profile", users_repo.get_profile_by_email(store, email), None)
    if not profile or not profile.branch_id:
        return None
    return ConsolidatedBranchInfo(
        branch_id=profile.branch_id,
        branch_name=await _branch_name(store, profile.branch_id),
        source="profile",
        confidence="high",
    )


async def _hardware_branch(
    store: RecordStore, email: str, user_principal_name: str | None
) -> ConsolidatedBranchInfo | None:
    name = await _degrade(
        "hardware_branch",
        devices_repo.get_hardware_branch_name(
            store, email=email, user_principal_name=user_principal_name
        ),
        None,
    )
    if not name:
        return None
    branch = await _degrade("branch", branches_repo.get_branch_by_name(store, name), None)
    if not branch:
        return None
    return ConsolidatedBranchInfo(
        branch_id=branch.id, branch_name=branch.name, source="hardware", confidence="medium"
    )


async def _department_branch(
    store: RecordStore, department: str | None
) -> ConsolidatedBranchInfo | None:
    if not department:
        return None
    branch = await _degrade("department_branch", branches_repo.get_branch_by_name(store, department), None)
    if not branch:
        return None
    return ConsolidatedBranchInfo(
        branch_id=branch.id, branch_name=branch.name, source="directory", confidence="low"
    )


def select_best_branch(
    candidates: list[ConsolidatedBranchInfo],
) -> ConsolidatedBranchInfo | None:
    """Pick the highest-confidence candidate; the first found wins ties."""
    if not candidates:
        return None
    ranked = sorted(
        candidates,
        key=lambda candidate: _CONFIDENCE_RANK.get(candidate.confidence, len(_CONFIDENCE_RANK)),
    )
    return ranked[0]


async def _resolve_branches(
    store: RecordStore, base: BaseUser, email: str
) -> tuple[list[ConsolidatedBranchInfo], bool]:
    master_list, profile, hardware, directory = await asyncio.gather(
        _master_list_branch(store, base),
        _profile_branch(store, email),
        _hardware_branch(store, email, base.user_principal_name),
        _department_branch(store, base.department),
    )
    candidates = [
        candidate
        for candidate in (master_list, profile, hardware, directory)
        if candidate is not None
    ]
    return candidates, profile is not None


async def _resolve_credentials(
    store: RecordStore, base: BaseUser, email: str
) -> tuple[list[ConsolidatedCredential], list[ConsolidatedCredential]]:
    vpn: list[ConsolidatedCredential] = []
    rdp: list[ConsolidatedCredential] = []
    seen: set[tuple[str, str]] = set()

    rows = await _degrade(
        "credentials", credentials_repo.list_credentials_for_email(store, email), []
    )
    for row in rows:
        key = (row.username, row.service_type)
        if key in seen:
            continue
        seen.add(key)
        if row.service_type not in ("VPN", "RDP"):
            continue
        credential = ConsolidatedCredential(
            id=row.id,
            username=row.username,
            service_type=row.service_type,  # type: ignore[arg-type]
            notes=row.notes,
            source="vpn_rdp_credentials",
        )
        (vpn if row.service_type == "VPN" else rdp).append(credential)

    for service_type, username, target in (
        ("VPN", getattr(base, "vpn_username", None), vpn),
        ("RDP", getattr(base, "rdp_username", None), rdp),
    ):
        if not username or (username, service_type) in seen:
            continue
        seen.add((username, service_type))
        target.append(
            ConsolidatedCredential(
                id=f"master-{service_type.lower()}-{base.id}",
                username=username,
                service_type=service_type,  # type: ignore[arg-type]
                notes="From master user list",
                source="master_user_list",
            )
        )

    return vpn, rdp


async def _resolve_devices(
    store: RecordStore, base: BaseUser, email: str
) -> list[ConsolidatedDevice]:
    hardware, assignments, manual = await asyncio.gather(
        _degrade(
            "hardware_inventory",
            devices_repo.list_hardware_for_user(
                store, email=email, user_principal_name=base.user_principal_name
            ),
            [],
        ),
        _degrade("device_user_assignments", devices_repo.list_current_assignments(store, email), []),
        _degrade("manual_devices", devices_repo.list_active_manual_devices(store, email), []),
    )

    devices: list[ConsolidatedDevice] = []
    seen: set[str] = set()

    def _add(device: ConsolidatedDevice) -> None:
        if not device.serial_number or device.serial_number in seen:
            return
        seen.add(device.serial_number)
        devices.append(device)

    for row in hardware:
        _add(
            ConsolidatedDevice(
                serial_number=row.serial_number or "",
                device_name=row.device_name,
                device_type=row.device_type,
                model=row.model,
                manufacturer=row.manufacturer,
                status=row.status,
                source="hardware_inventory",
            )
        )
    for row in assignments:
        _add(
            ConsolidatedDevice(
                serial_number=row.device_serial_number or "",
                device_name=row.device_name,
                device_type=None,
                model=row.device_model,
                manufacturer=None,
                status="active",
                source="device_user_assignments",
            )
        )
    for row in manual:
        _add(
            ConsolidatedDevice(
                serial_number=row.device_serial_number or "",
                device_name=row.device_name,
                device_type=row.device_type,
                model=row.device_model,
                manufacturer=None,
                status="active",
                source="manual_devices",
            )
        )
    return devices


def _account_enabled(base: BaseUser) -> bool:
    enabled = getattr(base, "account_enabled", None)
    if enabled is not None:
        return enabled
    active = getattr(base, "is_active", None)
    if active is not None:
        return active
    return True


async def fetch_consolidated_user_data(
    store: RecordStore,
    user_id: str | None = None,
    email: str | None = None,
) -> ConsolidatedUserData | None:
    """Return the consolidated view of one user, or ``None`` if no base record exists.

    Raises ``ConsolidationRequestError`` when called without a key and
    ``ConsolidationBackendError`` when the base identity cannot be read.
    Enrichment failures only empty the affected facet.
    """
    if not user_id and not email:
        raise ConsolidationRequestError("Either user_id or email must be provided")

    resolved = await _resolve_base_user(store, user_id, email)
    if resolved is None:
        log_debug("No base user record found", user_id=user_id, email=email)
        return None
    base, base_source, email = resolved
    if not email:
        log_debug("Base user record has no email", user_id=base.id, source=base_source)
        return None

    sources = [base_source]
    (branch_sources, has_profile), (vpn, rdp), devices = await asyncio.gather(
        _resolve_branches(store, base, email),
        _resolve_credentials(store, base, email),
        _resolve_devices(store, base, email),
    )
    if has_profile:
        sources.append(PROFILE_SOURCE)

    return ConsolidatedUserData(
        id=base.id,
        display_name=base.display_name,
        email=email,
        user_principal_name=base.user_principal_name or None,
        job_title=base.job_title or None,
        department=base.department or None,
        account_enabled=_account_enabled(base),
        branch=select_best_branch(branch_sources),
        all_branch_sources=branch_sources,
        vpn_credentials=vpn,
        rdp_credentials=rdp,
        devices=devices,
        sources=sources,
        created_at=base.created_at,
        updated_at=base.updated_at,
    )


async def fetch_all_consolidated_users(
    store: RecordStore,
    *,
    max_concurrency: int | None = None,
) -> list[ConsolidatedUserData]:
    """Consolidate every active user, skipping identities that do not resolve."""
    try:
        identities = await users_repo.list_active_master_identities(store)
        if not identities:
            identities = await users_repo.list_directory_identities(store)
    except Exception as exc:
        log_error("Unable to list users for consolidation", error=str(exc))
        raise ConsolidationBackendError("Unable to list users") from exc

    limit = get_settings().consolidation_max_concurrency if max_concurrency is None else max_concurrency
    semaphore = asyncio.Semaphore(limit) if limit and limit > 0 else None

    async def _consolidate(identity: dict[str, Any]) -> ConsolidatedUserData | None:
        user_id = identity.get("id")
        email = identity.get("email") or None
        try:
            if semaphore is None:
                return await fetch_consolidated_user_data(store, user_id, email)
            async with semaphore:
                return await fetch_consolidated_user_data(store, user_id, email)
        except (ConsolidationRequestError, ConsolidationBackendError) as exc:
            log_warning("Skipping user during consolidation", user_id=user_id, error=str(exc))
            return None

    results = await asyncio.gather(*(_consolidate(identity) for identity in identities))
    return [result for result in results if result is not None]


def get_credentials_summary(user: ConsolidatedUserData) -> str:
    parts: list[str] = []
    if user.vpn_credentials:
        parts.append(f"{len(user.vpn_credentials)} VPN")
    if user.rdp_credentials:
        parts.append(f"{len(user.rdp_credentials)} RDP")
    return " + ".join(parts) or "No credentials"


def get_branch_display_name(user: ConsolidatedUserData) -> str:
    return (user.branch.branch_name if user.branch else None) or "NA"


def has_credentials(user: ConsolidatedUserData) -> bool:
    return bool(user.vpn_credentials or user.rdp_credentials)


def get_all_credential_usernames(user: ConsolidatedUserData) -> list[str]:
    usernames: dict[str, None] = {}
    for credential in (*user.vpn_credentials, *user.rdp_credentials):
        usernames.setdefault(credential.username)
    return list(usernames)
