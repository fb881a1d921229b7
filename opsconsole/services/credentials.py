from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from opsconsole.core.logging import log_info, log_warning
from opsconsole.models.rows import CredentialRow
from opsconsole.repositories import credentials as credentials_repo
from opsconsole.repositories.store import RecordStore, StoreError
from opsconsole.security.encryption import decrypt_secret, encrypt_secret


ENCRYPTED_PASSWORD_PLACEHOLDER = "***ENCRYPTED***"
ENCRYPTED_PASSWORD_DISPLAY = "••••••••"
SERVICE_TYPES = ("VPN", "RDP")


class CredentialLookupError(RuntimeError):
    """Raised when credentials cannot be read from the store."""


@dataclass(slots=True)
class VpnRdpCredential:
    id: str
    username: str
    password: str | None
    service_type: str
    email: str | None
    notes: str | None
    created_at: str | None
    updated_at: str | None


@dataclass(slots=True)
class GroupedCredentialUser:
    id: str
    email: str
    vpn_credentials: list[VpnRdpCredential] = field(default_factory=list)
    rdp_credentials: list[VpnRdpCredential] = field(default_factory=list)
    all_credentials: list[VpnRdpCredential] = field(default_factory=list)
    has_vpn: bool = False
    has_rdp: bool = False
    created_at: str | None = None
    updated_at: str | None = None


def _reveal(password: str | None, credential_id: str) -> str | None:
    if not password:
        return password
    try:
        return decrypt_secret(password)
    except Exception as exc:
        log_warning("Unable to decrypt credential password", credential_id=credential_id, error=str(exc))
        return ENCRYPTED_PASSWORD_PLACEHOLDER


def _from_row(row: CredentialRow) -> VpnRdpCredential:
    return VpnRdpCredential(
        id=row.id,
        username=row.username,
        password=_reveal(row.password, row.id),
        service_type=row.service_type,
        email=row.email,
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


async def fetch_credentials(
    store: RecordStore, service_type: str | None = None
) -> list[VpnRdpCredential]:
    try:
        rows = await credentials_repo.list_credentials(store, service_type=service_type)
    except StoreError as exc:
        raise CredentialLookupError("Failed to fetch credentials") from exc
    return [_from_row(row) for row in rows]


async def fetch_credentials_with_email(store: RecordStore) -> list[VpnRdpCredential]:
    try:
        rows = await credentials_repo.list_credentials(store, with_email_only=True)
    except StoreError as exc:
        raise CredentialLookupError("Failed to fetch credentials") from exc
    return [_from_row(row) for row in rows if row.email]


async def store_credential(
    store: RecordStore,
    *,
    username: str,
    password: str,
    service_type: str,
    email: str | None = None,
    notes: str | None = None,
    credential_id: str | None = None,
) -> str:
    """Encrypt and persist a credential, returning its id."""
    if service_type not in SERVICE_TYPES:
        raise ValueError(f"Unsupported service type {service_type!r}")
    credential_id = credential_id or str(uuid.uuid4())
    await credentials_repo.upsert_credential(
        store,
        {
            "id": credential_id,
            "username": username.strip(),
            "password": encrypt_secret(password),
            "service_type": service_type,
            "email": email.strip() if email else None,
            "notes": notes,
        },
    )
    log_info("Stored credential", credential_id=credential_id, service_type=service_type)
    return credential_id


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _is_earlier(candidate: str | None, current: str | None) -> bool:
    candidate_dt = _parse_timestamp(candidate)
    current_dt = _parse_timestamp(current)
    if candidate_dt is None:
        return False
    return current_dt is None or candidate_dt < current_dt


def _is_later(candidate: str | None, current: str | None) -> bool:
    candidate_dt = _parse_timestamp(candidate)
    current_dt = _parse_timestamp(current)
    if candidate_dt is None:
        return False
    return current_dt is None or candidate_dt > current_dt


def consolidate_users_by_email(
    credentials: list[VpnRdpCredential],
) -> list[GroupedCredentialUser]:
    """Group credentials by case-insensitive email, one entry per address.

    Credentials without an email are dropped. Each group keeps the first
    credential's id and email spelling, the earliest ``created_at`` and the
    latest ``updated_at``.
    """
    grouped: dict[str, GroupedCredentialUser] = {}
    for credential in credentials:
        if not credential.email or not credential.email.strip():
            continue
        key = credential.email.strip().lower()
        user = grouped.get(key)
        if user is None:
            user = GroupedCredentialUser(
                id=credential.id,
                email=credential.email,
                created_at=credential.created_at,
                updated_at=credential.updated_at,
            )
            grouped[key] = user
        else:
            if _is_earlier(credential.created_at, user.created_at):
                user.created_at = credential.created_at
            if _is_later(credential.updated_at, user.updated_at):
                user.updated_at = credential.updated_at

        if credential.service_type == "VPN":
            user.vpn_credentials.append(credential)
            user.has_vpn = True
        else:
            user.rdp_credentials.append(credential)
            user.has_rdp = True
        user.all_credentials.append(credential)

    return sorted(grouped.values(), key=lambda user: user.email.lower())


def get_grouped_credentials_summary(user: GroupedCredentialUser) -> str:
    parts: list[str] = []
    if user.has_vpn:
        parts.append(f"{len(user.vpn_credentials)} VPN")
    if user.has_rdp:
        parts.append(f"{len(user.rdp_credentials)} RDP")
    return " + ".join(parts) or "No credentials"


def get_all_usernames(user: GroupedCredentialUser) -> list[str]:
    usernames: dict[str, None] = {}
    for credential in (*user.vpn_credentials, *user.rdp_credentials):
        usernames.setdefault(credential.username)
    return list(usernames)


def display_password(password: str | None, fallback: str = "—") -> str:
    if not password:
        return fallback
    if password == ENCRYPTED_PASSWORD_PLACEHOLDER:
        return ENCRYPTED_PASSWORD_DISPLAY
    return password
