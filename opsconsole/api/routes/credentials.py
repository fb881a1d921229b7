from __future__ import annotations

from dataclasses import asdict
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from opsconsole.api.dependencies.auth import require_api_key
from opsconsole.api.dependencies.database import get_record_store, require_database
from opsconsole.repositories.store import RecordStore, StoreError
from opsconsole.schemas.credentials import (
    CredentialCreate,
    CredentialCreated,
    CredentialResponse,
    GroupedCredentialResponse,
)
from opsconsole.security.encryption import EncryptionConfigurationError
from opsconsole.services import credentials as credentials_service


router = APIRouter(prefix="/api/credentials", tags=["Credentials"])


def _serialise(
    credential: credentials_service.VpnRdpCredential, *, mask_passwords: bool
) -> CredentialResponse:
    payload = asdict(credential)
    if mask_passwords:
        payload["password"] = (
            credentials_service.ENCRYPTED_PASSWORD_DISPLAY if credential.password else None
        )
    else:
        payload["password"] = credentials_service.display_password(credential.password)
    return CredentialResponse.model_validate(payload)


@router.get("", response_model=list[CredentialResponse])
async def list_credentials(
    service_type: Literal["VPN", "RDP"] | None = Query(default=None, alias="serviceType"),
    mask_passwords: bool = Query(default=True, alias="maskPasswords"),
    _: None = Depends(require_database),
    __: str = Depends(require_api_key),
    store: RecordStore = Depends(get_record_store),
):
    try:
        credentials = await credentials_service.fetch_credentials(store, service_type)
    except credentials_service.CredentialLookupError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [_serialise(credential, mask_passwords=mask_passwords) for credential in credentials]


@router.get("/grouped", response_model=list[GroupedCredentialResponse])
async def list_grouped_credentials(
    mask_passwords: bool = Query(default=True, alias="maskPasswords"),
    _: None = Depends(require_database),
    __: str = Depends(require_api_key),
    store: RecordStore = Depends(get_record_store),
):
    try:
        credentials = await credentials_service.fetch_credentials_with_email(store)
    except credentials_service.CredentialLookupError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    grouped = credentials_service.consolidate_users_by_email(credentials)
    return [
        GroupedCredentialResponse(
            id=user.id,
            email=user.email,
            vpn_credentials=[
                _serialise(item, mask_passwords=mask_passwords) for item in user.vpn_credentials
            ],
            rdp_credentials=[
                _serialise(item, mask_passwords=mask_passwords) for item in user.rdp_credentials
            ],
            has_vpn=user.has_vpn,
            has_rdp=user.has_rdp,
            summary=credentials_service.get_grouped_credentials_summary(user),
            usernames=credentials_service.get_all_usernames(user),
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        for user in grouped
    ]


@router.post("", response_model=CredentialCreated, status_code=status.HTTP_201_CREATED)
async def create_credential(
    payload: CredentialCreate,
    _: None = Depends(require_database),
    __: str = Depends(require_api_key),
    store: RecordStore = Depends(get_record_store),
):
    try:
        credential_id = await credentials_service.store_credential(
            store,
            username=payload.username,
            password=payload.password,
            service_type=payload.service_type,
            email=payload.email,
            notes=payload.notes,
        )
    except (StoreError, EncryptionConfigurationError) as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return CredentialCreated(id=credential_id)
