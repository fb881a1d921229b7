from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status

from opsconsole.api.dependencies.auth import require_api_key
from opsconsole.api.dependencies.database import get_record_store, require_database
from opsconsole.repositories.store import RecordStore
from opsconsole.schemas.users import ConsolidatedUserResponse
from opsconsole.services import user_consolidation as consolidation_service


router = APIRouter(prefix="/api/users", tags=["Users"])


def _to_response(user: consolidation_service.ConsolidatedUserData) -> ConsolidatedUserResponse:
    payload = asdict(user)
    payload.update(
        branch_display_name=consolidation_service.get_branch_display_name(user),
        credentials_summary=consolidation_service.get_credentials_summary(user),
        has_credentials=consolidation_service.has_credentials(user),
        credential_usernames=consolidation_service.get_all_credential_usernames(user),
    )
    return ConsolidatedUserResponse.model_validate(payload)


@router.get("/consolidated", response_model=list[ConsolidatedUserResponse])
async def list_consolidated_users(
    _: None = Depends(require_database),
    __: str = Depends(require_api_key),
    store: RecordStore = Depends(get_record_store),
):
    try:
        users = await consolidation_service.fetch_all_consolidated_users(store)
    except consolidation_service.ConsolidationBackendError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return [_to_response(user) for user in users]


@router.get("/consolidated/lookup", response_model=ConsolidatedUserResponse)
async def get_consolidated_user(
    user_id: str | None = Query(default=None, alias="id"),
    email: str | None = None,
    _: None = Depends(require_database),
    __: str = Depends(require_api_key),
    store: RecordStore = Depends(get_record_store),
):
    try:
        user = await consolidation_service.fetch_consolidated_user_data(
            store, user_id=user_id or None, email=email or None
        )
    except consolidation_service.ConsolidationRequestError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except consolidation_service.ConsolidationBackendError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return _to_response(user)
