from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from opsconsole.api.dependencies.auth import require_api_key
from opsconsole.api.dependencies.database import get_record_store, require_database
from opsconsole.repositories.store import RecordStore
from opsconsole.schemas.m365 import (
    LicenseTotalResponse,
    SyncRequest,
    SyncResponse,
    SyncResultResponse,
    SyncResults,
)
from opsconsole.services import m365 as m365_service


router = APIRouter(prefix="/api/m365", tags=["Office365"])


@router.post("/sync", response_model=SyncResponse)
async def sync_directory(
    payload: SyncRequest,
    request: Request,
    _: None = Depends(require_database),
    __: str = Depends(require_api_key),
    store: RecordStore = Depends(get_record_store),
):
    try:
        summary = await m365_service.run_sync(
            store,
            payload.action,
            branch=payload.options.branch,
            actor=request.client.host if request.client else None,
        )
    except m365_service.M365ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except m365_service.M365Error as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return SyncResponse(
        success=True,
        message="Microsoft 365 sync completed",
        results=SyncResults(
            devices=SyncResultResponse.model_validate(summary.devices) if summary.devices else None,
            users=SyncResultResponse.model_validate(summary.users) if summary.users else None,
            licenses=(
                LicenseTotalResponse.model_validate(summary.licenses) if summary.licenses else None
            ),
        ),
        errors=summary.errors,
    )
