from __future__ import annotations

from fastapi import APIRouter, Depends

from opsconsole.api.dependencies.auth import require_api_key
from opsconsole.schemas.devices import DeviceTypeRequest, DeviceTypeResponse
from opsconsole.services import device_types


router = APIRouter(prefix="/api/devices", tags=["Devices"])


@router.post("/classify", response_model=DeviceTypeResponse)
async def classify_device(
    payload: DeviceTypeRequest,
    _: str = Depends(require_api_key),
):
    data = device_types.DeviceTypeInput(**payload.model_dump(by_alias=False))
    return DeviceTypeResponse(
        device_type=device_types.determine_device_type(data),
        reason=device_types.get_device_type_reason(data),
    )
