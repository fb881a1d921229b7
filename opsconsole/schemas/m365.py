from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class SyncOptions(BaseModel):
    branch: Optional[str] = None


class SyncRequest(BaseModel):
    action: Literal["sync_users", "sync_devices", "sync_licenses", "full_sync"]
    options: SyncOptions = SyncOptions()


class SyncResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    synced: int
    errors: int
    total: int


class LicenseTotalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int


class SyncResults(BaseModel):
    devices: Optional[SyncResultResponse] = None
    users: Optional[SyncResultResponse] = None
    licenses: Optional[LicenseTotalResponse] = None


class SyncResponse(BaseModel):
    success: bool
    message: str
    results: SyncResults
    errors: List[str] = []
