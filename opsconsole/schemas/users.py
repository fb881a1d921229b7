from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class ConsolidatedBranchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    branch_id: Optional[str] = None
    branch_name: Optional[str] = None
    source: Literal["profile", "hardware", "directory", "master_list"]
    confidence: Literal["high", "medium", "low"]


class ConsolidatedCredentialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    service_type: Literal["VPN", "RDP"]
    notes: Optional[str] = None
    source: Literal["vpn_rdp_credentials", "master_user_list"]


class ConsolidatedDeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    serial_number: str
    device_name: Optional[str] = None
    device_type: Optional[str] = None
    model: Optional[str] = None
    manufacturer: Optional[str] = None
    status: Optional[str] = None
    source: Literal["hardware_inventory", "device_user_assignments", "manual_devices"]


class ConsolidatedUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    user_principal_name: Optional[str] = None
    job_title: Optional[str] = None
    department: Optional[str] = None
    account_enabled: Optional[bool] = None
    branch: Optional[ConsolidatedBranchResponse] = None
    all_branch_sources: List[ConsolidatedBranchResponse] = []
    vpn_credentials: List[ConsolidatedCredentialResponse] = []
    rdp_credentials: List[ConsolidatedCredentialResponse] = []
    devices: List[ConsolidatedDeviceResponse] = []
    sources: List[str] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    branch_display_name: str = "NA"
    credentials_summary: str = "No credentials"
    has_credentials: bool = False
    credential_usernames: List[str] = []
