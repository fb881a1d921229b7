from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CredentialResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    password: Optional[str] = None
    service_type: str
    email: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CredentialCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    service_type: Literal["VPN", "RDP"] = Field(..., alias="serviceType")
    email: Optional[str] = None
    notes: Optional[str] = None


class CredentialCreated(BaseModel):
    id: str


class GroupedCredentialResponse(BaseModel):
    id: str
    email: str
    vpn_credentials: List[CredentialResponse] = []
    rdp_credentials: List[CredentialResponse] = []
    has_vpn: bool = False
    has_rdp: bool = False
    summary: str
    usernames: List[str] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
