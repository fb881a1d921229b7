from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class DeviceTypeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_serial_number: Optional[str] = Field(default=None, alias="deviceSerialNumber")
    vpn_username: Optional[str] = Field(default=None, alias="vpnUsername")
    vpn_password: Optional[str] = Field(default=None, alias="vpnPassword")
    rdp_username: Optional[str] = Field(default=None, alias="rdpUsername")
    rdp_password: Optional[str] = Field(default=None, alias="rdpPassword")
    has_intune_device: bool = Field(default=False, alias="hasIntuneDevice")
    device_type: Optional[str] = Field(default=None, alias="deviceType")


class DeviceTypeResponse(BaseModel):
    device_type: Literal["thin_client", "full_pc", "unknown"] = Field(alias="deviceType")
    reason: str

    model_config = ConfigDict(populate_by_name=True)
