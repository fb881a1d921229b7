"""Thin client vs full PC classification.

The classification looks at the explicit device type recorded in hardware
inventory first, then at the VPN/RDP credentials, the device serial number
and whether the device is enrolled in Intune.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


DeviceType = Literal["thin_client", "full_pc", "unknown"]

_PLACEHOLDER_VALUES = {"NA", "N/A"}


@dataclass(slots=True)
class DeviceTypeInput:
    device_serial_number: str | None = None
    vpn_username: str | None = None
    vpn_password: str | None = None
    rdp_username: str | None = None
    rdp_password: str | None = None
    has_intune_device: bool = False
    device_type: str | None = None


def is_valid_credential(value: str | None) -> bool:
    """Return True for a non-blank value that is not an ``NA`` placeholder."""
    if not value or not value.strip():
        return False
    return value.strip().upper() not in _PLACEHOLDER_VALUES


def _is_set(value: str | None) -> bool:
    # Classification only treats an exact "NA" as a placeholder; "N/A" counts as a value.
    return bool(value and value.strip()) and value.upper() != "NA"


def _has_valid_vpn(data: DeviceTypeInput) -> bool:
    return is_valid_credential(data.vpn_username) or is_valid_credential(data.vpn_password)


def determine_device_type(data: DeviceTypeInput) -> DeviceType:
    if data.device_type == "thin_client":
        return "thin_client"
    if data.device_type == "full_pc":
        return "full_pc"

    has_serial = _is_set(data.device_serial_number)

    # Remote VPN access needs a full machine.
    if _is_set(data.vpn_username) or _is_set(data.vpn_password):
        return "full_pc"

    if not has_serial:
        return "full_pc" if data.has_intune_device else "thin_client"

    if data.has_intune_device:
        return "full_pc"
    if _is_set(data.rdp_username) or _is_set(data.rdp_password):
        return "thin_client"
    return "full_pc"


def get_device_type_reason(data: DeviceTypeInput) -> str:
    device_type = determine_device_type(data)

    if data.device_type:
        return f"Explicitly set as {data.device_type}"

    has_serial = is_valid_credential(data.device_serial_number)
    has_vpn = _has_valid_vpn(data)

    if device_type == "full_pc":
        if has_vpn:
            return "Full PC: Has VPN credentials for remote access"
        if data.has_intune_device:
            return "Full PC: Device managed in Intune (e.g., mini PC at office)"
        if has_serial:
            return "Full PC: Has device serial number and no thin client indicators"
        return "Full PC: Default classification"

    if device_type == "thin_client":
        if not has_serial and not has_vpn:
            return "Thin Client: No device serial and no VPN credentials"
        if has_serial and not has_vpn:
            return "Thin Client: Has RDP credentials but no VPN (terminal access only)"
        return "Thin Client: Classified based on credential analysis"

    return "Unknown: Insufficient information to determine device type"
