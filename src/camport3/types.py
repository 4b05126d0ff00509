"""
Python-friendly views of the camport3 SDK structs.

All types are frozen dataclasses with slots. They are copied out of the C
structs, so they stay valid after the owning handle is closed.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from .constants import InterfaceType, PixelFormat, format_interface_type

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_address(text: str) -> Optional[IPAddress]:
    """Parse an address string from a net info struct. Empty means unset."""
    text = text.strip()
    if not text:
        return None
    return ipaddress.ip_address(text)


# ============================================================================
# Version
# ============================================================================


@dataclass(frozen=True, slots=True, order=True)
class VersionInfo:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def to_dict(self) -> dict:
        return {"major": self.major, "minor": self.minor, "patch": self.patch}


# ============================================================================
# Interface / Device info
# ============================================================================


@dataclass(frozen=True, slots=True)
class NetInfo:
    """Network settings of an ethernet/wifi interface or device."""

    mac: str
    ip: Optional[IPAddress]
    netmask: Optional[IPAddress]
    gateway: Optional[IPAddress]  # None when no gateway is configured
    broadcast: Optional[IPAddress]

    def to_dict(self) -> dict:
        # unset addresses are left out, TOML has no null
        data = {"mac": self.mac}
        for key in ("ip", "netmask", "gateway", "broadcast"):
            value = getattr(self, key)
            if value is not None:
                data[key] = str(value)
        return data


@dataclass(frozen=True, slots=True)
class UsbInfo:
    bus: int
    addr: int

    def to_dict(self) -> dict:
        return {"bus": self.bus, "addr": self.addr}


@dataclass(frozen=True, slots=True)
class InterfaceInfo:
    name: str
    id: str
    type: InterfaceType
    net_info: Optional[NetInfo] = None

    @property
    def type_name(self) -> str:
        return format_interface_type(self.type)

    def to_dict(self) -> dict:
        data = {"name": self.name, "id": self.id, "type": self.type_name}
        if self.net_info is not None:
            data["net_info"] = self.net_info.to_dict()
        return data


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    iface: InterfaceInfo
    id: str
    vendor_name: str
    user_defined_name: str
    model_name: str
    hardware_version: VersionInfo
    firmware_version: VersionInfo
    build_hash: str
    config_version: str
    net_info: Optional[NetInfo] = None
    usb_info: Optional[UsbInfo] = None

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "vendor_name": self.vendor_name,
            "user_defined_name": self.user_defined_name,
            "model_name": self.model_name,
            "hardware_version": str(self.hardware_version),
            "firmware_version": str(self.firmware_version),
            "build_hash": self.build_hash,
            "config_version": self.config_version,
            "interface": self.iface.to_dict(),
        }
        if self.net_info is not None:
            data["net_info"] = self.net_info.to_dict()
        if self.usb_info is not None:
            data["usb_info"] = self.usb_info.to_dict()
        return data


# ============================================================================
# Captured data
# ============================================================================


@dataclass(frozen=True, slots=True)
class Image:
    """One image of a fetched frame, copied out of the SDK buffer."""

    component_id: int
    timestamp: int  # microseconds, device clock
    image_index: int  # only meaningful in trigger mode
    status: int
    width: int
    height: int
    pixel_format: int
    data: np.ndarray = field(repr=False)

    @property
    def pixel_format_name(self) -> str:
        try:
            return PixelFormat(self.pixel_format).name
        except ValueError:
            return f"0x{self.pixel_format:08x}"


@dataclass(frozen=True, slots=True)
class Frame:
    images: list[Image]

    def image(self, component: int) -> Optional[Image]:
        """Image produced by the given component, or None."""
        for img in self.images:
            if img.component_id & 0xFFFFFFFF == int(component) & 0xFFFFFFFF:
                return img
        return None

    def __len__(self) -> int:
        return len(self.images)
