"""
Constants from the camport3 SDK headers (TYApi.h, TYVer.h).

Every value here is fixed by the vendor library and must match it exactly.
"""

from __future__ import annotations

from enum import IntEnum, IntFlag


# ============================================================================
# Library version (must match TYVer.h)
# ============================================================================

TY_LIB_VERSION_MAJOR = 3
TY_LIB_VERSION_MINOR = 6
TY_LIB_VERSION_PATCH = 66


# ============================================================================
# Status codes (TY_STATUS_LIST)
# ============================================================================

class Status(IntEnum):
    OK = 0

    ERROR = -1001
    NOT_INITED = -1002
    NOT_IMPLEMENTED = -1003
    NOT_PERMITTED = -1004
    DEVICE_ERROR = -1005
    INVALID_PARAMETER = -1006
    INVALID_HANDLE = -1007
    INVALID_COMPONENT = -1008
    INVALID_FEATURE = -1009
    WRONG_TYPE = -1010
    WRONG_SIZE = -1011
    OUT_OF_MEMORY = -1012
    OUT_OF_RANGE = -1013
    TIMEOUT = -1014
    WRONG_MODE = -1015
    BUSY = -1016
    IDLE = -1017
    NO_DATA = -1018
    NO_BUFFER = -1019
    NULL_POINTER = -1020
    READONLY_FEATURE = -1021
    INVALID_DESCRIPTOR = -1022
    INVALID_INTERFACE = -1023
    FIRMWARE_ERROR = -1024

    # errno values passed straight through from the device driver
    DEV_EPERM = -1
    DEV_EIO = -5
    DEV_ENOMEM = -12
    DEV_EBUSY = -16
    DEV_EINVAL = -22


# ============================================================================
# Interface types (TY_INTERFACE_TYPE_LIST)
# ============================================================================

class InterfaceType(IntFlag):
    UNKNOWN = 0
    RAW = 1
    USB = 2
    ETHERNET = 4
    IEEE80211 = 8
    ALL = 0xFFFF


_INTERFACE_TYPE_NAMES = (
    (InterfaceType.RAW, "RAW"),
    (InterfaceType.USB, "USB"),
    (InterfaceType.ETHERNET, "ETH"),
    (InterfaceType.IEEE80211, "WIFI"),
)


def format_interface_type(flags: int) -> str:
    """Short comma-separated names of the set interface bits, e.g. "USB,ETH"."""
    return ",".join(name for bit, name in _INTERFACE_TYPE_NAMES if flags & bit)


def parse_interface_type(name: str) -> InterfaceType:
    """Inverse of the short names used by format_interface_type (plus ALL)."""
    key = name.strip().upper()
    if key == "ALL":
        return InterfaceType.ALL
    for bit, short in _INTERFACE_TYPE_NAMES:
        if key in (short, bit.name):
            return bit
    raise ValueError(f"Unknown interface type: {name!r}")


def has_net_info(flags: int) -> bool:
    """Network info is only meaningful for ethernet and wifi interfaces."""
    return bool(flags & (InterfaceType.ETHERNET | InterfaceType.IEEE80211))


def has_usb_info(flags: int) -> bool:
    return bool(flags & InterfaceType.USB)


# ============================================================================
# Firmware error codes (TY_FW_ERRORCODE_LIST)
# ============================================================================

class FirmwareError(IntFlag):
    CAM0_NOT_DETECTED = 0x00000001
    CAM1_NOT_DETECTED = 0x00000002
    CAM2_NOT_DETECTED = 0x00000004
    POE_NOT_INIT = 0x00000008
    RECMAP_NOT_CORRECT = 0x00000010
    LOOKUPTABLE_NOT_CORRECT = 0x00000020
    DRV8899_NOT_INIT = 0x00000040
    FOC_START_ERR = 0x00000080
    CONFIG_NOT_FOUND = 0x00010000
    CONFIG_NOT_CORRECT = 0x00020000
    XML_NOT_FOUND = 0x00040000
    XML_NOT_CORRECT = 0x00080000
    XML_OVERRIDE_FAILED = 0x00100000
    CAM_INIT_FAILED = 0x00200000
    LASER_INIT_FAILED = 0x00400000


def format_firmware_errors(code: int) -> list[str]:
    """Names of the firmware error bits set in code, lowest bit first."""
    return [member.name for member in FirmwareError if code & member]


# ============================================================================
# Components (TY_DEVICE_COMPONENT_LIST)
# ============================================================================

class Component(IntFlag):
    DEPTH_CAM = 0x00010000
    IR_CAM_LEFT = 0x00040000
    IR_CAM_RIGHT = 0x00080000
    RGB_CAM_LEFT = 0x00100000
    RGB_CAM_RIGHT = 0x00200000
    LASER = 0x00400000
    IMU = 0x00800000
    BRIGHT_HISTO = 0x01000000
    STORAGE = 0x02000000
    DEVICE = 0x80000000

    RGB_CAM = RGB_CAM_LEFT


# ============================================================================
# Pixel formats (TY_PIXEL_FORMAT_LIST)
# ============================================================================

TY_PIXEL_8BIT = 0x1 << 28
TY_PIXEL_16BIT = 0x2 << 28
TY_PIXEL_24BIT = 0x3 << 28
TY_PIXEL_BITS_MASK = 0xF << 28


class PixelFormat(IntEnum):
    UNDEFINED = 0

    MONO = TY_PIXEL_8BIT | (0x0 << 24)
    BAYER8GB = TY_PIXEL_8BIT | (0x1 << 24)
    BAYER8BG = TY_PIXEL_8BIT | (0x2 << 24)
    BAYER8GR = TY_PIXEL_8BIT | (0x3 << 24)
    BAYER8RG = TY_PIXEL_8BIT | (0x4 << 24)

    DEPTH16 = TY_PIXEL_16BIT | (0x0 << 24)
    YVYU = TY_PIXEL_16BIT | (0x1 << 24)
    YUYV = TY_PIXEL_16BIT | (0x2 << 24)
    MONO16 = TY_PIXEL_16BIT | (0x3 << 24)

    RGB = TY_PIXEL_24BIT | (0x0 << 24)
    BGR = TY_PIXEL_24BIT | (0x1 << 24)
    JPEG = TY_PIXEL_24BIT | (0x2 << 24)
    MJPG = TY_PIXEL_24BIT | (0x3 << 24)
