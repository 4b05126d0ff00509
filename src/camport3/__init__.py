# camport3 - Python binding for the Percipio camport3 (libtycam) SDK

__version__ = "0.1.0"

# Handle wrappers
from camport3.binding import (
    Context,
    Interface,
    Device,
    lib_version,
    image_to_array,
)

# Raw declarations and library loading
from camport3.ffi import (
    Library,
    LibraryNotFoundError,
    find_library,
    load_library,
)

# Errors
from camport3.errors import (
    ErrorCode,
    TycamError,
    IncompatibleLibraryError,
    check_status,
)

# Vendor constants
from camport3.constants import (
    Status,
    InterfaceType,
    FirmwareError,
    Component,
    PixelFormat,
    format_interface_type,
    format_firmware_errors,
)

# Core types
from camport3.types import (
    VersionInfo,
    NetInfo,
    UsbInfo,
    InterfaceInfo,
    DeviceInfo,
    Image,
    Frame,
)

# Configuration
from camport3.config import (
    CamportConfig,
    create_default_config,
    load_config,
    save_config,
)

__all__ = [
    # Handles
    "Context",
    "Interface",
    "Device",
    "lib_version",
    "image_to_array",
    # Library
    "Library",
    "LibraryNotFoundError",
    "find_library",
    "load_library",
    # Errors
    "ErrorCode",
    "TycamError",
    "IncompatibleLibraryError",
    "check_status",
    # Constants
    "Status",
    "InterfaceType",
    "FirmwareError",
    "Component",
    "PixelFormat",
    "format_interface_type",
    "format_firmware_errors",
    # Core types
    "VersionInfo",
    "NetInfo",
    "UsbInfo",
    "InterfaceInfo",
    "DeviceInfo",
    "Image",
    "Frame",
    # Configuration
    "CamportConfig",
    "create_default_config",
    "load_config",
    "save_config",
]
