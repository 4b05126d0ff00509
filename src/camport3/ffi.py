"""
ffi.py - raw ctypes declarations for the camport3 SDK (libtycam).

Struct layouts and function signatures mirror TYApi.h. Nothing in this module
adds behaviour: it only declares the C ABI and locates the shared library.
The handle wrappers in camport3.binding are built on top of it.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# ============================================================================
# Scalar typedefs (must match TYApi.h)
# ============================================================================

TY_STATUS = ctypes.c_int32
TY_INTERFACE_TYPE = ctypes.c_int32
TY_FW_ERRORCODE = ctypes.c_uint32
TY_COMPONENT_ID = ctypes.c_int32
TY_PIXEL_FORMAT = ctypes.c_int32

TY_INTERFACE_HANDLE = ctypes.c_void_p
TY_DEV_HANDLE = ctypes.c_void_p

TY_MAX_IMAGE_COUNT = 10

# ============================================================================
# C Struct Definitions
# ============================================================================


class TY_VERSION_INFO(ctypes.Structure):
    _fields_ = [
        ("major", ctypes.c_int32),
        ("minor", ctypes.c_int32),
        ("patch", ctypes.c_int32),
        ("reserved", ctypes.c_int32),
    ]


class TY_DEVICE_NET_INFO(ctypes.Structure):
    _fields_ = [
        ("mac", ctypes.c_char * 32),
        ("ip", ctypes.c_char * 32),
        ("netmask", ctypes.c_char * 32),
        ("gateway", ctypes.c_char * 32),
        ("broadcast", ctypes.c_char * 32),
        ("reserved", ctypes.c_char * 96),
    ]


class TY_DEVICE_USB_INFO(ctypes.Structure):
    _fields_ = [
        ("bus", ctypes.c_int),
        ("addr", ctypes.c_int),
        ("reserved", ctypes.c_char * 248),
    ]


class TY_INTERFACE_INFO(ctypes.Structure):
    _fields_ = [
        ("name", ctypes.c_char * 32),
        ("id", ctypes.c_char * 32),
        ("type", TY_INTERFACE_TYPE),
        ("reserved", ctypes.c_char * 4),
        ("netInfo", TY_DEVICE_NET_INFO),
    ]


class _TY_DEVICE_LINK_INFO(ctypes.Union):
    _fields_ = [
        ("netInfo", TY_DEVICE_NET_INFO),
        ("usbInfo", TY_DEVICE_USB_INFO),
    ]


class TY_DEVICE_BASE_INFO(ctypes.Structure):
    _anonymous_ = ("_link",)
    _fields_ = [
        ("iface", TY_INTERFACE_INFO),
        ("id", ctypes.c_char * 32),
        ("vendorName", ctypes.c_char * 32),
        ("userDefinedName", ctypes.c_char * 32),
        ("modelName", ctypes.c_char * 32),
        ("hardwareVersion", TY_VERSION_INFO),
        ("firmwareVersion", TY_VERSION_INFO),
        ("_link", _TY_DEVICE_LINK_INFO),
        ("buildHash", ctypes.c_char * 256),
        ("configVersion", ctypes.c_char * 256),
        ("reserved", ctypes.c_char * 256),
    ]


class TY_IMAGE_DATA(ctypes.Structure):
    _fields_ = [
        ("timestamp", ctypes.c_uint64),  # microseconds
        ("imageIndex", ctypes.c_int32),
        ("status", ctypes.c_int32),
        ("componentID", TY_COMPONENT_ID),
        ("size", ctypes.c_int32),
        ("buffer", ctypes.c_void_p),
        ("width", ctypes.c_int32),
        ("height", ctypes.c_int32),
        ("pixelFormat", TY_PIXEL_FORMAT),
        ("reserved", ctypes.c_int32 * 9),
    ]


class TY_FRAME_DATA(ctypes.Structure):
    _fields_ = [
        ("userBuffer", ctypes.c_void_p),
        ("bufferSize", ctypes.c_int32),
        ("validCount", ctypes.c_int32),
        ("reserved", ctypes.c_int32 * 6),
        ("image", TY_IMAGE_DATA * TY_MAX_IMAGE_COUNT),
    ]


# ============================================================================
# Function Signatures
# ============================================================================

_P = ctypes.POINTER

FUNCTIONS: tuple[tuple[str, Any, list[Any]], ...] = (
    # Lifecycle
    ("TYErrorString", ctypes.c_char_p, [TY_STATUS]),
    ("_TYInitLib", TY_STATUS, []),
    ("TYDeinitLib", TY_STATUS, []),
    ("TYLibVersion", TY_STATUS, [_P(TY_VERSION_INFO)]),

    # Interfaces
    ("TYUpdateInterfaceList", TY_STATUS, []),
    ("TYGetInterfaceNumber", TY_STATUS, [_P(ctypes.c_uint32)]),
    ("TYGetInterfaceList", TY_STATUS,
     [_P(TY_INTERFACE_INFO), ctypes.c_uint32, _P(ctypes.c_uint32)]),
    ("TYHasInterface", TY_STATUS, [ctypes.c_char_p, _P(ctypes.c_bool)]),
    ("TYOpenInterface", TY_STATUS, [ctypes.c_char_p, _P(TY_INTERFACE_HANDLE)]),
    ("TYCloseInterface", TY_STATUS, [TY_INTERFACE_HANDLE]),

    # Devices
    ("TYUpdateDeviceList", TY_STATUS, [TY_INTERFACE_HANDLE]),
    ("TYGetDeviceNumber", TY_STATUS, [TY_INTERFACE_HANDLE, _P(ctypes.c_uint32)]),
    ("TYGetDeviceList", TY_STATUS,
     [TY_INTERFACE_HANDLE, _P(TY_DEVICE_BASE_INFO), ctypes.c_uint32, _P(ctypes.c_uint32)]),
    ("TYHasDevice", TY_STATUS,
     [TY_INTERFACE_HANDLE, ctypes.c_char_p, _P(ctypes.c_bool)]),
    ("TYOpenDevice", TY_STATUS,
     [TY_INTERFACE_HANDLE, ctypes.c_char_p, _P(TY_DEV_HANDLE), _P(TY_FW_ERRORCODE)]),
    ("TYOpenDeviceWithIP", TY_STATUS,
     [TY_INTERFACE_HANDLE, ctypes.c_char_p, _P(TY_DEV_HANDLE)]),
    ("TYForceDeviceIP", TY_STATUS,
     [TY_INTERFACE_HANDLE, ctypes.c_char_p, ctypes.c_char_p, ctypes.c_char_p, ctypes.c_char_p]),
    ("TYCloseDevice", TY_STATUS, [TY_DEV_HANDLE, ctypes.c_bool]),
    ("TYGetDeviceInfo", TY_STATUS, [TY_DEV_HANDLE, _P(TY_DEVICE_BASE_INFO)]),

    # Components
    ("TYGetComponentIDs", TY_STATUS, [TY_DEV_HANDLE, _P(TY_COMPONENT_ID)]),
    ("TYGetEnabledComponents", TY_STATUS, [TY_DEV_HANDLE, _P(TY_COMPONENT_ID)]),
    ("TYEnableComponents", TY_STATUS, [TY_DEV_HANDLE, TY_COMPONENT_ID]),
    ("TYDisableComponents", TY_STATUS, [TY_DEV_HANDLE, TY_COMPONENT_ID]),

    # Capture
    ("TYGetFrameBufferSize", TY_STATUS, [TY_DEV_HANDLE, _P(ctypes.c_uint32)]),
    ("TYEnqueueBuffer", TY_STATUS, [TY_DEV_HANDLE, ctypes.c_void_p, ctypes.c_uint32]),
    ("TYClearBufferQueue", TY_STATUS, [TY_DEV_HANDLE]),
    ("TYStartCapture", TY_STATUS, [TY_DEV_HANDLE]),
    ("TYStopCapture", TY_STATUS, [TY_DEV_HANDLE]),
    ("TYSendSoftTrigger", TY_STATUS, [TY_DEV_HANDLE]),
    ("TYFetchFrame", TY_STATUS, [TY_DEV_HANDLE, _P(TY_FRAME_DATA), ctypes.c_int32]),
)


def declare(lib: Any) -> Any:
    """Set argtypes/restype on every exported function of lib.

    lib can be a ctypes.CDLL or any object carrying the same attributes.
    Raises AttributeError if an export is missing.
    """
    for name, restype, argtypes in FUNCTIONS:
        func = getattr(lib, name)
        func.argtypes = argtypes
        func.restype = restype
    return lib


# ============================================================================
# Load Library
# ============================================================================

LIBRARY_ENV_VAR = "CAMPORT3_LIBRARY"


class LibraryNotFoundError(FileNotFoundError):
    pass


def _library_filename() -> str:
    if sys.platform.startswith("win"):
        return "tycam.dll"
    if sys.platform == "darwin":
        return "libtycam.dylib"
    return "libtycam.so"


def _candidate_paths(path: Optional[str | os.PathLike] = None) -> list[Path]:
    filename = _library_filename()
    candidates = []

    if path:
        path = Path(path)
        candidates.append(path / filename if path.is_dir() else path)

    env_path = os.environ.get(LIBRARY_ENV_VAR)
    if env_path:
        env_path = Path(env_path)
        candidates.append(env_path / filename if env_path.is_dir() else env_path)

    # The vendor conda package installs the library under $CONDA_PREFIX/lib
    conda_prefix = os.environ.get("CONDA_PREFIX")
    if conda_prefix:
        candidates.append(Path(conda_prefix) / "lib" / filename)

    found = ctypes.util.find_library("tycam")
    if found:
        candidates.append(Path(found))

    candidates += [
        Path("/usr/local/lib") / filename,
        Path("/usr/lib") / filename,
    ]
    return candidates


def find_library(path: Optional[str | os.PathLike] = None) -> Path:
    """Find the camport3 shared library.

    An explicitly given path must exist; it does not fall through to the
    other locations.
    """
    candidates = _candidate_paths(path)
    if path:
        candidates = candidates[:1]

    for candidate in candidates:
        # find_library can return a bare soname, which dlopen resolves itself
        if candidate.exists() or (not candidate.is_absolute() and candidate.name == str(candidate)):
            return candidate

    raise LibraryNotFoundError(
        f"Could not find {_library_filename()}. Searched: {[str(p) for p in candidates]}\n"
        f"Set {LIBRARY_ENV_VAR} or pass library_path to point at the camport3 SDK."
    )


class Library:
    """A loaded, declared camport3 library.

    The SDK keeps global state, so init/deinit are reference counted here and
    shared by every Context using the same Library.
    """

    def __init__(self, lib: Any, path: str = "<unknown>"):
        self.lib = declare(lib)
        self.path = path
        self.init_count = 0

    def __getattr__(self, name: str) -> Any:
        # Only reached for attributes not set in __init__: forward exports
        if name.startswith("__"):
            raise AttributeError(name)
        return getattr(self.__dict__["lib"], name)

    def __repr__(self) -> str:
        return f"Library({self.path!r}, init_count={self.init_count})"


_libraries: dict[str, Library] = {}


def load_library(path: Optional[str | os.PathLike] = None) -> Library:
    """Locate, load and declare libtycam. Loaded libraries are cached by path."""
    lib_path = str(find_library(path))
    if lib_path in _libraries:
        return _libraries[lib_path]

    try:
        cdll = ctypes.CDLL(lib_path)
    except OSError as exc:
        raise LibraryNotFoundError(f"Failed to load {lib_path}: {exc}") from exc

    library = Library(cdll, lib_path)
    _libraries[lib_path] = library
    logger.info("Loaded camport3 library from %s", lib_path)
    return library
