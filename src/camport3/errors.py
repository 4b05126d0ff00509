"""
Status-code to exception mapping.

Every SDK call returns a TY_STATUS. Anything other than TY_STATUS_OK is raised
as a TycamError carrying the raw status, so callers can still match on codes
the binding does not know about.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional

from .constants import Status, format_firmware_errors


class ErrorCode(IntEnum):
    ERROR = Status.ERROR
    NOT_INITED = Status.NOT_INITED
    NOT_IMPLEMENTED = Status.NOT_IMPLEMENTED
    NOT_PERMITTED = Status.NOT_PERMITTED
    DEVICE_ERROR = Status.DEVICE_ERROR
    INVALID_PARAMETER = Status.INVALID_PARAMETER
    INVALID_HANDLE = Status.INVALID_HANDLE
    INVALID_COMPONENT = Status.INVALID_COMPONENT
    INVALID_FEATURE = Status.INVALID_FEATURE
    WRONG_TYPE = Status.WRONG_TYPE
    WRONG_SIZE = Status.WRONG_SIZE
    OUT_OF_MEMORY = Status.OUT_OF_MEMORY
    OUT_OF_RANGE = Status.OUT_OF_RANGE
    TIMEOUT = Status.TIMEOUT
    WRONG_MODE = Status.WRONG_MODE
    BUSY = Status.BUSY
    IDLE = Status.IDLE
    NO_DATA = Status.NO_DATA
    NO_BUFFER = Status.NO_BUFFER
    NULL_POINTER = Status.NULL_POINTER
    READONLY_FEATURE = Status.READONLY_FEATURE
    INVALID_DESCRIPTOR = Status.INVALID_DESCRIPTOR
    INVALID_INTERFACE = Status.INVALID_INTERFACE
    FIRMWARE_ERROR = Status.FIRMWARE_ERROR
    DEV_EPERM = Status.DEV_EPERM
    DEV_EIO = Status.DEV_EIO
    DEV_ENOMEM = Status.DEV_ENOMEM
    DEV_EBUSY = Status.DEV_EBUSY
    DEV_EINVAL = Status.DEV_EINVAL

    @property
    def message(self) -> str:
        return _MESSAGES[self]

    @classmethod
    def from_status(cls, status: int) -> Optional[ErrorCode]:
        try:
            return cls(status)
        except ValueError:
            return None


_MESSAGES = {
    ErrorCode.ERROR: "error",
    ErrorCode.NOT_INITED: "not inited",
    ErrorCode.NOT_IMPLEMENTED: "not implemented",
    ErrorCode.NOT_PERMITTED: "not permitted",
    ErrorCode.DEVICE_ERROR: "device error",
    ErrorCode.INVALID_PARAMETER: "invalid parameter",
    ErrorCode.INVALID_HANDLE: "invalid handle",
    ErrorCode.INVALID_COMPONENT: "invalid component",
    ErrorCode.INVALID_FEATURE: "invalid feature",
    ErrorCode.WRONG_TYPE: "wrong type",
    ErrorCode.WRONG_SIZE: "wrong size",
    ErrorCode.OUT_OF_MEMORY: "out of memory",
    ErrorCode.OUT_OF_RANGE: "out of range",
    ErrorCode.TIMEOUT: "timeout",
    ErrorCode.WRONG_MODE: "wrong mode",
    ErrorCode.BUSY: "busy",
    ErrorCode.IDLE: "idle",
    ErrorCode.NO_DATA: "no data",
    ErrorCode.NO_BUFFER: "no buffer",
    ErrorCode.NULL_POINTER: "null pointer",
    ErrorCode.READONLY_FEATURE: "readonly feature",
    ErrorCode.INVALID_DESCRIPTOR: "invalid descriptor",
    ErrorCode.INVALID_INTERFACE: "invalid interface",
    ErrorCode.FIRMWARE_ERROR: "firmware error",
    ErrorCode.DEV_EPERM: "dev error permission",
    ErrorCode.DEV_EIO: "dev error io",
    ErrorCode.DEV_ENOMEM: "dev error no memory",
    ErrorCode.DEV_EBUSY: "dev error busy",
    ErrorCode.DEV_EINVAL: "dev error invalid",
}


class TycamError(RuntimeError):
    """A camport3 SDK call returned a non-OK status."""

    def __init__(
        self,
        status: int,
        message: Optional[str] = None,
        *,
        firmware_errcode: Optional[int] = None,
        what: Optional[str] = None,
    ):
        self.status = int(status)
        self.error_code = ErrorCode.from_status(self.status)
        self.firmware_errcode = firmware_errcode

        if message is None:
            if self.error_code is not None:
                message = self.error_code.message
            else:
                message = f"unknown status {self.status}"
        self.message = message

        text = f"{message} ({self.status})"
        if what:
            text = f"{what}: {text}"
        if firmware_errcode:
            flags = ", ".join(format_firmware_errors(firmware_errcode)) or "unknown"
            text += f" [firmware error 0x{firmware_errcode:08x}: {flags}]"
        super().__init__(text)


class IncompatibleLibraryError(TycamError):
    """The loaded libtycam is not ABI compatible with these declarations."""


def error_string(status: int, library: Any = None) -> str:
    """Human readable text for a status, preferring the library's own table."""
    if library is not None:
        raw = library.TYErrorString(int(status))
        if raw:
            return raw.decode("utf-8", errors="replace")
    code = ErrorCode.from_status(status)
    if code is not None:
        return code.message
    if status == Status.OK:
        return "ok"
    return f"unknown status {status}"


def check_status(status: int, library: Any = None, what: Optional[str] = None) -> None:
    """Raise TycamError unless status is TY_STATUS_OK."""
    if status == Status.OK:
        return
    raise TycamError(status, error_string(status, library), what=what)
