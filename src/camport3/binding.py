"""
binding.py - handle wrappers around the raw camport3 declarations.

Usage:
    from camport3 import Context

    with Context() as ctx:
        print(f"library version: {ctx.version()}")
        for info in ctx.list_interfaces():
            with ctx.open_interface(info.id) as iface:
                iface.update_device_list()
                for dev in iface.get_device_list():
                    print(f"{dev.model_name}: {dev.id}")

Ownership follows the SDK: a Device belongs to the Interface it was opened
on, which belongs to the Context. Closing a parent closes its children first.
"""

from __future__ import annotations

import ctypes
import logging
from typing import Optional

import numpy as np

from .config import CamportConfig, create_default_config
from .constants import (
    TY_LIB_VERSION_MAJOR,
    TY_LIB_VERSION_MINOR,
    Component,
    InterfaceType,
    PixelFormat,
    Status,
    format_firmware_errors,
    has_net_info,
    has_usb_info,
)
from .errors import IncompatibleLibraryError, TycamError, check_status, error_string
from .ffi import (
    TY_COMPONENT_ID,
    TY_DEV_HANDLE,
    TY_DEVICE_BASE_INFO,
    TY_FRAME_DATA,
    TY_FW_ERRORCODE,
    TY_INTERFACE_HANDLE,
    TY_INTERFACE_INFO,
    TY_MAX_IMAGE_COUNT,
    TY_VERSION_INFO,
    Library,
    load_library,
)
from .types import (
    DeviceInfo,
    Frame,
    Image,
    InterfaceInfo,
    NetInfo,
    UsbInfo,
    VersionInfo,
    parse_address,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Marshaling helpers
# ============================================================================


def _encode(text, what: str = "string") -> bytes:
    """Encode a Python string for a const char* argument."""
    if isinstance(text, bytes):
        data = text
    else:
        data = str(text).encode("utf-8")
    if b"\0" in data:
        raise ValueError(f"{what} must not contain NUL bytes: {text!r}")
    return data


def _decode(raw: bytes) -> str:
    # char[N] fields come back as bytes already cut at the first NUL
    return raw.decode("utf-8", errors="replace")


def _as_int32(mask: int) -> int:
    """Reinterpret an unsigned 32-bit flag set as the SDK's int32."""
    return ctypes.c_int32(int(mask) & 0xFFFFFFFF).value


def _close_all(children) -> Optional[TycamError]:
    """Close every child, returning the first failure instead of stopping at it."""
    first = None
    for child in list(children):
        try:
            child.close()
        except TycamError as exc:
            logger.warning("Closing %r failed: %s", child, exc)
            if first is None:
                first = exc
    return first


def _version_from_c(c_ver: TY_VERSION_INFO) -> VersionInfo:
    return VersionInfo(major=c_ver.major, minor=c_ver.minor, patch=c_ver.patch)


def _net_info_from_c(c_net) -> NetInfo:
    return NetInfo(
        mac=_decode(c_net.mac),
        ip=parse_address(_decode(c_net.ip)),
        netmask=parse_address(_decode(c_net.netmask)),
        gateway=parse_address(_decode(c_net.gateway)),
        broadcast=parse_address(_decode(c_net.broadcast)),
    )


def _interface_info_from_c(c_iface: TY_INTERFACE_INFO) -> InterfaceInfo:
    iface_type = InterfaceType(c_iface.type)
    return InterfaceInfo(
        name=_decode(c_iface.name),
        id=_decode(c_iface.id),
        type=iface_type,
        net_info=_net_info_from_c(c_iface.netInfo) if has_net_info(iface_type) else None,
    )


def _device_info_from_c(c_dev: TY_DEVICE_BASE_INFO) -> DeviceInfo:
    iface = _interface_info_from_c(c_dev.iface)

    # netInfo/usbInfo share a union, the interface type says which is live
    net_info = _net_info_from_c(c_dev.netInfo) if has_net_info(iface.type) else None
    usb_info = None
    if has_usb_info(iface.type):
        usb_info = UsbInfo(bus=c_dev.usbInfo.bus, addr=c_dev.usbInfo.addr)

    return DeviceInfo(
        iface=iface,
        id=_decode(c_dev.id),
        vendor_name=_decode(c_dev.vendorName),
        user_defined_name=_decode(c_dev.userDefinedName),
        model_name=_decode(c_dev.modelName),
        hardware_version=_version_from_c(c_dev.hardwareVersion),
        firmware_version=_version_from_c(c_dev.firmwareVersion),
        build_hash=_decode(c_dev.buildHash),
        config_version=_decode(c_dev.configVersion),
        net_info=net_info,
        usb_info=usb_info,
    )


# (dtype, trailing channel shape) per pixel format
_PIXEL_LAYOUTS = {
    PixelFormat.MONO: (np.uint8, ()),
    PixelFormat.BAYER8GB: (np.uint8, ()),
    PixelFormat.BAYER8BG: (np.uint8, ()),
    PixelFormat.BAYER8GR: (np.uint8, ()),
    PixelFormat.BAYER8RG: (np.uint8, ()),
    PixelFormat.DEPTH16: (np.uint16, ()),
    PixelFormat.MONO16: (np.uint16, ()),
    PixelFormat.YVYU: (np.uint8, (2,)),
    PixelFormat.YUYV: (np.uint8, (2,)),
    PixelFormat.RGB: (np.uint8, (3,)),
    PixelFormat.BGR: (np.uint8, (3,)),
}


def image_to_array(address: Optional[int], size: int, width: int, height: int,
                   pixel_format: int) -> np.ndarray:
    """
    Copy an SDK image buffer into a numpy array.

    Known uncompressed formats are shaped (height, width[, channels]).
    Compressed formats (JPEG/MJPG), unknown formats and buffers shorter than
    width * height pixels are returned as raw 1-D uint8 bytes.
    """
    if not address or size <= 0:
        return np.empty(0, dtype=np.uint8)

    buffer = ctypes.cast(address, ctypes.POINTER(ctypes.c_uint8 * size))
    raw = np.frombuffer(buffer.contents, dtype=np.uint8)

    layout = _PIXEL_LAYOUTS.get(pixel_format)
    if layout is None or width <= 0 or height <= 0:
        return raw.copy()

    dtype, channels = layout
    nbytes = width * height * np.dtype(dtype).itemsize * int(np.prod(channels, dtype=np.int64))
    if nbytes > size:
        return raw.copy()

    return raw[:nbytes].view(dtype).reshape((height, width) + channels).copy()


def _image_from_c(c_img) -> Image:
    return Image(
        component_id=c_img.componentID & 0xFFFFFFFF,
        timestamp=c_img.timestamp,
        image_index=c_img.imageIndex,
        status=c_img.status,
        width=c_img.width,
        height=c_img.height,
        pixel_format=c_img.pixelFormat & 0xFFFFFFFF,
        data=image_to_array(c_img.buffer, c_img.size, c_img.width, c_img.height,
                            c_img.pixelFormat & 0xFFFFFFFF),
    )


# ============================================================================
# Library-level calls
# ============================================================================


def lib_version(library: Library) -> VersionInfo:
    """Version of the loaded library. Valid before TYInitLib."""
    c_ver = TY_VERSION_INFO()
    check_status(library.TYLibVersion(ctypes.byref(c_ver)), library, "TYLibVersion")
    return _version_from_c(c_ver)


def check_compatible(version: VersionInfo) -> None:
    """Same guard as the header's inline TYInitLib: same major, minor not older."""
    if version.major != TY_LIB_VERSION_MAJOR or version.minor < TY_LIB_VERSION_MINOR:
        raise IncompatibleLibraryError(
            Status.ERROR,
            f"libtycam {version} is not compatible with the "
            f"{TY_LIB_VERSION_MAJOR}.{TY_LIB_VERSION_MINOR} API declarations",
        )


# ============================================================================
# Context
# ============================================================================


class Context:
    """An initialised camport3 library. Entry point for interface discovery."""

    def __init__(self, library: Optional[Library] = None, config: Optional[CamportConfig] = None):
        self.config = config if config is not None else create_default_config()
        self.library = library if library is not None else load_library(self.config.library_path)
        self._interfaces: list[Interface] = []
        self._closed = True

        check_compatible(lib_version(self.library))
        if self.library.init_count == 0:
            check_status(self.library._TYInitLib(), self.library, "TYInitLib")
            logger.debug("camport3 library initialized")
        self.library.init_count += 1
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ValueError("Context is closed")

    def close(self) -> None:
        """Close every open interface, then deinit the library if unused."""
        if self._closed:
            return
        self._closed = True
        error = _close_all(self._interfaces)

        self.library.init_count -= 1
        if self.library.init_count == 0:
            status = self.library.TYDeinitLib()
            logger.debug("camport3 library deinitialized")
            if error is None:
                check_status(status, self.library, "TYDeinitLib")
            elif status != Status.OK:
                logger.warning("TYDeinitLib failed: %s", error_string(status, self.library))
        if error is not None:
            raise error

    def error_string(self, status: int) -> str:
        return error_string(status, self.library)

    def version(self) -> VersionInfo:
        return lib_version(self.library)

    def update_interface_list(self) -> None:
        self._ensure_open()
        check_status(self.library.TYUpdateInterfaceList(), self.library, "TYUpdateInterfaceList")

    def get_interface_number(self) -> int:
        self._ensure_open()
        n = ctypes.c_uint32(0)
        check_status(self.library.TYGetInterfaceNumber(ctypes.byref(n)),
                     self.library, "TYGetInterfaceNumber")
        return n.value

    def get_interface_list(self, n: int = 0) -> list[InterfaceInfo]:
        """
        Read the interface list found by the last update_interface_list().

        n is the buffer size; 0 asks the SDK for the current count.
        """
        self._ensure_open()
        if n < 0:
            raise ValueError(f"n must be >= 0, got {n}")
        if n == 0:
            n = self.get_interface_number()
        if n == 0:
            return []

        c_infos = (TY_INTERFACE_INFO * n)()
        filled = ctypes.c_uint32(0)
        check_status(self.library.TYGetInterfaceList(c_infos, n, ctypes.byref(filled)),
                     self.library, "TYGetInterfaceList")
        return [_interface_info_from_c(c_infos[i]) for i in range(min(filled.value, n))]

    def list_interfaces(self, types: Optional[int] = None) -> list[InterfaceInfo]:
        """Refresh the interface list and keep those matching the type flags."""
        if types is None:
            types = self.config.interface_mask
        self.update_interface_list()
        infos = self.get_interface_list()
        if types == InterfaceType.ALL:
            return infos
        return [info for info in infos if info.type & types]

    def has_interface(self, interface_id: str) -> bool:
        self._ensure_open()
        value = ctypes.c_bool(False)
        check_status(
            self.library.TYHasInterface(_encode(interface_id, "interface id"), ctypes.byref(value)),
            self.library, "TYHasInterface",
        )
        return bool(value.value)

    def open_interface(self, interface_id: str) -> Interface:
        self._ensure_open()
        handle = TY_INTERFACE_HANDLE()
        check_status(
            self.library.TYOpenInterface(_encode(interface_id, "interface id"), ctypes.byref(handle)),
            self.library, f"TYOpenInterface({interface_id!r})",
        )
        if not handle.value:
            raise TycamError(Status.INVALID_HANDLE, error_string(Status.INVALID_HANDLE, self.library),
                             what=f"TYOpenInterface({interface_id!r}) returned NULL")

        iface = Interface(self, handle.value, interface_id)
        self._interfaces.append(iface)
        logger.debug("Opened interface %s", interface_id)
        return iface

    @property
    def interfaces(self) -> list[Interface]:
        """Interfaces currently open on this context."""
        return list(self._interfaces)

    def _forget(self, iface: Interface) -> None:
        if iface in self._interfaces:
            self._interfaces.remove(iface)


# ============================================================================
# Interface
# ============================================================================


class Interface:
    """An open network/USB interface (TY_INTERFACE_HANDLE)."""

    def __init__(self, context: Context, handle: int, interface_id: str):
        self.context = context
        self.id = interface_id
        self._handle = handle
        self._devices: list[Device] = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"Interface({self.id!r}, {state})"

    @property
    def library(self) -> Library:
        return self.context.library

    @property
    def closed(self) -> bool:
        return self._handle is None

    @property
    def handle(self) -> int:
        self._ensure_open()
        return self._handle

    def _ensure_open(self) -> None:
        if self._handle is None:
            raise ValueError(f"Interface {self.id!r} is closed")

    def close(self) -> None:
        """Close every device opened on this interface, then the interface."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        error = _close_all(self._devices)
        self.context._forget(self)

        status = self.library.TYCloseInterface(handle)
        logger.debug("Closed interface %s", self.id)
        if error is None:
            check_status(status, self.library, "TYCloseInterface")
        else:
            if status != Status.OK:
                logger.warning("TYCloseInterface(%s) failed: %s", self.id,
                               error_string(status, self.library))
            raise error

    def update_device_list(self) -> None:
        check_status(self.library.TYUpdateDeviceList(self.handle), self.library, "TYUpdateDeviceList")

    def get_device_number(self) -> int:
        n = ctypes.c_uint32(0)
        check_status(self.library.TYGetDeviceNumber(self.handle, ctypes.byref(n)),
                     self.library, "TYGetDeviceNumber")
        return n.value

    def get_device_list(self, n: int = 0) -> list[DeviceInfo]:
        """Devices found by the last update_device_list(). n=0 asks for the count."""
        if n < 0:
            raise ValueError(f"n must be >= 0, got {n}")
        if n == 0:
            n = self.get_device_number()
        if n == 0:
            return []

        c_infos = (TY_DEVICE_BASE_INFO * n)()
        filled = ctypes.c_uint32(0)
        check_status(self.library.TYGetDeviceList(self.handle, c_infos, n, ctypes.byref(filled)),
                     self.library, "TYGetDeviceList")
        return [_device_info_from_c(c_infos[i]) for i in range(min(filled.value, n))]

    def has_device(self, device_id: str) -> bool:
        value = ctypes.c_bool(False)
        check_status(
            self.library.TYHasDevice(self.handle, _encode(device_id, "device id"), ctypes.byref(value)),
            self.library, "TYHasDevice",
        )
        return bool(value.value)

    def open_device(self, device_id: str) -> Device:
        """
        Open a device by id.

        A device that opens but reports a firmware error code is closed again
        and raised as DEVICE_ERROR with the code attached.
        """
        what = f"TYOpenDevice({device_id!r})"
        handle = TY_DEV_HANDLE()
        fw_errcode = TY_FW_ERRORCODE(0)
        check_status(
            self.library.TYOpenDevice(self.handle, _encode(device_id, "device id"),
                                      ctypes.byref(handle), ctypes.byref(fw_errcode)),
            self.library, what,
        )
        if not handle.value:
            raise TycamError(Status.DEV_EINVAL, error_string(Status.DEV_EINVAL, self.library),
                             what=f"{what} returned NULL")

        if fw_errcode.value != 0:
            logger.warning("Device %s reported firmware error 0x%08x (%s)", device_id,
                           fw_errcode.value, ", ".join(format_firmware_errors(fw_errcode.value)))
            status = self.library.TYCloseDevice(handle.value, False)
            if status != Status.OK:
                logger.warning("Closing %s after firmware error failed: %s",
                               device_id, error_string(status, self.library))
            raise TycamError(Status.DEVICE_ERROR, error_string(Status.DEVICE_ERROR, self.library),
                             firmware_errcode=fw_errcode.value, what=what)

        return self._adopt(handle.value, device_id)

    def open_device_with_ip(self, ip: str) -> Device:
        what = f"TYOpenDeviceWithIP({ip!r})"
        handle = TY_DEV_HANDLE()
        check_status(
            self.library.TYOpenDeviceWithIP(self.handle, _encode(ip, "ip"), ctypes.byref(handle)),
            self.library, what,
        )
        if not handle.value:
            raise TycamError(Status.DEV_EINVAL, error_string(Status.DEV_EINVAL, self.library),
                             what=f"{what} returned NULL")
        return self._adopt(handle.value, str(ip))

    def force_device_ip(self, mac: str, ip: str, netmask: str, gateway: str) -> None:
        """Assign a temporary IP to the device with the given MAC (until reboot)."""
        check_status(
            self.library.TYForceDeviceIP(
                self.handle,
                _encode(mac, "mac"),
                _encode(ip, "ip"),
                _encode(netmask, "netmask"),
                _encode(gateway, "gateway"),
            ),
            self.library, f"TYForceDeviceIP({mac!r})",
        )
        logger.debug("Forced device %s to ip %s", mac, ip)

    @property
    def devices(self) -> list[Device]:
        """Devices currently open on this interface."""
        return list(self._devices)

    def _adopt(self, handle: int, device_id: str) -> Device:
        dev = Device(self, handle, device_id)
        self._devices.append(dev)
        logger.debug("Opened device %s on %s", device_id, self.id)
        return dev

    def _forget(self, dev: Device) -> None:
        if dev in self._devices:
            self._devices.remove(dev)


# ============================================================================
# Device
# ============================================================================


class Device:
    """An open camera (TY_DEV_HANDLE)."""

    def __init__(self, interface: Interface, handle: int, device_id: str):
        self.interface = interface
        self.id = device_id
        self._handle = handle
        self._buffers: list[ctypes.Array] = []
        self._capturing = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"Device({self.id!r}, {state})"

    @property
    def library(self) -> Library:
        return self.interface.library

    @property
    def closed(self) -> bool:
        return self._handle is None

    @property
    def capturing(self) -> bool:
        return self._capturing

    @property
    def handle(self) -> int:
        self._ensure_open()
        return self._handle

    def _ensure_open(self) -> None:
        if self._handle is None:
            raise ValueError(f"Device {self.id!r} is closed")

    def close(self, reboot: bool = False) -> None:
        """Close the device; reboot=True asks the camera to restart."""
        if self._handle is None:
            return
        try:
            if self._capturing:
                self.stop_capture()
        finally:
            handle, self._handle = self._handle, None
            self.interface._forget(self)
            try:
                check_status(self.library.TYCloseDevice(handle, bool(reboot)),
                             self.library, "TYCloseDevice")
            finally:
                # the SDK may touch queued buffers until the device is closed
                self._buffers = []
                self._capturing = False
            logger.debug("Closed device %s%s", self.id, " (reboot)" if reboot else "")

    def info(self) -> DeviceInfo:
        c_info = TY_DEVICE_BASE_INFO()
        check_status(self.library.TYGetDeviceInfo(self.handle, ctypes.byref(c_info)),
                     self.library, "TYGetDeviceInfo")
        return _device_info_from_c(c_info)

    # ------------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------------

    def _get_components(self, func_name: str) -> Component:
        value = TY_COMPONENT_ID(0)
        check_status(getattr(self.library, func_name)(self.handle, ctypes.byref(value)),
                     self.library, func_name)
        return Component(value.value & 0xFFFFFFFF)

    def component_ids(self) -> Component:
        """All components the device has."""
        return self._get_components("TYGetComponentIDs")

    def enabled_components(self) -> Component:
        return self._get_components("TYGetEnabledComponents")

    def enable_components(self, mask: int) -> None:
        check_status(self.library.TYEnableComponents(self.handle, _as_int32(mask)),
                     self.library, "TYEnableComponents")

    def disable_components(self, mask: int) -> None:
        check_status(self.library.TYDisableComponents(self.handle, _as_int32(mask)),
                     self.library, "TYDisableComponents")

    # ------------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------------

    def frame_buffer_size(self) -> int:
        """Bytes needed per frame buffer for the currently enabled components."""
        size = ctypes.c_uint32(0)
        check_status(self.library.TYGetFrameBufferSize(self.handle, ctypes.byref(size)),
                     self.library, "TYGetFrameBufferSize")
        return size.value

    def start_capture(self, buffer_count: Optional[int] = None) -> None:
        """Allocate and enqueue frame buffers, then start streaming."""
        self._ensure_open()
        if self._capturing:
            raise ValueError(f"Device {self.id!r} is already capturing")

        count = buffer_count if buffer_count is not None else self.interface.context.config.buffer_count
        if count < 1:
            raise ValueError(f"buffer_count must be >= 1, got {count}")

        size = self.frame_buffer_size()
        if size == 0:
            raise ValueError(f"Device {self.id!r} reports a zero frame buffer size; enable a component first")

        check_status(self.library.TYClearBufferQueue(self._handle), self.library, "TYClearBufferQueue")
        self._buffers = [(ctypes.c_uint8 * size)() for _ in range(count)]
        try:
            for buf in self._buffers:
                check_status(self.library.TYEnqueueBuffer(self._handle, ctypes.addressof(buf), size),
                             self.library, "TYEnqueueBuffer")
            check_status(self.library.TYStartCapture(self._handle), self.library, "TYStartCapture")
        except TycamError:
            self.library.TYClearBufferQueue(self._handle)
            self._buffers = []
            raise

        self._capturing = True
        logger.debug("Started capture on %s with %d x %d byte buffers", self.id, count, size)

    def stop_capture(self) -> None:
        self._ensure_open()
        if not self._capturing:
            return
        self._capturing = False
        check_status(self.library.TYStopCapture(self._handle), self.library, "TYStopCapture")
        check_status(self.library.TYClearBufferQueue(self._handle), self.library, "TYClearBufferQueue")
        self._buffers = []
        logger.debug("Stopped capture on %s", self.id)

    def send_soft_trigger(self) -> None:
        check_status(self.library.TYSendSoftTrigger(self.handle), self.library, "TYSendSoftTrigger")

    def fetch_frame(self, timeout_ms: Optional[int] = None) -> Frame:
        """
        Wait for the next frame and copy its images out.

        The SDK buffer is handed back to the queue before returning.
        Raises TycamError with ErrorCode.TIMEOUT if no frame arrives in time.
        """
        self._ensure_open()
        if not self._capturing:
            raise ValueError(f"Device {self.id!r} is not capturing")
        if timeout_ms is None:
            timeout_ms = self.interface.context.config.fetch_timeout_ms

        c_frame = TY_FRAME_DATA()
        check_status(self.library.TYFetchFrame(self._handle, ctypes.byref(c_frame), int(timeout_ms)),
                     self.library, "TYFetchFrame")
        try:
            count = max(0, min(c_frame.validCount, TY_MAX_IMAGE_COUNT))
            images = [_image_from_c(c_frame.image[i]) for i in range(count)]
        finally:
            if c_frame.userBuffer:
                check_status(
                    self.library.TYEnqueueBuffer(self._handle, c_frame.userBuffer, c_frame.bufferSize),
                    self.library, "TYEnqueueBuffer",
                )
        return Frame(images=images)
