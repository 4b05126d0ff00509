"""
Pytest configuration and shared fixtures.

The real libtycam needs cameras on the network, so tests run against
FakeTycam: every export is a ctypes CFUNCTYPE callback built from the same
declaration table as the real library, so arguments go through libffi just
as they would for libtycam.
"""

import ctypes
import tempfile
from pathlib import Path

import numpy as np
import pytest

from camport3.constants import Component, InterfaceType, PixelFormat, Status
from camport3.ffi import FUNCTIONS, Library

ETH_ID = "eth-30:0e:d5:57:c2:ea9b04a8c0"
USB_ID = "usb-00000001"
ETH_DEVICE_ID = "207000106930"
USB_DEVICE_ID = "207000112233"

DEPTH_W, DEPTH_H = 4, 3
COLOR_W, COLOR_H = 4, 3
DEPTH_BYTES = DEPTH_W * DEPTH_H * 2
COLOR_BYTES = COLOR_W * COLOR_H * 3
FRAME_BUFFER_SIZE = 64


def _as_int32(value):
    return ctypes.c_int32(int(value) & 0xFFFFFFFF).value


class FakeTycam:
    """In-process stand-in for libtycam with two interfaces and two devices."""

    def __init__(self, version=(3, 6, 66)):
        self.version = version
        self.initialized = False
        self.init_calls = 0
        self.deinit_calls = 0
        self.calls = []
        self.errors = []

        # func name -> status returned instead of running the fake
        self.fail = {}
        # device handle -> status TYCloseDevice returns for that handle only
        self.close_failures = {}
        self.fw_errcode = 0
        self.null_handle = False

        self.interfaces = [
            {
                "name": b"eth0",
                "id": ETH_ID.encode(),
                "type": int(InterfaceType.ETHERNET),
                "net": {
                    "mac": b"30:0E:D5:57:C2:EA",
                    "ip": b"192.168.1.10",
                    "netmask": b"255.255.255.0",
                    "gateway": b"",
                    "broadcast": b"192.168.1.255",
                },
            },
            {"name": b"usb", "id": USB_ID.encode(), "type": int(InterfaceType.USB)},
        ]
        self.devices = {
            ETH_ID.encode(): [{
                "id": ETH_DEVICE_ID.encode(),
                "model": b"FM851-E2",
                "net": {
                    "mac": b"06:27:45:8F:3A:11",
                    "ip": b"192.168.1.50",
                    "netmask": b"255.255.255.0",
                    "gateway": b"192.168.1.1",
                    "broadcast": b"192.168.1.255",
                },
            }],
            USB_ID.encode(): [{
                "id": USB_DEVICE_ID.encode(),
                "model": b"FS820-E1",
                "usb": (2, 7),
            }],
        }
        self.interface_list_updated = False

        self._next_handle = 0x1000
        self.open_interfaces = {}  # handle -> interface id
        self.open_devices = {}  # handle -> (interface handle, device id)
        self.closed_devices = []  # (device id, reboot)
        self.forced_ips = []

        self.components = int(Component.DEVICE | Component.DEPTH_CAM | Component.RGB_CAM
                              | Component.IR_CAM_LEFT | Component.IR_CAM_RIGHT)
        self.enabled = int(Component.DEVICE)
        self.queue = []  # (address, size)
        self.capturing = False
        self.frame_index = 0

        for name, restype, argtypes in FUNCTIONS:
            impl = getattr(self, "impl_" + name.lstrip("_"))
            if restype is ctypes.c_char_p:
                # ctypes cannot return char* from a Python callback
                setattr(self, name, self._plain(impl))
            else:
                setattr(self, name, ctypes.CFUNCTYPE(restype, *argtypes)(self._guard(name, impl)))

    # ------------------------------------------------------------------------

    def _plain(self, impl):
        def call(*args):
            return impl(*args)
        return call

    def _guard(self, name, impl):
        def call(*args):
            self.calls.append(name)
            if name in self.fail:
                return int(self.fail[name])
            try:
                return int(impl(*args))
            except Exception as exc:  # surfaced by the fake_sdk fixture
                self.errors.append((name, exc))
                return int(Status.ERROR)
        return call

    def _new_handle(self):
        self._next_handle += 0x10
        return self._next_handle

    def _iface_spec(self, iface_id):
        for spec in self.interfaces:
            if spec["id"] == iface_id:
                return spec
        return None

    @staticmethod
    def _fill_net(c_net, net):
        c_net.mac = net["mac"]
        c_net.ip = net["ip"]
        c_net.netmask = net["netmask"]
        c_net.gateway = net["gateway"]
        c_net.broadcast = net["broadcast"]

    def _fill_iface(self, c_iface, spec):
        c_iface.name = spec["name"]
        c_iface.id = spec["id"]
        c_iface.type = spec["type"]
        if "net" in spec:
            self._fill_net(c_iface.netInfo, spec["net"])

    def _fill_device(self, c_dev, iface_id, dev):
        self._fill_iface(c_dev.iface, self._iface_spec(iface_id))
        c_dev.id = dev["id"]
        c_dev.vendorName = b"Percipio"
        c_dev.userDefinedName = b""
        c_dev.modelName = dev["model"]
        c_dev.hardwareVersion.major = 1
        c_dev.hardwareVersion.minor = 2
        c_dev.hardwareVersion.patch = 0
        c_dev.firmwareVersion.major = 3
        c_dev.firmwareVersion.minor = 13
        c_dev.firmwareVersion.patch = 68
        c_dev.buildHash = b"a1b2c3"
        c_dev.configVersion = b"cfg-1.0"
        if "net" in dev:
            self._fill_net(c_dev.netInfo, dev["net"])
        if "usb" in dev:
            c_dev.usbInfo.bus, c_dev.usbInfo.addr = dev["usb"]

    def _device(self, handle):
        return self.open_devices.get(handle)

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    def impl_TYErrorString(self, status):
        return {
            Status.NOT_INITED: b"not initialized",
            Status.TIMEOUT: b"timeout",
            Status.INVALID_HANDLE: b"interface handle is invalid",
            Status.DEVICE_ERROR: b"device reported an error",
            Status.DEV_EINVAL: b"device rejected the argument",
        }.get(status)

    def impl_TYInitLib(self):
        self.initialized = True
        self.init_calls += 1
        return Status.OK

    def impl_TYDeinitLib(self):
        if not self.initialized:
            return Status.NOT_INITED
        self.initialized = False
        self.deinit_calls += 1
        return Status.OK

    def impl_TYLibVersion(self, out):
        out[0].major, out[0].minor, out[0].patch = self.version
        return Status.OK

    # ------------------------------------------------------------------------
    # Interfaces
    # ------------------------------------------------------------------------

    def impl_TYUpdateInterfaceList(self):
        if not self.initialized:
            return Status.NOT_INITED
        self.interface_list_updated = True
        return Status.OK

    def impl_TYGetInterfaceNumber(self, out):
        if not self.initialized:
            return Status.NOT_INITED
        out[0] = len(self.interfaces) if self.interface_list_updated else 0
        return Status.OK

    def impl_TYGetInterfaceList(self, infos, count, filled):
        if not self.initialized:
            return Status.NOT_INITED
        specs = self.interfaces if self.interface_list_updated else []
        n = min(count, len(specs))
        for i in range(n):
            self._fill_iface(infos[i], specs[i])
        filled[0] = n
        return Status.OK

    def impl_TYHasInterface(self, iface_id, out):
        if not self.initialized:
            return Status.NOT_INITED
        out[0] = self._iface_spec(iface_id) is not None
        return Status.OK

    def impl_TYOpenInterface(self, iface_id, out):
        if not self.initialized:
            return Status.NOT_INITED
        if self._iface_spec(iface_id) is None:
            return Status.INVALID_INTERFACE
        if not self.null_handle:
            handle = self._new_handle()
            self.open_interfaces[handle] = iface_id
            out[0] = handle
        return Status.OK

    def impl_TYCloseInterface(self, handle):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        del self.open_interfaces[handle]
        return Status.OK

    # ------------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------------

    def impl_TYUpdateDeviceList(self, handle):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        return Status.OK

    def impl_TYGetDeviceNumber(self, handle, out):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        out[0] = len(self.devices.get(self.open_interfaces[handle], []))
        return Status.OK

    def impl_TYGetDeviceList(self, handle, infos, count, filled):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        iface_id = self.open_interfaces[handle]
        devices = self.devices.get(iface_id, [])
        n = min(count, len(devices))
        for i in range(n):
            self._fill_device(infos[i], iface_id, devices[i])
        filled[0] = n
        return Status.OK

    def impl_TYHasDevice(self, handle, dev_id, out):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        devices = self.devices.get(self.open_interfaces[handle], [])
        out[0] = any(dev["id"] == dev_id for dev in devices)
        return Status.OK

    def _open(self, handle, match, out):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        for dev in self.devices.get(self.open_interfaces[handle], []):
            if match(dev):
                if not self.null_handle:
                    dev_handle = self._new_handle()
                    self.open_devices[dev_handle] = (handle, dev["id"])
                    out[0] = dev_handle
                return Status.OK
        return Status.INVALID_PARAMETER

    def impl_TYOpenDevice(self, handle, dev_id, out, fw_errcode):
        if fw_errcode:
            fw_errcode[0] = self.fw_errcode
        return self._open(handle, lambda dev: dev["id"] == dev_id, out)

    def impl_TYOpenDeviceWithIP(self, handle, ip, out):
        return self._open(handle, lambda dev: "net" in dev and dev["net"]["ip"] == ip, out)

    def impl_TYForceDeviceIP(self, handle, mac, ip, netmask, gateway):
        if handle not in self.open_interfaces:
            return Status.INVALID_HANDLE
        self.forced_ips.append((mac, ip, netmask, gateway))
        return Status.OK

    def impl_TYCloseDevice(self, handle, reboot):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        if handle in self.close_failures:
            return self.close_failures[handle]
        _, dev_id = self.open_devices.pop(handle)
        self.closed_devices.append((dev_id, reboot))
        self.capturing = False
        self.queue = []
        return Status.OK

    def impl_TYGetDeviceInfo(self, handle, out):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        iface_handle, dev_id = self.open_devices[handle]
        iface_id = self.open_interfaces[iface_handle]
        for dev in self.devices[iface_id]:
            if dev["id"] == dev_id:
                self._fill_device(out[0], iface_id, dev)
        return Status.OK

    # ------------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------------

    def impl_TYGetComponentIDs(self, handle, out):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        out[0] = _as_int32(self.components)
        return Status.OK

    def impl_TYGetEnabledComponents(self, handle, out):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        out[0] = _as_int32(self.enabled)
        return Status.OK

    def impl_TYEnableComponents(self, handle, mask):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        mask &= 0xFFFFFFFF
        if mask & ~self.components:
            return Status.INVALID_COMPONENT
        self.enabled |= mask
        return Status.OK

    def impl_TYDisableComponents(self, handle, mask):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        self.enabled &= ~(mask & 0xFFFFFFFF)
        return Status.OK

    # ------------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------------

    def impl_TYGetFrameBufferSize(self, handle, out):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        streams = Component.DEPTH_CAM | Component.RGB_CAM
        out[0] = FRAME_BUFFER_SIZE if self.enabled & streams else 0
        return Status.OK

    def impl_TYEnqueueBuffer(self, handle, address, size):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        if not address:
            return Status.NULL_POINTER
        self.queue.append((address, size))
        return Status.OK

    def impl_TYClearBufferQueue(self, handle):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        self.queue = []
        return Status.OK

    def impl_TYStartCapture(self, handle):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        if self.capturing:
            return Status.BUSY
        self.capturing = True
        return Status.OK

    def impl_TYStopCapture(self, handle):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        if not self.capturing:
            return Status.IDLE
        self.capturing = False
        return Status.OK

    def impl_TYSendSoftTrigger(self, handle):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        return Status.OK

    def impl_TYFetchFrame(self, handle, frame, timeout):
        if handle not in self.open_devices:
            return Status.INVALID_HANDLE
        if not self.capturing:
            return Status.IDLE
        if not self.queue:
            return Status.TIMEOUT

        address, size = self.queue.pop(0)
        self.frame_index += 1

        depth = (ctypes.c_uint16 * (DEPTH_W * DEPTH_H)).from_address(address)
        np.ctypeslib.as_array(depth)[:] = np.arange(DEPTH_W * DEPTH_H, dtype=np.uint16) * 100
        ctypes.memset(address + DEPTH_BYTES, 7, COLOR_BYTES)

        f = frame[0]
        f.userBuffer = address
        f.bufferSize = size
        f.validCount = 2

        img = f.image[0]
        img.timestamp = 1_000_000 * self.frame_index
        img.imageIndex = self.frame_index
        img.componentID = int(Component.DEPTH_CAM)
        img.size = DEPTH_BYTES
        img.buffer = address
        img.width, img.height = DEPTH_W, DEPTH_H
        img.pixelFormat = int(PixelFormat.DEPTH16)

        img = f.image[1]
        img.timestamp = 1_000_000 * self.frame_index
        img.imageIndex = self.frame_index
        img.componentID = int(Component.RGB_CAM)
        img.size = COLOR_BYTES
        img.buffer = address + DEPTH_BYTES
        img.width, img.height = COLOR_W, COLOR_H
        img.pixelFormat = int(PixelFormat.BGR)
        return Status.OK


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def fake_sdk():
    """A fresh fake libtycam; fails the test if any fake call raised."""
    sdk = FakeTycam()
    yield sdk
    assert sdk.errors == []


@pytest.fixture
def library(fake_sdk):
    return Library(fake_sdk, path="<fake>")


@pytest.fixture
def context(library):
    from camport3.binding import Context
    ctx = Context(library=library)
    yield ctx
    ctx.close()


@pytest.fixture
def eth_interface(context):
    iface = context.open_interface(ETH_ID)
    yield iface
    iface.close()


@pytest.fixture
def device(eth_interface):
    dev = eth_interface.open_device(ETH_DEVICE_ID)
    yield dev
    dev.close()
