#!/usr/bin/env python3
"""
camport3 CLI - inspect cameras reachable through the camport3 SDK.

Usage:
    camport3 version                  - Print the SDK library version
    camport3 interfaces [--toml]      - List network/USB interfaces
    camport3 devices [--interface ID] - List devices on each interface
    camport3 --help                   - Show this help
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

import rtoml

from .binding import Context
from .config import CamportConfig, create_default_config, load_config
from .errors import TycamError
from .ffi import LibraryNotFoundError
from .types import InterfaceInfo

logger = logging.getLogger("camport3")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="camport3", description="camport3 SDK device inspector")
    parser.add_argument("--library", help="Path to libtycam (or the directory holding it)")
    parser.add_argument("--config", type=Path, help="TOML configuration file")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, ...)")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("version", help="Print the library version")

    p_ifaces = sub.add_parser("interfaces", help="List interfaces")
    p_ifaces.add_argument("--toml", action="store_true", help="Print as TOML")

    p_devs = sub.add_parser("devices", help="List devices")
    p_devs.add_argument("--interface", dest="interface_id", help="Only this interface id")
    p_devs.add_argument("--toml", action="store_true", help="Print as TOML")
    return parser


def _resolve_config(args) -> CamportConfig:
    config = load_config(args.config) if args.config else create_default_config()
    overrides = {}
    if args.library:
        overrides["library_path"] = args.library
    if args.log_level:
        overrides["log_level"] = args.log_level.upper()
    if overrides:
        config = replace(config, **overrides)
    return config


def _print_interface(info: InterfaceInfo) -> None:
    print("==== Interface ===")
    print(f"name: {info.name}")
    print(f"id: {info.id}")
    print(f"type: {info.type_name}")
    net = info.net_info
    if net is not None:
        print(f"mac: {net.mac}")
        print(f"ip: {net.ip}")
        print(f"netmask: {net.netmask}")
        if net.gateway is not None:
            print(f"gateway: {net.gateway}")
        print(f"broadcast: {net.broadcast}")


def cmd_version(ctx: Context, args) -> int:
    print(f"library version: {ctx.version()}")
    return 0


def cmd_interfaces(ctx: Context, args) -> int:
    infos = ctx.list_interfaces()
    if args.toml:
        print(rtoml.dumps({"interfaces": [info.to_dict() for info in infos]}), end="")
        return 0

    print(f"library version: {ctx.version()}")
    for info in infos:
        _print_interface(info)
    return 0


def cmd_devices(ctx: Context, args) -> int:
    if args.interface_id:
        interface_ids = [args.interface_id]
    else:
        interface_ids = [info.id for info in ctx.list_interfaces()]

    found = {}
    for interface_id in interface_ids:
        with ctx.open_interface(interface_id) as iface:
            iface.update_device_list()
            found[interface_id] = iface.get_device_list()

    if args.toml:
        data = {
            "interfaces": [
                {"id": iid, "devices": [dev.to_dict() for dev in devs]}
                for iid, devs in found.items()
            ]
        }
        print(rtoml.dumps(data), end="")
        return 0

    for interface_id, devices in found.items():
        print(f"==== Interface {interface_id}: {len(devices)} device(s) ===")
        for dev in devices:
            print(f"  {dev.model_name} [{dev.id}]")
            print(f"      vendor: {dev.vendor_name}")
            if dev.user_defined_name:
                print(f"      name: {dev.user_defined_name}")
            print(f"      hardware: {dev.hardware_version}  firmware: {dev.firmware_version}")
            if dev.net_info is not None:
                print(f"      ip: {dev.net_info.ip}  mac: {dev.net_info.mac}")
            if dev.usb_info is not None:
                print(f"      usb: bus {dev.usb_info.bus} addr {dev.usb_info.addr}")
    return 0


_COMMANDS = {
    "version": cmd_version,
    "interfaces": cmd_interfaces,
    "devices": cmd_devices,
}


def main(argv=None, library=None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    try:
        config = _resolve_config(args)
    except (OSError, ValueError) as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    try:
        with Context(library=library, config=config) as ctx:
            return _COMMANDS[args.command](ctx, args)
    except LibraryNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    except TycamError as exc:
        logger.error("SDK call failed: %s", exc)
        return 1
    except ValueError as exc:
        # e.g. a malformed address reported by the SDK
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
