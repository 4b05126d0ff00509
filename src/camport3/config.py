"""
Configuration loading/saving.

Pure functions operating on a frozen dataclass, stored as TOML:

    [library]
    path = "/opt/camport3/lib/libtycam.so"

    [discovery]
    interface_types = ["ETH", "USB"]

    [capture]
    buffer_count = 2
    fetch_timeout_ms = 2000

    [logging]
    level = "INFO"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import rtoml

from .constants import InterfaceType, parse_interface_type

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True, slots=True)
class CamportConfig:
    library_path: Optional[str] = None  # None: search the usual locations
    interface_types: tuple[str, ...] = ("ALL",)
    buffer_count: int = 2
    fetch_timeout_ms: int = 2000
    log_level: str = "INFO"

    @property
    def interface_mask(self) -> InterfaceType:
        return interface_type_mask(self.interface_types)


def interface_type_mask(names) -> InterfaceType:
    """Combine interface type names ("ETH", "USB", ...) into one flag value."""
    mask = InterfaceType.UNKNOWN
    for name in names:
        mask |= parse_interface_type(name)
    return mask


def create_default_config() -> CamportConfig:
    return CamportConfig()


def _validate(config: CamportConfig) -> CamportConfig:
    if not config.interface_types:
        raise ValueError('interface_types must name at least one type (use ["ALL"] for every type)')
    interface_type_mask(config.interface_types)
    if config.buffer_count < 1:
        raise ValueError(f"buffer_count must be >= 1, got {config.buffer_count}")
    if config.fetch_timeout_ms < 0:
        raise ValueError(f"fetch_timeout_ms must be >= 0, got {config.fetch_timeout_ms}")
    if config.log_level.upper() not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level: {config.log_level!r}")
    return config


def load_config(path: Path) -> CamportConfig:
    """
    Load binding configuration from a TOML file.

    Args:
        path: Path to the TOML file

    Returns:
        CamportConfig dataclass (missing keys take their defaults)
    """
    data = rtoml.load(Path(path))
    defaults = create_default_config()

    library = data.get("library", {})
    discovery = data.get("discovery", {})
    capture = data.get("capture", {})
    logging_data = data.get("logging", {})

    config = CamportConfig(
        library_path=library.get("path", defaults.library_path) or None,
        interface_types=tuple(discovery.get("interface_types", defaults.interface_types)),
        buffer_count=int(capture.get("buffer_count", defaults.buffer_count)),
        fetch_timeout_ms=int(capture.get("fetch_timeout_ms", defaults.fetch_timeout_ms)),
        log_level=str(logging_data.get("level", defaults.log_level)).upper(),
    )
    return _validate(config)


def save_config(config: CamportConfig, path: Path) -> None:
    """
    Save binding configuration to a TOML file.

    Args:
        config: CamportConfig dataclass
        path: Path to write
    """
    _validate(config)

    data = {
        "discovery": {"interface_types": list(config.interface_types)},
        "capture": {
            "buffer_count": config.buffer_count,
            "fetch_timeout_ms": config.fetch_timeout_ms,
        },
        "logging": {"level": config.log_level},
    }
    # TOML has no null, an absent key means "search"
    if config.library_path:
        data["library"] = {"path": str(config.library_path)}

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        rtoml.dump(data, f)
