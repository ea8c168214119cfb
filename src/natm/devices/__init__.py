"""Device handlers for NAT routers."""
import logging
from dataclasses import fields

from ..errors import ConfigError
from .base import NatDevice, DeviceConfig
from .ios import IOSDevice
from .mock import MockDevice

__all__ = [
    "NatDevice",
    "DeviceConfig",
    "IOSDevice",
    "MockDevice",
    "create_device",
]

logger = logging.getLogger(__name__)

# Device type registry
DEVICE_TYPES = {
    "ios": IOSDevice,
    "mock": MockDevice,
}

_CONFIG_FIELDS = {f.name for f in fields(DeviceConfig)}


def create_device(device_id: str, config: dict, ci_test: bool = False) -> NatDevice:
    """Factory function to create device instances.

    With ci_test set, every device is served by a MockDevice regardless of
    its configured type.
    """
    device_type = str(config.get("type", "ios")).lower()
    if device_type not in DEVICE_TYPES:
        raise ConfigError(f"Unknown device type for {device_id}: {device_type}")

    unknown = sorted(set(config) - _CONFIG_FIELDS)
    if unknown:
        logger.warning(f"Ignoring unknown settings for {device_id}: {', '.join(unknown)}")

    options = {k: v for k, v in config.items() if k in _CONFIG_FIELDS}
    options["type"] = device_type
    options.setdefault("name", device_id)

    device_class = MockDevice if ci_test else DEVICE_TYPES[device_type]
    return device_class(device_id, DeviceConfig(**options))
