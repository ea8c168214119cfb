"""Router inventory and run settings loaded from YAML configuration."""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from ..devices import create_device, NatDevice
from ..errors import ConfigError

logger = logging.getLogger(__name__)

MATCH_MODES = ("substring", "exact")


def _env_flag(name: str) -> Optional[bool]:
    """Read a boolean environment variable, None when unset."""
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class RunSettings:
    """Run-wide switches from the ``settings`` section.

    Environment overrides: NATM_LOG, NATM_LOG_DIR, NATM_CI_TEST.
    """
    log: bool = True
    log_dir: str = "logs"
    ci_test: bool = False
    save_config: bool = False
    match_mode: str = "substring"

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RunSettings":
        data = data or {}
        settings = cls(
            log=bool(data.get("log", True)),
            log_dir=str(data.get("log_dir", "logs")),
            ci_test=bool(data.get("ci_test", False)),
            save_config=bool(data.get("save_config", False)),
            match_mode=str(data.get("match_mode", "substring")),
        )

        log = _env_flag("NATM_LOG")
        if log is not None:
            settings.log = log
        ci_test = _env_flag("NATM_CI_TEST")
        if ci_test is not None:
            settings.ci_test = ci_test
        if os.environ.get("NATM_LOG_DIR"):
            settings.log_dir = os.environ["NATM_LOG_DIR"]

        if settings.match_mode not in MATCH_MODES:
            raise ConfigError(
                f"Invalid match_mode: {settings.match_mode}. "
                f"Must be one of {', '.join(MATCH_MODES)}"
            )
        return settings


class NatInventory:
    """Manages the router inventory loaded from YAML config.

    Supports device groups:

    ```yaml
    groups:
      nat_routers:
        - rtr-edge-1
        - rtr-edge-2
    ```
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._devices: dict[str, NatDevice] = {}
        self._load_config()
        self.settings = RunSettings.from_dict(self._config.get("settings"))

    @classmethod
    def from_dict(cls, data: dict) -> "NatInventory":
        """Build an inventory from an already loaded mapping."""
        inventory = cls.__new__(cls)
        inventory.config_path = None
        inventory._config = data
        inventory._devices = {}
        inventory._apply_defaults()
        inventory.settings = RunSettings.from_dict(data.get("settings"))
        return inventory

    def _find_config(self) -> str:
        """Find the natm.yaml config file."""
        env_path = os.environ.get("NATM_CONFIG")
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "natm.yaml",
            Path.cwd() / "natm.yaml",
            Path.home() / ".config" / "natm" / "natm.yaml",
            Path("/etc/natm/natm.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise ConfigError(
            "Could not find natm.yaml. Create one in ./configs/natm.yaml"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        try:
            with open(self.config_path) as f:
                self._config = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigError(f"Config file not found: {self.config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e

        self._apply_defaults()

    def _apply_defaults(self) -> None:
        """Merge defaults into every device and check groups."""
        defaults = self._config.get("defaults", {}) or {}
        if not self._config.get("devices"):
            self._config["devices"] = {}
        devices = self._config["devices"]
        for device_id, device_config in devices.items():
            if device_config is None:
                device_config = devices[device_id] = {}
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value

        self._validate_groups()

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list(self._config.get("devices", {}).keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config.get("devices", {})
        if device_id not in devices:
            raise ConfigError(f"Unknown device: {device_id}")
        return devices[device_id]

    def get_desired_state(self, device_id: str) -> dict[str, Any]:
        """Get the static_nats and vrf variables of a device."""
        config = self.get_device_config(device_id)
        return {
            "static_nats": config.get("static_nats"),
            "vrf": config.get("vrf"),
        }

    def get_device(self, device_id: str) -> NatDevice:
        """Get or create a device instance."""
        if device_id not in self._devices:
            config = self.get_device_config(device_id)
            self._devices[device_id] = create_device(
                device_id, config, ci_test=self.settings.ci_test
            )
        return self._devices[device_id]

    async def close_all(self) -> None:
        """Close all device connections."""
        for device in self._devices.values():
            if device.is_connected:
                await device.disconnect()
        self._devices.clear()

    # === Group Management ===

    def _validate_groups(self) -> None:
        """Warn about group members that reference unknown devices."""
        groups = self._config.get("groups", {}) or {}
        devices = self._config.get("devices", {})

        for group_name, members in groups.items():
            if not isinstance(members, list):
                logger.warning(f"Group '{group_name}' should be a list of device IDs")
                continue
            for device_id in members:
                if device_id not in devices:
                    logger.warning(
                        f"Group '{group_name}' references unknown device: {device_id}"
                    )

    def get_group_names(self) -> list[str]:
        """Get list of all group names."""
        return list((self._config.get("groups", {}) or {}).keys())

    def get_group_members(self, group_name: str) -> list[str]:
        """Get known device IDs in a group.

        Raises:
            ConfigError: If group doesn't exist
        """
        groups = self._config.get("groups", {}) or {}
        if group_name not in groups:
            raise ConfigError(f"Unknown group: {group_name}")
        devices = self._config.get("devices", {})
        return [d for d in groups[group_name] or [] if d in devices]

    def get_device_groups(self, device_id: str) -> list[str]:
        """Get all groups a device belongs to."""
        groups = []
        for group_name, members in (self._config.get("groups", {}) or {}).items():
            if isinstance(members, list) and device_id in members:
                groups.append(group_name)
        return groups
