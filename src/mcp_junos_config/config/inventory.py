"""Device inventory management from YAML configuration."""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..devices import create_device, NetworkDevice

logger = logging.getLogger(__name__)

CONFIG_ENV = "JUNOSCRAFT_CONFIG"

# Keys never shown when describing a device
SECRET_KEYS = {"password", "ssh_key_passphrase"}


class DeviceInventory:
    """Manages the device inventory loaded from YAML config.

    ```yaml
    defaults:
      username: netconf
      password_env: JUNOS_PASSWORD
      timeout: 30

    devices:
      srx-edge:
        type: junos
        name: "Edge firewall"
        host: 192.0.2.1
      lab:
        type: mock
        name: "Offline simulator"
        host: localhost

    groups:
      firewalls:
        - srx-edge
    ```

    Each call to `open_session` returns a new, unconnected session; the
    inventory never hands out a shared connection.
    """

    def __init__(self, config_path: Optional[str] = None, config: Optional[dict] = None):
        if config is not None:
            self.config_path = None
            self._config = config
            self._apply_defaults()
        else:
            self.config_path = config_path or self._find_config()
            self._config: dict = {}
            self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        override = os.environ.get(CONFIG_ENV)
        if override:
            if not Path(override).exists():
                raise FileNotFoundError(f"{CONFIG_ENV} points to a missing file: {override}")
            return override

        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "junoscraft" / "devices.yaml",
            Path("/etc/junoscraft/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            f"Could not find devices.yaml. Create one in ./configs/devices.yaml "
            f"or set {CONFIG_ENV}"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path) as f:
            self._config = yaml.safe_load(f) or {}
        logger.info(f"Loaded inventory from {self.config_path}")
        self._apply_defaults()

    def _apply_defaults(self) -> None:
        defaults = self._config.get("defaults") or {}
        devices = self._config.setdefault("devices", {}) or {}
        self._config["devices"] = devices
        for device_id, device_config in devices.items():
            for key, value in defaults.items():
                if key not in device_config:
                    device_config[key] = value
            device_config.setdefault("name", device_id)

        self._validate_groups()

    def get_device_ids(self) -> list[str]:
        """Get all device IDs."""
        return list(self._config.get("devices", {}).keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config.get("devices", {})
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def open_session(self, device_id: str) -> NetworkDevice:
        """Create a new, unconnected session for a device."""
        return create_device(device_id, self.get_device_config(device_id))

    def describe_device(self, device_id: str) -> dict:
        """Device settings without secrets."""
        config = self.get_device_config(device_id)
        info = {k: v for k, v in config.items() if k not in SECRET_KEYS}
        info["id"] = device_id
        info["groups"] = self.get_device_groups(device_id)
        return info

    def get_devices_by_type(self, device_type: str) -> list[str]:
        """Get device IDs filtered by type."""
        return [
            device_id for device_id, config in self._config.get("devices", {}).items()
            if config.get("type") == device_type
        ]

    # === Group Management ===

    def _validate_groups(self) -> None:
        """Validate that all group members reference valid devices."""
        groups = self._config.get("groups") or {}
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

    def get_groups(self) -> dict[str, list[str]]:
        """Get all defined groups and their members."""
        return dict(self._config.get("groups") or {})

    def get_group_members(self, group_name: str) -> list[str]:
        """Get device IDs in a group.

        Raises:
            KeyError: If group doesn't exist
        """
        groups = self._config.get("groups") or {}
        if group_name not in groups:
            raise KeyError(f"Unknown group: {group_name}")
        return list(groups[group_name])

    def get_device_groups(self, device_id: str) -> list[str]:
        """Get all groups a device belongs to."""
        return [
            group_name
            for group_name, members in (self._config.get("groups") or {}).items()
            if isinstance(members, list) and device_id in members
        ]
