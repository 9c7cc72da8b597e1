"""Device session handlers for Junos configuration."""
from .base import (
    Command,
    CommandKind,
    DeviceConfig,
    NetworkDevice,
    Reply,
    SessionState,
)
from .netconf import JunosNetconfDevice
from .mock import MockJunosBackend, MockJunosDevice

__all__ = [
    "Command",
    "CommandKind",
    "DeviceConfig",
    "NetworkDevice",
    "Reply",
    "SessionState",
    "JunosNetconfDevice",
    "MockJunosBackend",
    "MockJunosDevice",
    "DEVICE_TYPES",
    "create_device",
]

# Device type registry
DEVICE_TYPES = {
    "junos": JunosNetconfDevice,
    "mock": MockJunosDevice,
}


def create_device(device_id: str, config: dict) -> NetworkDevice:
    """Factory function to create device sessions."""
    device_type = config.get("type", "").lower()
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"Unknown device type: {device_type}")

    device_class = DEVICE_TYPES[device_type]
    known = DeviceConfig.__dataclass_fields__
    options = dict(config.get("options", {}))
    # Unrecognised keys are kept as device options
    options.update({k: v for k, v in config.items() if k not in known})
    params = {k: v for k, v in config.items() if k in known}
    params["options"] = options
    params.setdefault("name", device_id)
    return device_class(device_id, DeviceConfig(**params))
