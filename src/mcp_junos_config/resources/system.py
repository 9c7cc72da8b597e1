"""System-level settings."""
import ipaddress

from ..config_engine.statement import ConfigPath, build_path
from ..errors import ValidationError
from .base import Flag, Leaf, ResourceType

SEVERITIES = (
    "any", "emergency", "alert", "critical", "error", "warning", "notice", "info", "none",
)

FACILITIES = tuple(f"local{i}" for i in range(8)) + (
    "authorization", "daemon", "ftp", "kernel", "user",
)


class SyslogHost(ResourceType):
    type_tag = "system_syslog_host"
    description = "Remote syslog destination"
    keys = (Leaf("host", key=True),)
    attributes = (
        Leaf("any_severity", "any", choices=SEVERITIES),
        Leaf("port", "port", type=int, minimum=1, maximum=65535),
        Leaf("source_address", "source-address"),
        Leaf("facility_override", "facility-override", choices=FACILITIES),
        Leaf("log_prefix", "log-prefix"),
        Flag("structured_data", "structured-data"),
        Flag("explicit_priority", "explicit-priority"),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path("system", "syslog", "host", ident["host"])

    def check(self, state) -> None:
        if state["source_address"]:
            try:
                ipaddress.ip_address(state["source_address"])
            except ValueError:
                raise ValidationError(f"Invalid source_address {state['source_address']!r}")
