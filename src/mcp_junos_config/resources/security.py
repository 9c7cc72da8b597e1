"""SRX security zones and zone-pair policies."""
from typing import Mapping, Optional

from ..config_engine.statement import ConfigPath, StatementOp, build_path, new_statement
from ..errors import ValidationError
from .base import Flag, Leaf, LeafList, ResourceType

SYSTEM_SERVICES = (
    "all", "any-service", "appqoe", "bootp", "dhcp", "dhcpv6", "dns", "finger",
    "ftp", "high-availability", "http", "https", "ident-reset", "ike",
    "lsping", "netconf", "ntp", "ping", "r2cp", "reverse-ssh", "reverse-telnet",
    "rlogin", "rpm", "rsh", "snmp", "snmp-trap", "ssh", "tcp-encap", "telnet",
    "tftp", "traceroute", "webapi-clear-text", "webapi-ssl", "xnm-clear-text",
    "xnm-ssl",
)


class SecurityZone(ResourceType):
    type_tag = "security_zone"
    description = "Security zone; interfaces join it from their own definitions"
    keys = (Leaf("name", key=True),)
    attributes = (
        Leaf("description", "description", quoted=True),
        Flag("application_tracking", "application-tracking", sticky=True),
        Flag("tcp_rst", "tcp-rst"),
        Leaf("screen", "screen"),
        LeafList("inbound_services", "host-inbound-traffic system-services"),
        LeafList("inbound_protocols", "host-inbound-traffic protocols"),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path("security", "zones", "security-zone", ident["name"])

    def check(self, state) -> None:
        unknown = [s for s in state["inbound_services"] if s not in SYSTEM_SERVICES]
        if unknown:
            raise ValidationError(f"Unknown system services: {', '.join(unknown)}")

    def delete_guard(self, ident, lines) -> Optional[str]:
        interfaces = sorted({
            line[5] for line in lines
            if len(line) > 5 and line.startswith(self.root_path(ident) / "interfaces")
        })
        if interfaces:
            return (
                f"security zone {ident['name']} still has interfaces: "
                f"{', '.join(interfaces)}"
            )
        return None


class PolicyAction(Leaf):
    """`then permit|deny|reject`: one keyword out of a fixed set under `then`.

    The other `then` statements (count, log) are separate flags, so an
    action is removed by its own keyword, never by deleting `then`.
    """

    def delete_statements(self, root, value, ident):
        return [new_statement(root / self.path / value, StatementOp.DELETE)]

    def decode(self, root, lines, ident):
        prefix = root / self.path
        actions = [
            line[len(prefix)] for line in lines
            if len(line) > len(prefix) and line.startswith(prefix)
            and line[len(prefix)] in self.choices
        ]
        return actions[-1] if actions else None


class SecurityPolicy(ResourceType):
    type_tag = "security_policy"
    description = "Zone-pair security policy; both zones must exist first"
    keys = (
        Leaf("name", key=True),
        Leaf("from_zone", key=True),
        Leaf("to_zone", key=True),
    )
    attributes = (
        Leaf("description", "description", quoted=True),
        LeafList("source_address", "match source-address"),
        LeafList("destination_address", "match destination-address"),
        LeafList("application", "match application"),
        PolicyAction("action", "then", choices=("permit", "deny", "reject")),
        Flag("count", "then count"),
        Flag("log_session_init", "then log session-init"),
        Flag("log_session_close", "then log session-close"),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path(
            "security", "policies",
            "from-zone", ident["from_zone"], "to-zone", ident["to_zone"],
            "policy", ident["name"],
        )

    def normalize(self, desired):
        # Junos applies permit when nothing else is given
        if isinstance(desired, Mapping) and not desired.get("action"):
            desired = {**desired, "action": "permit"}
        return super().normalize(desired)

    def check(self, state) -> None:
        missing = [
            name for name in ("source_address", "destination_address", "application")
            if not state[name]
        ]
        if missing:
            raise ValidationError(
                f"security policy {state['name']} needs at least one entry in: {', '.join(missing)}"
            )

    def prerequisites(self, ident) -> list[tuple[str, ConfigPath]]:
        zones = SecurityZone()
        return [
            (f"security_zone {zone}", zones.root_path({"name": zone}))
            for zone in dict.fromkeys((ident["from_zone"], ident["to_zone"]))
        ]
