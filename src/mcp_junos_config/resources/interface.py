"""Physical and logical interfaces.

Physical:  set interfaces ge-0/0/0 ...
Logical:   set interfaces ge-0/0/0 unit 0 ...
"""
import re
from typing import Optional

from ..config_engine.statement import ConfigPath, build_path
from ..errors import ValidationError
from .base import Flag, Leaf, LeafList, Membership, ResourceType

# Interface names: ge-0/0/0, xe-1/2/3:1, ae0, irb, lo0, reth1, st0, fxp0, em0
INTERFACE_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_/:-]*$")

ENCAPSULATIONS = (
    "ethernet-bridge",
    "ethernet-ccc",
    "ethernet-vpls",
    "extended-vlan-bridge",
    "extended-vlan-ccc",
    "flexible-ethernet-services",
    "vlan-ccc",
    "vlan-vpls",
)


def check_interface_name(name: str) -> None:
    if not INTERFACE_NAME.match(name) or "." in name:
        raise ValidationError(f"Invalid interface name: {name!r}")


def split_logical_name(name: str) -> tuple[str, str]:
    """Split `ge-0/0/0.10` into (`ge-0/0/0`, `10`)."""
    physical, dot, unit = name.rpartition(".")
    if not dot or not physical or not unit.isdigit():
        raise ValidationError(
            f"Logical interface name must look like <interface>.<unit>, got {name!r}"
        )
    check_interface_name(physical)
    return physical, unit


class PhysicalInterface(ResourceType):
    type_tag = "interface_physical"
    description = "Physical (or aggregated) interface, excluding its logical units"
    keys = (Leaf("name", key=True),)
    attributes = (
        Leaf("description", "description", quoted=True),
        Flag("disable", "disable"),
        Flag("vlan_tagging", "vlan-tagging"),
        Leaf("encapsulation", "encapsulation", choices=ENCAPSULATIONS),
        Leaf("mtu", "mtu", type=int, minimum=256, maximum=16000),
        Leaf("ae_parent", "gigether-options 802.3ad",
             doc="Aggregated ethernet bundle this member belongs to"),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path("interfaces", ident["name"])

    def identity(self, source):
        ident = super().identity(source)
        check_interface_name(ident["name"])
        return ident

    def owns(self, ident, line) -> bool:
        # Units, ethernet-switching included, belong to interface_logical
        root = self.root_path(ident)
        return line.startswith(root) and not line.startswith(root / "unit")

    def delete_guard(self, ident, lines) -> Optional[str]:
        units = sorted({
            line[3] for line in lines
            if len(line) > 3 and line.startswith(self.root_path(ident) / "unit")
        })
        if units:
            return (
                f"interface {ident['name']} still has logical units: "
                f"{', '.join(units)}"
            )
        return None


class LogicalInterface(ResourceType):
    type_tag = "interface_logical"
    description = "Logical unit of an interface, with addressing and instance/zone membership"
    keys = (Leaf("name", key=True),)
    attributes = (
        Leaf("description", "description", quoted=True),
        Flag("disable", "disable"),
        Leaf("vlan_id", "vlan-id", type=int, minimum=1, maximum=4094),
        LeafList("family_inet_address", "family inet address"),
        LeafList("family_inet6_address", "family inet6 address"),
        LeafList("vlan_members", "family ethernet-switching vlan members"),
        Membership("routing_instance", "routing-instances", "interface"),
        Membership("security_zone", "security zones security-zone", "interfaces"),
    )

    def root_path(self, ident) -> ConfigPath:
        physical, unit = split_logical_name(ident["name"])
        return build_path("interfaces", physical, "unit", unit)

    def identity(self, source):
        ident = super().identity(source)
        split_logical_name(ident["name"])
        return ident

    def check(self, state) -> None:
        if state["vlan_members"] and (state["family_inet_address"] or state["family_inet6_address"]):
            raise ValidationError(
                "vlan_members (ethernet-switching) cannot be combined with inet/inet6 addresses"
            )
