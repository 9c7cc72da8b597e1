"""SNMP communities."""
import ipaddress

from ..config_engine.statement import ConfigPath, build_path
from ..errors import ValidationError
from .base import Leaf, LeafList, ResourceType


class SnmpCommunity(ResourceType):
    type_tag = "snmp_community"
    description = "SNMP v1/v2c community with client restrictions"
    keys = (Leaf("name", key=True),)
    attributes = (
        # Deleted explicitly by any update that leaves it unset
        Leaf("authorization", "authorization", choices=("read-only", "read-write"),
             sticky=True),
        # "10.0.0.0/8 restrict" denies the prefix
        LeafList("clients", "clients", qualifiers=("restrict",)),
        Leaf("view", "view"),
        Leaf("routing_instance", "routing-instance"),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path("snmp", "community", ident["name"])

    def check(self, state) -> None:
        for client in state["clients"]:
            address = client.split()[0]
            try:
                ipaddress.ip_network(address, strict=False)
            except ValueError:
                raise ValidationError(f"Invalid SNMP client prefix {client!r}")
