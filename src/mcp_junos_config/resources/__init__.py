"""Resource types managed by the engine, selected by type tag."""
from .base import Attribute, Flag, Leaf, LeafList, Membership, ResourceType
from .interface import LogicalInterface, PhysicalInterface
from .routing import RoutingInstance, StaticRoute
from .security import SecurityPolicy, SecurityZone
from .snmp import SnmpCommunity
from .system import SyslogHost
from .vlan import Vlan
from ..errors import ValidationError

__all__ = [
    "Attribute",
    "Flag",
    "Leaf",
    "LeafList",
    "Membership",
    "ResourceType",
    "RESOURCE_TYPES",
    "get_resource_type",
]

# Resource type registry
RESOURCE_TYPES: dict[str, ResourceType] = {
    rtype.type_tag: rtype
    for rtype in (
        PhysicalInterface(),
        LogicalInterface(),
        RoutingInstance(),
        StaticRoute(),
        Vlan(),
        SnmpCommunity(),
        SecurityZone(),
        SecurityPolicy(),
        SyslogHost(),
    )
}


def get_resource_type(type_tag: str) -> ResourceType:
    """Look up a resource type by its tag."""
    try:
        return RESOURCE_TYPES[type_tag]
    except KeyError:
        raise ValidationError(
            f"Unknown resource type: {type_tag!r} "
            f"(known: {', '.join(sorted(RESOURCE_TYPES))})"
        ) from None
