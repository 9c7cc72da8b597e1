"""Routing instances and static routes."""
import ipaddress
from typing import Optional

from ..config_engine.statement import ConfigPath, build_path
from ..errors import ValidationError
from .base import Flag, Leaf, LeafList, ResourceType

INSTANCE_TYPES = (
    "evpn",
    "evpn-vpws",
    "forwarding",
    "l2backhaul-vpn",
    "l2vpn",
    "layer2-control",
    "mac-vrf",
    "no-forwarding",
    "virtual-router",
    "virtual-switch",
    "vpls",
    "vrf",
)


class RoutingInstance(ResourceType):
    type_tag = "routing_instance"
    description = "Routing instance; interfaces join it from their own definitions"
    keys = (Leaf("name", key=True),)
    attributes = (
        Leaf("instance_type", "instance-type", choices=INSTANCE_TYPES),
        Leaf("description", "description", quoted=True),
        Leaf("route_distinguisher", "route-distinguisher"),
        Leaf("vrf_target", "vrf-target"),
        LeafList("vrf_import", "vrf-import", ordered=True),
        LeafList("vrf_export", "vrf-export", ordered=True),
        Flag("vrf_table_label", "vrf-table-label"),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path("routing-instances", ident["name"])

    def identity(self, source):
        ident = super().identity(source)
        if ident["name"] in ("master", "default"):
            raise ValidationError(f"{ident['name']!r} is a reserved routing instance name")
        return ident

    def check(self, state) -> None:
        if state["instance_type"] == "vrf" and not state["route_distinguisher"]:
            raise ValidationError("vrf instances need a route_distinguisher")

    def delete_guard(self, ident, lines) -> Optional[str]:
        interfaces = sorted({
            line[3] for line in lines
            if len(line) > 3 and line.startswith(self.root_path(ident) / "interface")
        })
        if interfaces:
            return (
                f"routing instance {ident['name']} still has interfaces: "
                f"{', '.join(interfaces)}"
            )
        return None


class StaticRoute(ResourceType):
    type_tag = "static_route"
    description = "Static route in the master table or a routing instance"
    keys = (
        Leaf("destination", key=True),
        Leaf("routing_instance", key=True, required=False),
    )
    attributes = (
        LeafList("next_hop", "next-hop"),
        Flag("discard", "discard"),
        Flag("reject", "reject"),
        Flag("receive", "receive"),
        Leaf("preference", "preference", type=int, minimum=0, maximum=4294967295),
        Leaf("metric", "metric", type=int, minimum=0, maximum=4294967295),
        Leaf("tag", "tag", type=int, minimum=0, maximum=4294967295),
        Flag("no_readvertise", "no-readvertise"),
    )

    def root_path(self, ident) -> ConfigPath:
        instance = ident.get("routing_instance")
        static: tuple = ("static",)
        if ipaddress.ip_network(ident["destination"]).version == 6:
            rib = f"{instance}.inet6.0" if instance else "inet6.0"
            static = ("rib", rib, "static")
        if instance:
            return build_path("routing-instances", instance,
                              "routing-options", static, "route", ident["destination"])
        return build_path("routing-options", static, "route", ident["destination"])

    def identity(self, source):
        ident = super().identity(source)
        try:
            network = ipaddress.ip_network(ident["destination"], strict=True)
        except ValueError as e:
            raise ValidationError(f"Invalid destination {ident['destination']!r}: {e}")
        ident["destination"] = str(network)
        return ident

    def check(self, state) -> None:
        actions = [name for name in ("discard", "reject", "receive") if state[name]]
        if len(actions) > 1:
            raise ValidationError(f"Only one of discard/reject/receive may be set, got {actions}")
        if actions and state["next_hop"]:
            raise ValidationError(f"{actions[0]} cannot be combined with next_hop")
        for hop in state["next_hop"]:
            try:
                ipaddress.ip_address(hop)
            except ValueError:
                # Interface next-hops such as st0.0 are allowed
                if "." not in hop:
                    raise ValidationError(f"Invalid next_hop {hop!r}")
