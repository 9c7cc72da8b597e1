"""Layer 2 VLANs (`vlans` hierarchy on EX/QFX/SRX switching)."""
import re

from ..config_engine.statement import ConfigPath, build_path
from ..errors import ValidationError
from .base import Leaf, ResourceType

VLAN_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9_.-]{0,63}$")


class Vlan(ResourceType):
    type_tag = "vlan"
    description = "Layer 2 VLAN with optional IRB interface and VXLAN VNI"
    keys = (Leaf("name", key=True),)
    attributes = (
        Leaf("vlan_id", "vlan-id", type=int, minimum=1, maximum=4094),
        Leaf("description", "description", quoted=True),
        Leaf("l3_interface", "l3-interface"),
        Leaf("vni", "vxlan vni", type=int, minimum=1, maximum=16777214),
    )

    def root_path(self, ident) -> ConfigPath:
        return build_path("vlans", ident["name"])

    def identity(self, source):
        ident = super().identity(source)
        if not VLAN_NAME.match(ident["name"]):
            raise ValidationError(f"Invalid VLAN name: {ident['name']!r}")
        return ident

    def check(self, state) -> None:
        if state["vlan_id"] is None:
            raise ValidationError("vlan_id is required")
        if state["l3_interface"] and not state["l3_interface"].startswith("irb."):
            raise ValidationError(
                f"l3_interface must be an irb unit (irb.N), got {state['l3_interface']!r}"
            )
