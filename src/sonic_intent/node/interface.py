"""Read-only interface views over a node's snapshot."""
from typing import TYPE_CHECKING, Optional

from ..config_db import keys, tables
from ..config_db.binding import ServiceBinding
from ..utils.naming import split_csv

if TYPE_CHECKING:
    from .node import Node


class Interface:
    """An interface of a node.

    Holds only the node and the name; every property is computed from the
    node's current snapshot, so a view never goes stale.
    """

    def __init__(self, node: "Node", name: str):
        self.node = node
        self.name = name

    def __repr__(self) -> str:
        return f"Interface({self.node.name}:{self.name})"

    @property
    def _snap(self):
        return self.node.snapshot

    @property
    def is_portchannel(self) -> bool:
        return self.name.startswith("PortChannel")

    @property
    def is_vlan(self) -> bool:
        return self.name.startswith("Vlan")

    @property
    def _base_table(self) -> str:
        if self.is_portchannel:
            return tables.PORTCHANNEL
        if self.is_vlan:
            return tables.VLAN
        return tables.PORT

    @property
    def ip_table(self) -> str:
        """Table holding the L3 base row and address sub-rows."""
        if self.is_portchannel:
            return tables.PORTCHANNEL_INTERFACE
        if self.is_vlan:
            return tables.VLAN_INTERFACE
        if self.name.startswith("Loopback"):
            return tables.LOOPBACK_INTERFACE
        return tables.INTERFACE

    # --- Port attributes ---

    @property
    def exists(self) -> bool:
        return self.node.interface_exists(self.name)

    @property
    def admin_status(self) -> str:
        return self._snap.field(self._base_table, self.name, "admin_status", "down")

    @property
    def mtu(self) -> int:
        value = self._snap.field(self._base_table, self.name, "mtu")
        return int(value) if value.isdigit() else 0

    @property
    def speed(self) -> str:
        return self._snap.field(self._base_table, self.name, "speed")

    @property
    def description(self) -> str:
        return self._snap.field(self._base_table, self.name, "description")

    # --- L3 ---

    @property
    def vrf(self) -> str:
        return self._snap.field(self.ip_table, self.name, "vrf_name")

    @property
    def ip_addresses(self) -> list[str]:
        prefix = self.name + keys.SEPARATOR
        return [k[len(prefix):] for k in self._snap.keys_with_prefix(self.ip_table, prefix)]

    # --- Service ---

    @property
    def binding(self) -> Optional[ServiceBinding]:
        return self.node.interface_binding(self.name)

    @property
    def has_service(self) -> bool:
        return self.binding is not None

    @property
    def service_name(self) -> str:
        binding = self.binding
        return binding.service_name if binding else ""

    @property
    def ingress_acl(self) -> str:
        return self._bound_acl("ingress")

    @property
    def egress_acl(self) -> str:
        return self._bound_acl("egress")

    def _bound_acl(self, stage: str) -> str:
        for name, fields in self._snap.table(tables.ACL_TABLE).items():
            if fields.get("stage", "ingress") == stage and self.name in split_csv(fields.get("ports", "")):
                return name
        return ""

    # --- Membership ---

    @property
    def portchannel_parent(self) -> str:
        return self.node.interface_lag(self.name)

    @property
    def is_portchannel_member(self) -> bool:
        return bool(self.portchannel_parent)

    @property
    def portchannel_members(self) -> list[str]:
        if not self.is_portchannel:
            return []
        prefix = self.name + keys.SEPARATOR
        return [k[len(prefix):] for k in self._snap.keys_with_prefix(tables.PORTCHANNEL_MEMBER, prefix)]

    @property
    def vlan_memberships(self) -> dict[int, str]:
        """VLAN ID -> tagging mode for every VLAN this interface belongs to."""
        result = {}
        suffix = keys.SEPARATOR + self.name
        for key, fields in self._snap.table(tables.VLAN_MEMBER).items():
            if key.endswith(suffix):
                vlan_id = keys.parse_vlan_id(key[: -len(suffix)])
                if vlan_id is not None:
                    result[vlan_id] = fields.get("tagging_mode", "untagged")
        return result

    @property
    def bgp_neighbors(self) -> list[str]:
        """Neighbors whose local_addr is one of this interface's addresses."""
        local = {ip.split("/")[0] for ip in self.ip_addresses}
        result = []
        for key, fields in self._snap.table(tables.BGP_NEIGHBOR).items():
            if fields.get("local_addr") in local:
                result.append(keys.split_key(key)[-1])
        return result

    def to_dict(self) -> dict:
        binding = self.binding
        return {
            "name": self.name,
            "admin_status": self.admin_status,
            "mtu": self.mtu,
            "speed": self.speed,
            "description": self.description,
            "vrf": self.vrf,
            "ip_addresses": self.ip_addresses,
            "service": binding.to_fields() if binding else None,
            "portchannel": self.portchannel_parent,
            "vlans": self.vlan_memberships,
        }
