"""First/last-user queries for shared resources.

``is_first_*`` asks whether nobody uses a resource yet; the caller has not
been added, so nothing is excluded. ``is_last_*`` asks whether anybody other
than ``exclude_interface`` still uses it, which decides whether removal may
delete the shared entry.
"""
from typing import TYPE_CHECKING

from ..config_db import keys, tables
from ..config_db.binding import ServiceBinding
from ..errors import SpecNotFoundError
from ..utils.naming import remove_from_csv, split_csv

if TYPE_CHECKING:
    from .node import Node


class DependencyChecker:
    """Pure queries over the node's current snapshot."""

    def __init__(self, node: "Node", exclude_interface: str = ""):
        self.node = node
        self.exclude_interface = exclude_interface

    def _other_bindings(self):
        for intf, fields in self.node.snapshot.table(tables.SERVICE_BINDING).items():
            if intf != self.exclude_interface:
                yield intf, ServiceBinding.from_fields(fields)

    # --- ACLs ---

    def is_first_acl_user(self, acl_name: str) -> bool:
        acl = self.node.snapshot.get(tables.ACL_TABLE, acl_name)
        return acl is None or not acl.get("ports")

    def is_last_acl_user(self, acl_name: str) -> bool:
        return self.acl_remaining_interfaces(acl_name) == ""

    def acl_remaining_interfaces(self, acl_name: str) -> str:
        """Comma list of the ACL's ports once ``exclude_interface`` is gone."""
        acl = self.node.snapshot.get(tables.ACL_TABLE, acl_name)
        if acl is None:
            return ""
        return remove_from_csv(acl.get("ports", ""), self.exclude_interface)

    # --- VLANs / VRFs ---

    def is_last_vlan_member(self, vlan_id: int) -> bool:
        prefix = keys.vlan_member_prefix(vlan_id)
        for key in self.node.snapshot.keys_with_prefix(tables.VLAN_MEMBER, prefix):
            if key[len(prefix):] != self.exclude_interface:
                return False
        return True

    def is_last_vrf_user(self, vrf_name: str) -> bool:
        """No other interface base entry binds to ``vrf_name``."""
        snapshot = self.node.snapshot
        for table in (tables.INTERFACE, tables.VLAN_INTERFACE, tables.PORTCHANNEL_INTERFACE):
            for key, fields in snapshot.table(table).items():
                if keys.is_sub_key(key) or key == self.exclude_interface:
                    continue
                if fields.get("vrf_name") == vrf_name:
                    return False
        return True

    # --- Services ---

    def is_last_service_user(self, service_name: str) -> bool:
        return not any(b.service_name == service_name for _, b in self._other_bindings())

    def is_last_ipvpn_user(self, ipvpn_name: str) -> bool:
        return not any(b.ipvpn == ipvpn_name for _, b in self._other_bindings())

    def is_last_anycast_mac_user(self) -> bool:
        """No other binding's MAC-VPN carries an anycast gateway MAC."""
        for _, binding in self._other_bindings():
            if not binding.macvpn:
                continue
            try:
                macvpn = self.node.resolver.get_macvpn(binding.macvpn)
            except SpecNotFoundError:
                continue
            if macvpn.anycast_mac:
                return False
        return True

    # --- QoS ---

    def is_qos_policy_referenced(self, policy_name: str) -> bool:
        """Another interface's PORT_QOS_MAP still points at the policy's maps."""
        ref = keys.table_ref(tables.DSCP_TO_TC_MAP, policy_name)
        for intf, fields in self.node.snapshot.table(tables.PORT_QOS_MAP).items():
            if intf != self.exclude_interface and fields.get("dscp_to_tc_map") == ref:
                return True
        return False

    def acl_ports(self, acl_name: str) -> list[str]:
        return split_csv(self.node.snapshot.field(tables.ACL_TABLE, acl_name, "ports"))
