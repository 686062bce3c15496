"""Typed key construction for CONFIG_DB relationships.

Every composite key is built here; operations never concatenate ``|`` by
hand, so a relationship's key shape is defined exactly once.
"""
from typing import Optional

from .tables import DEFAULT_VRF, VTEP_NAME

SEPARATOR = "|"


def join_key(*parts) -> str:
    return SEPARATOR.join(str(p) for p in parts)


def split_key(key: str) -> list[str]:
    return key.split(SEPARATOR)


def is_sub_key(key: str) -> bool:
    """True for keys like ``Ethernet0|10.0.0.1/31`` that hang off a base entry."""
    return SEPARATOR in key


# --- VLAN ---

def vlan_name(vlan_id: int) -> str:
    return f"Vlan{vlan_id}"


def parse_vlan_id(name: str) -> Optional[int]:
    """``Vlan100`` -> 100; anything else -> None."""
    if not name.startswith("Vlan"):
        return None
    try:
        return int(name[4:])
    except ValueError:
        return None


def vlan_member_key(vlan_id: int, interface: str) -> str:
    return join_key(vlan_name(vlan_id), interface)


def vlan_member_prefix(vlan_id: int) -> str:
    return vlan_name(vlan_id) + SEPARATOR


def svi_ip_key(vlan_id: int, ip: str) -> str:
    return join_key(vlan_name(vlan_id), ip)


# --- Interfaces ---

def interface_ip_key(interface: str, ip: str) -> str:
    return join_key(interface, ip)


def portchannel_member_key(portchannel: str, member: str) -> str:
    return join_key(portchannel, member)


# --- EVPN / VXLAN ---

def vni_map_key(vni: int, target: str, vtep: str = VTEP_NAME) -> str:
    """``vtep1|map_{vni}_{target}`` where target is a VLAN or VRF name."""
    return join_key(vtep, f"map_{vni}_{target}")


def bgp_evpn_vni_key(vrf: str, vni: int) -> str:
    return join_key(vrf, vni)


# --- BGP ---

def bgp_globals_af_key(vrf: str, af: str) -> str:
    return join_key(vrf, af)


def route_redistribute_key(vrf: str, source: str, af: str = "ipv4") -> str:
    return join_key(vrf, source, "bgp", af)


def evpn_rt_key(vrf: str, route_target: str) -> str:
    return join_key(vrf, "L2VPN_EVPN", route_target)


def bgp_neighbor_key(vrf: str, ip: str) -> str:
    return join_key(vrf, ip)


def bgp_neighbor_af_key(vrf: str, ip: str, af: str = "ipv4_unicast") -> str:
    return join_key(vrf, ip, af)


def route_map_key(name: str, seq: int) -> str:
    return join_key(name, seq)


def prefix_set_key(name: str, seq: int) -> str:
    return join_key(name, seq)


def static_route_key(vrf: str, prefix: str) -> str:
    """The default VRF's routes are keyed by prefix alone."""
    if not vrf or vrf == DEFAULT_VRF:
        return prefix
    return join_key(vrf, prefix)


# --- ACL ---

def acl_rule_key(table: str, rule: str) -> str:
    return join_key(table, rule)


def acl_rule_prefix(table: str) -> str:
    return table + SEPARATOR


# --- QoS ---

def queue_key(interface: str, index: int) -> str:
    return join_key(interface, index)


def scheduler_key(policy: str, index: int) -> str:
    return f"{policy}.{index}"


def wred_key(policy: str) -> str:
    return f"{policy}.ecn"


def table_ref(table: str, key: str) -> str:
    """Bracketed cross-table reference, e.g. ``[SCHEDULER|gold.0]``."""
    return f"[{table}{SEPARATOR}{key}]"
