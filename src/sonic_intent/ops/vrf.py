"""VRFs, IP-VPN binding and static routes."""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..spec.schema import IPVPNSpec
from ..utils.naming import normalize_interface_name
from .base import entry, run_op
from .bgp import bgp_globals_af_config, bgp_globals_config
from .evpn import vni_map_config, vni_maps_for

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)


# --- Entry generators ---

def vrf_config(name: str) -> list[ConfigEntry]:
    """A bare VRF; the L3VNI is added by ipvpn_config."""
    return [entry(tables.VRF, name)]


def ipvpn_config(vrf: str, ipvpn: IPVPNSpec, underlay_asn: int = 0, router_id: str = "") -> list[ConfigEntry]:
    """Bind ``vrf`` to an IP-VPN: L3VNI, per-VRF BGP instance, EVPN type-5 export and RTs."""
    entries = [entry(tables.VRF, vrf, {"vni": str(ipvpn.l3vni)})]
    if ipvpn.l3vni > 0:
        entries.extend(vni_map_config(vrf, ipvpn.l3vni, field="vrf"))
    if underlay_asn:
        entries.extend(bgp_globals_config(vrf, underlay_asn, router_id))
    entries.extend(bgp_globals_af_config(vrf, "ipv4_unicast"))
    entries.extend(bgp_globals_af_config(vrf, "l2vpn_evpn", {"advertise-ipv4-unicast": "true"}))
    entries.append(entry(tables.ROUTE_REDISTRIBUTE, keys.route_redistribute_key(vrf, "connected")))
    for rt in ipvpn.route_targets:
        entries.append(entry(tables.BGP_GLOBALS_EVPN_RT, keys.evpn_rt_key(vrf, rt), {"route-target-type": "both"}))
    return entries


def _vrf_scoped(node: "Node", table: str, vrf: str) -> list[ConfigEntry]:
    prefix = vrf + keys.SEPARATOR
    return [entry(table, k) for k in sorted(node.snapshot.keys_with_prefix(table, prefix))]


def destroy_vrf_config(node: "Node", vrf: str) -> list[ConfigEntry]:
    """Everything hanging off a VRF, then the VRF itself.

    BGP neighbors are not included; the bindings that created them remove them.
    """
    snapshot = node.snapshot
    entries = _vrf_scoped(node, tables.BGP_GLOBALS_EVPN_RT, vrf)
    entries += _vrf_scoped(node, tables.ROUTE_REDISTRIBUTE, vrf)
    entries += _vrf_scoped(node, tables.BGP_GLOBALS_AF, vrf)
    entries += [entry(tables.VXLAN_TUNNEL_MAP, k) for k in vni_maps_for(node, "vrf", vrf)]
    if snapshot.has(tables.BGP_GLOBALS, vrf):
        entries.append(entry(tables.BGP_GLOBALS, vrf))
    entries.append(entry(tables.VRF, vrf))
    return entries


def static_route_config(vrf: str, prefix: str, next_hop: str, metric: int = 0) -> list[ConfigEntry]:
    fields = {"nexthop": next_hop}
    if metric > 0:
        fields["distance"] = str(metric)
    return [entry(tables.STATIC_ROUTE, keys.static_route_key(vrf, prefix), fields)]


# --- Operations ---

def create_vrf(node: "Node", name: str) -> ChangeSet:
    cs = run_op(
        node, "create-vrf", name, ChangeType.ADD,
        lambda pc: pc.require_vrf_not_exists(name),
        lambda: vrf_config(name),
    )
    logger.info(f"{node.name}: created VRF {name}")
    return cs


def delete_vrf(node: "Node", name: str) -> ChangeSet:
    def precheck(pc):
        pc.require_vrf_exists(name)
        if node.vrf_exists(name):
            pc.check(
                node.dependencies().is_last_vrf_user(name), "VRF must have no interfaces bound",
                f"VRF {name} has interfaces bound: {get_vrf(node, name).interfaces}",
            )

    cs = run_op(node, "delete-vrf", name, ChangeType.DELETE, precheck, lambda: destroy_vrf_config(node, name))
    logger.info(f"{node.name}: deleted VRF {name}")
    return cs


def add_vrf_interface(node: "Node", vrf: str, interface: str) -> ChangeSet:
    interface = normalize_interface_name(interface)
    table = node.interface(interface).ip_table
    cs = run_op(
        node, "add-vrf-interface", vrf, ChangeType.MODIFY,
        lambda pc: pc.require_vrf_exists(vrf).require_interface_exists(interface),
        lambda: [entry(table, interface, {"vrf_name": vrf})],
    )
    logger.info(f"{node.name}: bound interface {interface} to VRF {vrf}")
    return cs


def remove_vrf_interface(node: "Node", vrf: str, interface: str) -> ChangeSet:
    interface = normalize_interface_name(interface)
    table = node.interface(interface).ip_table
    cs = run_op(
        node, "remove-vrf-interface", vrf, ChangeType.MODIFY,
        lambda pc: None,
        lambda: [entry(table, interface, {"vrf_name": ""})],
    )
    logger.info(f"{node.name}: removed VRF binding from interface {interface}")
    return cs


def bind_ipvpn(node: "Node", vrf: str, ipvpn_name: str) -> ChangeSet:
    """Attach an existing VRF to a named IP-VPN."""
    ipvpn = node.resolver.get_ipvpn(ipvpn_name)
    profile = node.profile
    cs = run_op(
        node, "bind-ipvpn", vrf, ChangeType.MODIFY,
        lambda pc: pc.require_vtep_configured().require_vrf_exists(vrf),
        lambda: ipvpn_config(vrf, ipvpn, profile.underlay_asn, profile.router_id),
    )
    logger.info(
        f"{node.name}: bound VRF {vrf} to IP-VPN {ipvpn_name} "
        f"(L3VNI {ipvpn.l3vni}, {len(ipvpn.route_targets)} route-targets)"
    )
    return cs


def unbind_ipvpn(node: "Node", vrf: str) -> ChangeSet:
    node.precondition("unbind-ipvpn", vrf).require_vrf_exists(vrf).raise_if_failed()
    cs = ChangeSet(node.name, "device.unbind-ipvpn")
    cs.update(tables.VRF, vrf, {"vni": ""})
    cs.deletes(entry(tables.VXLAN_TUNNEL_MAP, k) for k in vni_maps_for(node, "vrf", vrf))
    cs.delete(tables.BGP_GLOBALS_AF, keys.bgp_globals_af_key(vrf, "l2vpn_evpn"))
    cs.delete(tables.BGP_GLOBALS_AF, keys.bgp_globals_af_key(vrf, "ipv4_unicast"))
    cs.delete(tables.ROUTE_REDISTRIBUTE, keys.route_redistribute_key(vrf, "connected"))
    cs.deletes(_vrf_scoped(node, tables.BGP_GLOBALS_EVPN_RT, vrf))
    logger.info(f"{node.name}: unbound IP-VPN from VRF {vrf}")
    return node.track_offline(cs)


def add_static_route(node: "Node", vrf: str, prefix: str, next_hop: str, metric: int = 0) -> ChangeSet:
    def precheck(pc):
        pc.check(
            not vrf or vrf == tables.DEFAULT_VRF or node.vrf_exists(vrf),
            "VRF must exist", f"VRF '{vrf}' not found",
        )

    cs = run_op(
        node, "add-static-route", prefix, ChangeType.ADD, precheck,
        lambda: static_route_config(vrf, prefix, next_hop, metric),
    )
    logger.info(f"{node.name}: added static route {prefix} via {next_hop} (VRF {vrf or tables.DEFAULT_VRF})")
    return cs


def remove_static_route(node: "Node", vrf: str, prefix: str) -> ChangeSet:
    cs = run_op(
        node, "remove-static-route", prefix, ChangeType.DELETE,
        lambda pc: None,
        lambda: [entry(tables.STATIC_ROUTE, keys.static_route_key(vrf, prefix))],
    )
    logger.info(f"{node.name}: removed static route {prefix} (VRF {vrf or tables.DEFAULT_VRF})")
    return cs


# --- Queries ---

@dataclass
class VRFInfo:
    name: str
    l3vni: int = 0
    interfaces: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "l3vni": self.l3vni, "interfaces": self.interfaces}


def get_vrf(node: "Node", name: str) -> VRFInfo:
    snapshot = node.snapshot
    vrf = snapshot.get(tables.VRF, name)
    if vrf is None:
        raise KeyError(f"VRF {name} not found")

    vni = vrf.get("vni", "")
    info = VRFInfo(name=name, l3vni=int(vni) if vni.isdigit() else 0)
    for table in (tables.INTERFACE, tables.PORTCHANNEL_INTERFACE, tables.VLAN_INTERFACE):
        for key, fields in sorted(snapshot.table(table).items()):
            if not keys.is_sub_key(key) and fields.get("vrf_name") == name and key not in info.interfaces:
                info.interfaces.append(key)
    return info


def list_vrfs(node: "Node") -> list[str]:
    return sorted(node.snapshot.keys(tables.VRF))
