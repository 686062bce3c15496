"""VXLAN/EVPN overlay: VTEP, VNI maps, ARP suppression and overlay BGP."""
import logging
from typing import TYPE_CHECKING

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..errors import TranslationError
from .base import entry, run_op
from .bgp import bgp_globals_af_config, bgp_globals_config, bgp_neighbor_config, delete_bgp_neighbor_config

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)


# --- Entry generators ---

def vtep_config(source_ip: str) -> list[ConfigEntry]:
    return [
        entry(tables.VXLAN_TUNNEL, tables.VTEP_NAME, {"src_ip": source_ip}),
        entry(tables.VXLAN_EVPN_NVO, tables.NVO_NAME, {"source_vtep": tables.VTEP_NAME}),
    ]


def vni_map_config(target: str, vni: int, field: str = "vlan") -> list[ConfigEntry]:
    """Map a VLAN (``field="vlan"``) or VRF (``field="vrf"``) to a VNI."""
    return [entry(tables.VXLAN_TUNNEL_MAP, keys.vni_map_key(vni, target), {
        field: target,
        "vni": str(vni),
    })]


def arp_suppression_config(vlan_name: str) -> list[ConfigEntry]:
    return [entry(tables.SUPPRESS_VLAN_NEIGH, vlan_name, {"suppress": "on"})]


def vni_maps_for(node: "Node", field: str, value: str) -> list[str]:
    """Keys of VXLAN_TUNNEL_MAP entries whose ``field`` equals ``value``."""
    return sorted(
        key for key, fields in node.snapshot.table(tables.VXLAN_TUNNEL_MAP).items()
        if fields.get(field) == value
    )


def unbind_macvpn_config(node: "Node", vlan_name: str) -> list[ConfigEntry]:
    """ARP suppression and L2VNI maps of a VLAN, as delete entries."""
    entries = []
    if node.snapshot.has(tables.SUPPRESS_VLAN_NEIGH, vlan_name):
        entries.append(entry(tables.SUPPRESS_VLAN_NEIGH, vlan_name))
    entries += [entry(tables.VXLAN_TUNNEL_MAP, k) for k in vni_maps_for(node, "vlan", vlan_name)]
    return entries


def vtep_source_ip(node: "Node") -> str:
    for fields in node.snapshot.table(tables.VXLAN_TUNNEL).values():
        if fields.get("src_ip"):
            return fields["src_ip"]
    return node.profile.vtep_source_ip


# --- Operations ---

def map_l2vni(node: "Node", vlan_id: int, vni: int) -> ChangeSet:
    def precheck(pc):
        pc.require_vtep_configured().require_vlan_exists(vlan_id).require_platform_feature("evpn-vxlan")

    cs = run_op(
        node, "map-l2vni", keys.vlan_name(vlan_id), ChangeType.ADD, precheck,
        lambda: vni_map_config(keys.vlan_name(vlan_id), vni),
    )
    logger.info(f"{node.name}: mapped VLAN {vlan_id} to L2VNI {vni}")
    return cs


def unmap_l2vni(node: "Node", vlan_id: int) -> ChangeSet:
    vlan_name = keys.vlan_name(vlan_id)

    def build():
        return [entry(tables.VXLAN_TUNNEL_MAP, k) for k in vni_maps_for(node, "vlan", vlan_name)]

    cs = run_op(
        node, "unmap-l2vni", vlan_name, ChangeType.DELETE,
        lambda pc: pc.require_vlan_exists(vlan_id), build,
    )
    if cs.is_empty:
        raise TranslationError(f"no L2VNI mapping found for VLAN {vlan_id}", reference=vlan_name)
    logger.info(f"{node.name}: unmapped L2VNI for VLAN {vlan_id}")
    return cs


def bind_macvpn(node: "Node", vlan_id: int, macvpn_name: str) -> ChangeSet:
    """Extend an existing VLAN over VXLAN as described by a MAC-VPN definition."""
    vlan_name = keys.vlan_name(vlan_id)

    def precheck(pc):
        pc.require_vtep_configured().require_vlan_exists(vlan_id).require_platform_feature("evpn-vxlan")
        bound = vni_maps_for(node, "vlan", vlan_name)
        pc.check(not bound, "VLAN must not have an L2VNI", f"{vlan_name} is already mapped ({', '.join(bound)})")

    macvpn = node.resolver.get_macvpn(macvpn_name)

    def build():
        entries = []
        if macvpn.vni > 0:
            entries += vni_map_config(vlan_name, macvpn.vni)
        if macvpn.arp_suppression:
            entries += arp_suppression_config(vlan_name)
        return entries

    cs = run_op(node, "bind-macvpn", vlan_name, ChangeType.ADD, precheck, build, scope="interface")
    logger.info(f"{node.name}: bound MAC-VPN {macvpn_name} to {vlan_name} (VNI {macvpn.vni})")
    return cs


def unbind_macvpn(node: "Node", vlan_id: int) -> ChangeSet:
    vlan_name = keys.vlan_name(vlan_id)
    cs = run_op(
        node, "unbind-macvpn", vlan_name, ChangeType.DELETE,
        lambda pc: pc.require_vlan_exists(vlan_id),
        lambda: unbind_macvpn_config(node, vlan_name),
        scope="interface",
    )
    logger.info(f"{node.name}: unbound MAC-VPN from {vlan_name}")
    return cs


def setup_evpn(node: "Node", source_ip: str = "") -> ChangeSet:
    """Create the VTEP and overlay BGP sessions; parts already present are skipped."""
    node.precondition("setup-evpn", "evpn").raise_if_failed()
    profile = node.profile
    source_ip = source_ip or profile.vtep_source_ip
    if not source_ip:
        raise TranslationError(
            "no VTEP source IP available (specify source_ip or set loopback_ip in the device profile)"
        )

    cs = ChangeSet(node.name, "device.setup-evpn")
    if not node.vtep_exists():
        cs.adds(vtep_config(source_ip))

    if profile.bgp_neighbors:
        cs.adds(bgp_globals_config(tables.DEFAULT_VRF, profile.underlay_asn, profile.router_id))
        cs.adds(bgp_globals_af_config(tables.DEFAULT_VRF, "l2vpn_evpn", {"advertise-all-vni": "true"}))
        for peer in profile.bgp_neighbors:
            if peer == profile.loopback_ip:
                continue
            peer_asn = profile.bgp_neighbor_asns.get(peer, 0)
            if not peer_asn:
                raise TranslationError(f"no ASN found for EVPN peer {peer}", reference=peer)
            if node.snapshot.has(tables.BGP_NEIGHBOR, keys.bgp_neighbor_key(tables.DEFAULT_VRF, peer)):
                cs.add(
                    tables.BGP_NEIGHBOR_AF,
                    keys.bgp_neighbor_af_key(tables.DEFAULT_VRF, peer, "l2vpn_evpn"),
                    {"activate": "true"},
                )
            else:
                cs.adds(bgp_neighbor_config(
                    tables.DEFAULT_VRF, peer, peer_asn, profile.loopback_ip,
                    ebgp_multihop=True, address_families=("ipv4_unicast", "l2vpn_evpn"),
                ))

    logger.info(f"{node.name}: setup EVPN (source {source_ip}, {len(profile.bgp_neighbors)} peers)")
    return node.track_offline(cs)


def teardown_evpn(node: "Node") -> ChangeSet:
    """Reverse of setup_evpn."""
    node.precondition("teardown-evpn", "evpn").raise_if_failed()
    profile = node.profile
    cs = ChangeSet(node.name, "device.teardown-evpn")
    for peer in profile.bgp_neighbors:
        if peer == profile.loopback_ip:
            continue
        cs.deletes(delete_bgp_neighbor_config(
            tables.DEFAULT_VRF, peer, address_families=("ipv4_unicast", "l2vpn_evpn")
        ))
    cs.delete(tables.BGP_GLOBALS_AF, keys.bgp_globals_af_key(tables.DEFAULT_VRF, "l2vpn_evpn"))
    cs.delete(tables.VXLAN_EVPN_NVO, tables.NVO_NAME)
    cs.delete(tables.VXLAN_TUNNEL, tables.VTEP_NAME)
    logger.info(f"{node.name}: tore down EVPN overlay")
    return node.track_offline(cs)
