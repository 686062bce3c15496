"""BGP globals, address families and neighbors."""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..utils.naming import derive_neighbor_ip, is_valid_ipv4, normalize_interface_name, split_ip_mask
from .base import entry, run_op

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)


# --- Entry generators ---

def bgp_globals_config(vrf: str, local_asn: int, router_id: str, extra: Optional[dict] = None) -> list[ConfigEntry]:
    fields = {"local_asn": str(local_asn), "router_id": router_id}
    fields.update(extra or {})
    return [entry(tables.BGP_GLOBALS, vrf or tables.DEFAULT_VRF, fields)]


def bgp_globals_af_config(vrf: str, af: str, fields: Optional[dict] = None) -> list[ConfigEntry]:
    return [entry(tables.BGP_GLOBALS_AF, keys.bgp_globals_af_key(vrf or tables.DEFAULT_VRF, af), fields)]


def bgp_neighbor_config(
    vrf: str,
    neighbor_ip: str,
    remote_asn: int,
    local_addr: str = "",
    description: str = "",
    ebgp_multihop: bool = False,
    multihop_ttl: int = 0,
    address_families: Iterable[str] = ("ipv4_unicast",),
    route_reflector_client: bool = False,
    next_hop_self: bool = False,
) -> list[ConfigEntry]:
    """BGP_NEIGHBOR plus one activated BGP_NEIGHBOR_AF per address family."""
    vrf = vrf or tables.DEFAULT_VRF
    fields = {"asn": str(remote_asn), "admin_status": "up"}
    if local_addr:
        fields["local_addr"] = local_addr
    if description:
        fields["name"] = description
    if ebgp_multihop:
        fields["ebgp_multihop"] = "true"
        if multihop_ttl:
            fields["ebgp_multihop_ttl"] = str(multihop_ttl)

    entries = [entry(tables.BGP_NEIGHBOR, keys.bgp_neighbor_key(vrf, neighbor_ip), fields)]
    for af in address_families:
        af_fields = {"activate": "true"}
        if af == "ipv4_unicast":
            if route_reflector_client:
                af_fields["route_reflector_client"] = "true"
            if next_hop_self:
                af_fields["next_hop_self"] = "true"
        entries.append(entry(tables.BGP_NEIGHBOR_AF, keys.bgp_neighbor_af_key(vrf, neighbor_ip, af), af_fields))
    return entries


def delete_bgp_neighbor_config(
    vrf: str, neighbor_ip: str, address_families: Iterable[str] = ("ipv4_unicast",)
) -> list[ConfigEntry]:
    """Address families first, then the neighbor."""
    vrf = vrf or tables.DEFAULT_VRF
    entries = [
        entry(tables.BGP_NEIGHBOR_AF, keys.bgp_neighbor_af_key(vrf, neighbor_ip, af))
        for af in address_families
    ]
    entries.append(entry(tables.BGP_NEIGHBOR, keys.bgp_neighbor_key(vrf, neighbor_ip)))
    return entries


def redistribution_config(vrf: str, enabled: bool) -> list[ConfigEntry]:
    value = "true" if enabled else "false"
    return bgp_globals_af_config(vrf, "ipv4_unicast", {
        "redistribute_connected": value,
        "redistribute_static": value,
    })


def revert_redistribution_config(vrf: str) -> list[ConfigEntry]:
    """Back to the ipvpn default: connected redistributed, static not."""
    return bgp_globals_af_config(vrf, "ipv4_unicast", {
        "redistribute_connected": "true",
        "redistribute_static": "false",
    })


# --- Operations ---

@dataclass
class BGPGlobalsConfig:
    local_asn: int
    router_id: str
    vrf: str = tables.DEFAULT_VRF
    load_balance_mp_relax: bool = False
    rr_cluster_id: str = ""
    ebgp_requires_policy: bool = False
    default_ipv4_unicast: bool = False
    log_neighbor_changes: bool = False
    suppress_fib_pending: bool = False

    def to_fields(self) -> dict[str, str]:
        fields = {}
        if self.load_balance_mp_relax:
            fields["load_balance_mp_relax"] = "true"
        if self.rr_cluster_id:
            fields["rr_cluster_id"] = self.rr_cluster_id
        if not self.ebgp_requires_policy:
            fields["ebgp_requires_policy"] = "false"
        if not self.default_ipv4_unicast:
            fields["default_ipv4_unicast"] = "false"
        if self.log_neighbor_changes:
            fields["log_neighbor_changes"] = "true"
        if self.suppress_fib_pending:
            fields["suppress_fib_pending"] = "true"
        return fields


def set_bgp_globals(node: "Node", config: BGPGlobalsConfig) -> ChangeSet:
    vrf = config.vrf or tables.DEFAULT_VRF

    def precheck(pc):
        pc.check(config.local_asn > 0, "local ASN must be set", f"got {config.local_asn}")
        if vrf != tables.DEFAULT_VRF:
            pc.require_vrf_exists(vrf)

    cs = run_op(
        node, "set-bgp-globals", vrf, ChangeType.ADD, precheck,
        lambda: bgp_globals_config(vrf, config.local_asn, config.router_id, config.to_fields()),
    )
    logger.info(f"{node.name}: set BGP globals for VRF {vrf} (ASN {config.local_asn})")
    return cs


def add_bgp_neighbor(
    node: "Node",
    interface: str,
    remote_as: int,
    neighbor_ip: str = "",
    description: str = "",
    multihop: int = 0,
) -> ChangeSet:
    """Peer with the far end of an interface's point-to-point subnet.

    The neighbor address is derived from the interface's first IP when not
    given, which only works for /30 and /31 subnets.
    """
    interface = normalize_interface_name(interface)
    intf = node.interface(interface)
    pc = node.precondition("add-bgp-neighbor", interface).require_interface_exists(interface)
    pc.check(remote_as > 0, "remote AS number is required")
    addresses = intf.ip_addresses
    pc.check(bool(addresses), "interface must have an IP address", f"interface '{interface}' has no IP address")
    pc.raise_if_failed()

    local_ip = addresses[0]
    neighbor_ip = neighbor_ip or derive_neighbor_ip(local_ip)
    vrf = intf.vrf or tables.DEFAULT_VRF
    node.precondition("add-bgp-neighbor", interface) \
        .check(is_valid_ipv4(neighbor_ip), "neighbor IP must be valid", f"invalid neighbor IP: {neighbor_ip}") \
        .check(
            not node.snapshot.has(tables.BGP_NEIGHBOR, keys.bgp_neighbor_key(vrf, neighbor_ip)),
            "BGP neighbor must not exist", f"BGP neighbor {neighbor_ip} already exists",
        ) \
        .raise_if_failed()

    local_addr, _ = split_ip_mask(local_ip)
    cs = ChangeSet.from_entries(node.name, "interface.add-bgp-neighbor", bgp_neighbor_config(
        vrf, neighbor_ip, remote_as, local_addr,
        description=description, ebgp_multihop=multihop > 0, multihop_ttl=multihop,
    ))
    logger.info(f"{node.name}: adding BGP neighbor {neighbor_ip} (AS {remote_as}) on {interface}")
    return node.track_offline(cs)


def remove_bgp_neighbor(node: "Node", neighbor_ip: str, vrf: str = "") -> ChangeSet:
    """Delete a neighbor and every address family configured under it."""
    vrf = vrf or tables.DEFAULT_VRF
    neighbor_key = keys.bgp_neighbor_key(vrf, neighbor_ip)

    def build():
        af_prefix = neighbor_key + keys.SEPARATOR
        entries = [
            entry(tables.BGP_NEIGHBOR_AF, k)
            for k in sorted(node.snapshot.keys_with_prefix(tables.BGP_NEIGHBOR_AF, af_prefix))
        ]
        entries.append(entry(tables.BGP_NEIGHBOR, neighbor_key))
        return entries

    cs = run_op(
        node, "remove-bgp-neighbor", neighbor_ip, ChangeType.DELETE,
        lambda pc: pc.check(
            node.snapshot.has(tables.BGP_NEIGHBOR, neighbor_key),
            "BGP neighbor must exist", f"BGP neighbor {neighbor_ip} not found in VRF {vrf}",
        ),
        build,
    )
    logger.info(f"{node.name}: removed BGP neighbor {neighbor_ip} (VRF {vrf})")
    return cs
