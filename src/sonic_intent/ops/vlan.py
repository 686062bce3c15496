"""VLAN, VLAN membership and SVI operations."""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..errors import TranslationError
from ..utils.naming import normalize_interface_name
from .base import entry, run_op
from .evpn import vni_map_config, vni_maps_for

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)

SAG_KEY = "IPv4"


# --- Entry generators ---

def vlan_config(vlan_id: int, description: str = "", l2vni: int = 0) -> list[ConfigEntry]:
    fields = {"vlanid": str(vlan_id)}
    if description:
        fields["description"] = description
    entries = [entry(tables.VLAN, keys.vlan_name(vlan_id), fields)]
    if l2vni > 0:
        entries.extend(vni_map_config(keys.vlan_name(vlan_id), l2vni))
    return entries


def vlan_member_config(vlan_id: int, interface: str, tagged: bool) -> list[ConfigEntry]:
    return [entry(tables.VLAN_MEMBER, keys.vlan_member_key(vlan_id, interface), {
        "tagging_mode": "tagged" if tagged else "untagged",
    })]


def svi_config(vlan_id: int, vrf: str = "", ip_address: str = "", anycast_mac: str = "") -> list[ConfigEntry]:
    """VLAN_INTERFACE base (optionally VRF-bound), its IP, and the SAG gateway MAC."""
    entries = [entry(tables.VLAN_INTERFACE, keys.vlan_name(vlan_id), {"vrf_name": vrf} if vrf else {})]
    if ip_address:
        entries.append(entry(tables.VLAN_INTERFACE, keys.svi_ip_key(vlan_id, ip_address)))
    if anycast_mac:
        entries.append(entry(tables.SAG_GLOBAL, SAG_KEY, {"gwmac": anycast_mac}))
    return entries


def delete_vlan_member_config(vlan_id: int, interface: str) -> list[ConfigEntry]:
    return [entry(tables.VLAN_MEMBER, keys.vlan_member_key(vlan_id, interface))]


def delete_svi_ip_config(vlan_id: int, ip_address: str) -> list[ConfigEntry]:
    return [entry(tables.VLAN_INTERFACE, keys.svi_ip_key(vlan_id, ip_address))]


def delete_svi_base_config(vlan_id: int) -> list[ConfigEntry]:
    return [entry(tables.VLAN_INTERFACE, keys.vlan_name(vlan_id))]


def delete_sag_global_config() -> list[ConfigEntry]:
    return [entry(tables.SAG_GLOBAL, SAG_KEY)]


def delete_vlan_config(vlan_id: int) -> list[ConfigEntry]:
    """The VLAN row alone; see destroy_vlan_config for members and maps."""
    return [entry(tables.VLAN, keys.vlan_name(vlan_id))]


def destroy_vlan_config(node: "Node", vlan_id: int) -> list[ConfigEntry]:
    """Members first, then VNI maps, then the VLAN itself."""
    snapshot = node.snapshot
    entries = [
        entry(tables.VLAN_MEMBER, key)
        for key in sorted(snapshot.keys_with_prefix(tables.VLAN_MEMBER, keys.vlan_member_prefix(vlan_id)))
    ]
    entries.extend(
        entry(tables.VXLAN_TUNNEL_MAP, key)
        for key in vni_maps_for(node, "vlan", keys.vlan_name(vlan_id))
    )
    entries.extend(delete_vlan_config(vlan_id))
    return entries


def destroy_svi_config(node: "Node", vlan_id: int) -> list[ConfigEntry]:
    """SVI IP rows, then the SVI base row if present."""
    snapshot = node.snapshot
    prefix = keys.vlan_name(vlan_id) + keys.SEPARATOR
    entries = [
        entry(tables.VLAN_INTERFACE, key)
        for key in sorted(snapshot.keys_with_prefix(tables.VLAN_INTERFACE, prefix))
    ]
    if snapshot.has(tables.VLAN_INTERFACE, keys.vlan_name(vlan_id)):
        entries.extend(delete_svi_base_config(vlan_id))
    return entries


# --- Operations ---

def create_vlan(node: "Node", vlan_id: int, description: str = "", l2vni: int = 0) -> ChangeSet:
    def precheck(pc):
        pc.check(1 <= vlan_id <= 4094, "valid VLAN ID", f"must be 1-4094, got {vlan_id}")
        pc.require_vlan_not_exists(vlan_id)

    cs = run_op(
        node, "create-vlan", keys.vlan_name(vlan_id), ChangeType.ADD, precheck,
        lambda: vlan_config(vlan_id, description, l2vni),
    )
    logger.info(f"{node.name}: created VLAN {vlan_id}")
    return cs


def delete_vlan(node: "Node", vlan_id: int) -> ChangeSet:
    cs = run_op(
        node, "delete-vlan", keys.vlan_name(vlan_id), ChangeType.DELETE,
        lambda pc: pc.require_vlan_exists(vlan_id),
        lambda: destroy_vlan_config(node, vlan_id),
    )
    logger.info(f"{node.name}: deleted VLAN {vlan_id}")
    return cs


def add_vlan_member(node: "Node", vlan_id: int, interface: str, tagged: bool = False) -> ChangeSet:
    interface = normalize_interface_name(interface)
    cs = run_op(
        node, "add-vlan-member", keys.vlan_name(vlan_id), ChangeType.ADD,
        lambda pc: pc.require_vlan_exists(vlan_id).require_interface_exists(interface),
        lambda: vlan_member_config(vlan_id, interface, tagged),
    )
    mode = "tagged" if tagged else "untagged"
    logger.info(f"{node.name}: added {interface} to VLAN {vlan_id} ({mode})")
    return cs


def remove_vlan_member(node: "Node", vlan_id: int, interface: str) -> ChangeSet:
    interface = normalize_interface_name(interface)
    cs = run_op(
        node, "remove-vlan-member", keys.vlan_name(vlan_id), ChangeType.DELETE,
        lambda pc: pc.require_vlan_exists(vlan_id),
        lambda: delete_vlan_member_config(vlan_id, interface),
    )
    logger.info(f"{node.name}: removed {interface} from VLAN {vlan_id}")
    return cs


def configure_svi(
    node: "Node", vlan_id: int, vrf: str = "", ip_address: str = "", anycast_mac: str = ""
) -> ChangeSet:
    def precheck(pc):
        pc.require_vlan_exists(vlan_id)
        if vrf:
            pc.require_vrf_exists(vrf)

    cs = run_op(
        node, "configure-svi", keys.vlan_name(vlan_id), ChangeType.ADD, precheck,
        lambda: svi_config(vlan_id, vrf, ip_address, anycast_mac),
    )
    logger.info(f"{node.name}: configured SVI for VLAN {vlan_id}")
    return cs


def remove_svi(node: "Node", vlan_id: int) -> ChangeSet:
    cs = run_op(
        node, "remove-svi", keys.vlan_name(vlan_id), ChangeType.DELETE,
        lambda pc: None,
        lambda: destroy_svi_config(node, vlan_id),
    )
    if cs.is_empty:
        raise TranslationError(f"no SVI configuration found for VLAN {vlan_id}", reference=keys.vlan_name(vlan_id))
    logger.info(f"{node.name}: removed SVI for VLAN {vlan_id}")
    return cs


# --- Queries ---

@dataclass
class VLANInfo:
    """VLAN as assembled from CONFIG_DB. Tagged members carry a ``(t)`` suffix."""
    id: int
    name: str = ""
    members: list[str] = field(default_factory=list)
    svi_status: str = ""
    macvpn_name: str = ""
    l2vni: int = 0
    arp_suppression: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "members": self.members,
            "svi_status": self.svi_status,
            "macvpn": self.macvpn_name,
            "l2vni": self.l2vni,
            "arp_suppression": self.arp_suppression,
        }


def get_vlan(node: "Node", vlan_id: int) -> VLANInfo:
    snapshot = node.snapshot
    name = keys.vlan_name(vlan_id)
    vlan = snapshot.get(tables.VLAN, name)
    if vlan is None:
        raise KeyError(f"VLAN {vlan_id} not found")

    info = VLANInfo(id=vlan_id, name=vlan.get("description", ""))
    prefix = keys.vlan_member_prefix(vlan_id)
    for key in sorted(snapshot.keys_with_prefix(tables.VLAN_MEMBER, prefix)):
        member = key[len(prefix):]
        if snapshot.field(tables.VLAN_MEMBER, key, "tagging_mode") == "tagged":
            member += "(t)"
        info.members.append(member)

    if snapshot.has(tables.VLAN_INTERFACE, name):
        info.svi_status = "up"

    for map_key in vni_maps_for(node, "vlan", name):
        vni = snapshot.field(tables.VXLAN_TUNNEL_MAP, map_key, "vni")
        if vni.isdigit():
            info.l2vni = int(vni)
            break

    info.arp_suppression = snapshot.has(tables.SUPPRESS_VLAN_NEIGH, name)
    if info.l2vni:
        found: Optional[tuple] = node.resolver.find_macvpn_by_vni(info.l2vni)
        if found is not None:
            info.macvpn_name = found[0]
    return info


def list_vlans(node: "Node") -> list[int]:
    ids = (keys.parse_vlan_id(name) for name in node.snapshot.keys(tables.VLAN))
    return sorted(i for i in ids if i is not None)
