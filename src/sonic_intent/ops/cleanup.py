"""Find and remove orphaned resources left behind by partial applies or manual edits."""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..config_db import tables
from ..config_db.changeset import ChangeSet
from .acl import delete_acl_table_config
from .vrf import destroy_vrf_config

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)

CLEANUP_KINDS = ("", "acl", "vrf", "vni")


@dataclass
class CleanupSummary:
    orphaned_acls: list[str] = field(default_factory=list)
    orphaned_vrfs: list[str] = field(default_factory=list)
    orphaned_vni_mappings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.orphaned_acls) + len(self.orphaned_vrfs) + len(self.orphaned_vni_mappings)

    def to_dict(self) -> dict:
        return {
            "orphaned_acls": self.orphaned_acls,
            "orphaned_vrfs": self.orphaned_vrfs,
            "orphaned_vni_mappings": self.orphaned_vni_mappings,
        }


def cleanup(node: "Node", kind: str = "") -> tuple[ChangeSet, CleanupSummary]:
    """Delete orphaned ACLs, VRFs and VNI maps; ``kind`` narrows to one of them.

    Never called implicitly. Orphans are judged against the snapshot as it
    was when the lock was taken.
    """
    node.precondition("cleanup", kind or "all") \
        .check(kind in CLEANUP_KINDS, "cleanup type must be valid",
               f"unknown cleanup type: {kind} (valid: acl, vrf, vni)") \
        .raise_if_failed()

    snapshot = node.snapshot
    cs = ChangeSet(node.name, "device.cleanup")
    summary = CleanupSummary()

    if kind in ("", "acl"):
        for name in sorted(snapshot.keys(tables.ACL_TABLE)):
            if not snapshot.field(tables.ACL_TABLE, name, "ports"):
                summary.orphaned_acls.append(name)
                cs.deletes(delete_acl_table_config(node, name))

    if kind in ("", "vrf"):
        deps = node.dependencies()
        for name in sorted(snapshot.keys(tables.VRF)):
            if name == tables.DEFAULT_VRF or not deps.is_last_vrf_user(name):
                continue
            summary.orphaned_vrfs.append(name)
            cs.deletes(destroy_vrf_config(node, name))

    if kind in ("", "vni"):
        for key, fields in sorted(snapshot.table(tables.VXLAN_TUNNEL_MAP).items()):
            vrf = fields.get("vrf", "")
            vlan = fields.get("vlan", "")
            if (vrf and not snapshot.has(tables.VRF, vrf)) or (vlan and not snapshot.has(tables.VLAN, vlan)):
                summary.orphaned_vni_mappings.append(key)
                cs.delete(tables.VXLAN_TUNNEL_MAP, key)

    node.track_offline(cs)
    if summary.total:
        logger.info(
            f"{node.name}: cleanup found {len(summary.orphaned_acls)} ACLs, "
            f"{len(summary.orphaned_vrfs)} VRFs, {len(summary.orphaned_vni_mappings)} VNI maps orphaned"
        )
    else:
        logger.info(f"{node.name}: cleanup found nothing to remove")
    return cs, summary
