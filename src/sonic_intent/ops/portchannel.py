"""PortChannel (LAG) operations."""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..utils.naming import normalize_interface_name
from .base import entry, run_op

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)


@dataclass
class PortChannelConfig:
    members: list[str] = field(default_factory=list)
    mtu: int = 0
    min_links: int = 0
    fallback: bool = False
    fast_rate: bool = False

    def to_fields(self) -> dict[str, str]:
        fields = {"admin_status": "up"}
        if self.mtu > 0:
            fields["mtu"] = str(self.mtu)
        if self.min_links > 0:
            fields["min_links"] = str(self.min_links)
        if self.fallback:
            fields["fallback"] = "true"
        if self.fast_rate:
            fields["fast_rate"] = "true"
        return fields


# --- Entry generators ---

def portchannel_config(name: str, config: PortChannelConfig) -> list[ConfigEntry]:
    entries = [entry(tables.PORTCHANNEL, name, config.to_fields())]
    entries += portchannel_member_config(name, config.members)
    return entries


def portchannel_member_config(name: str, members: Iterable[str]) -> list[ConfigEntry]:
    return [entry(tables.PORTCHANNEL_MEMBER, keys.portchannel_member_key(name, m)) for m in members]


def delete_portchannel_config(node: "Node", name: str) -> list[ConfigEntry]:
    """Members first, then the PortChannel."""
    prefix = name + keys.SEPARATOR
    members = sorted(node.snapshot.keys_with_prefix(tables.PORTCHANNEL_MEMBER, prefix))
    return [entry(tables.PORTCHANNEL_MEMBER, k) for k in members] + [entry(tables.PORTCHANNEL, name)]


# --- Operations ---

def create_portchannel(node: "Node", name: str, config: PortChannelConfig) -> ChangeSet:
    name = normalize_interface_name(name)
    config.members = [normalize_interface_name(m) for m in config.members]

    def precheck(pc):
        pc.require_portchannel_not_exists(name)
        for member in config.members:
            pc.require_interface_exists(member).require_interface_not_lag_member(member)

    cs = run_op(
        node, "create-portchannel", name, ChangeType.ADD, precheck,
        lambda: portchannel_config(name, config),
    )
    logger.info(f"{node.name}: created PortChannel {name} with members {config.members}")
    return cs


def delete_portchannel(node: "Node", name: str) -> ChangeSet:
    name = normalize_interface_name(name)
    cs = run_op(
        node, "delete-portchannel", name, ChangeType.DELETE,
        lambda pc: pc.require_portchannel_exists(name),
        lambda: delete_portchannel_config(node, name),
    )
    logger.info(f"{node.name}: deleted PortChannel {name}")
    return cs


def add_portchannel_member(node: "Node", name: str, member: str) -> ChangeSet:
    name = normalize_interface_name(name)
    member = normalize_interface_name(member)
    cs = run_op(
        node, "add-portchannel-member", name, ChangeType.ADD,
        lambda pc: pc.require_portchannel_exists(name)
        .require_interface_exists(member)
        .require_interface_not_lag_member(member),
        lambda: portchannel_member_config(name, [member]),
    )
    logger.info(f"{node.name}: added {member} to PortChannel {name}")
    return cs


def remove_portchannel_member(node: "Node", name: str, member: str) -> ChangeSet:
    name = normalize_interface_name(name)
    member = normalize_interface_name(member)
    cs = run_op(
        node, "remove-portchannel-member", name, ChangeType.DELETE,
        lambda pc: pc.require_portchannel_exists(name).require_interface_is_lag_member(member, name),
        lambda: [entry(tables.PORTCHANNEL_MEMBER, keys.portchannel_member_key(name, member))],
    )
    logger.info(f"{node.name}: removed {member} from PortChannel {name}")
    return cs


# --- Queries ---

@dataclass
class PortChannelInfo:
    name: str
    admin_status: str = ""
    members: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"name": self.name, "admin_status": self.admin_status, "members": self.members}


def get_portchannel(node: "Node", name: str) -> PortChannelInfo:
    name = normalize_interface_name(name)
    fields = node.snapshot.get(tables.PORTCHANNEL, name)
    if fields is None:
        raise KeyError(f"PortChannel {name} not found")
    return PortChannelInfo(
        name=name,
        admin_status=fields.get("admin_status", ""),
        members=sorted(node.interface(name).portchannel_members),
    )


def list_portchannels(node: "Node") -> list[str]:
    return sorted(node.snapshot.keys(tables.PORTCHANNEL))
