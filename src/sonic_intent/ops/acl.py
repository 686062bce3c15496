"""ACL tables and rules, and their binding to interfaces.

ACL_TABLE.ports holds interface names despite the field name. Service ACLs
are shared by every interface bound to the same service, so binding and
unbinding only ever rewrite that list.
"""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..errors import SpecNotFoundError
from ..spec.schema import FilterRule, FilterSpec
from ..utils.naming import add_to_csv, normalize_interface_name, remove_from_csv
from .base import entry, run_op

if TYPE_CHECKING:
    from ..node.node import Node
    from ..spec.resolver import SpecResolver

logger = logging.getLogger(__name__)

PROTO_MAP = {
    "tcp": 6,
    "udp": 17,
    "icmp": 1,
    "gre": 47,
    "ospf": 89,
    "vrrp": 112,
}

COS_TO_TC = {
    "be": "0",
    "cs1": "1",
    "cs2": "2",
    "cs3": "3",
    "cs4": "4",
    "ef": "5",
    "cs6": "6",
    "cs7": "7",
}

MAX_PRIORITY = 10000


def filter_type_to_acl_type(filter_type: str) -> str:
    return "L3V6" if filter_type == "ipv6" else "L3"


def protocol_number(protocol: str) -> str:
    """Well-known protocol names map to numbers; anything else passes through."""
    proto = PROTO_MAP.get(protocol.lower())
    return str(proto) if proto is not None else protocol


# --- Entry generators ---

def acl_table_config(name: str, acl_type: str, stage: str, ports: str = "", description: str = "") -> list[ConfigEntry]:
    fields = {"type": acl_type, "stage": stage}
    if ports:
        fields["ports"] = ports
    if description:
        fields["policy_desc"] = description
    return [entry(tables.ACL_TABLE, name, fields)]


def acl_rule_from_filter(acl_name: str, rule: FilterRule, src_ip: str, dst_ip: str, suffix: str = "") -> ConfigEntry:
    fields = {
        "PRIORITY": str(MAX_PRIORITY - rule.seq),
        "PACKET_ACTION": "FORWARD" if rule.action == "permit" else "DROP",
    }
    if src_ip:
        fields["SRC_IP"] = src_ip
    if dst_ip:
        fields["DST_IP"] = dst_ip
    if rule.protocol:
        fields["IP_PROTOCOL"] = protocol_number(rule.protocol)
    if rule.src_port:
        fields["L4_SRC_PORT"] = rule.src_port
    if rule.dst_port:
        fields["L4_DST_PORT"] = rule.dst_port
    if rule.dscp:
        fields["DSCP"] = rule.dscp
    if rule.cos:
        tc = COS_TO_TC.get(rule.cos.lower())
        if tc is not None:
            fields["TC"] = tc
    return entry(tables.ACL_RULE, keys.acl_rule_key(acl_name, f"RULE_{rule.seq}{suffix}"), fields)


def expand_prefix_list(resolver: "SpecResolver", prefix_list: str, direct_ip: str) -> list[str]:
    """A direct IP wins; otherwise the prefixes of the named list, if any."""
    if direct_ip:
        return [direct_ip]
    if not prefix_list:
        return []
    try:
        return list(resolver.get_prefix_list(prefix_list))
    except SpecNotFoundError:
        return []


def acl_rules_from_filter(resolver: "SpecResolver", acl_name: str, filter_spec: FilterSpec) -> list[ConfigEntry]:
    """One rule per filter rule, or the source x destination product when
    prefix lists expand to more than one address. Expanded rules carry an
    ``_{n}`` suffix."""
    entries = []
    for rule in filter_spec.rules:
        srcs = expand_prefix_list(resolver, rule.src_prefix_list, rule.src_ip) or [""]
        dsts = expand_prefix_list(resolver, rule.dst_prefix_list, rule.dst_ip) or [""]
        expanded = len(srcs) > 1 or len(dsts) > 1
        idx = 0
        for src in srcs:
            for dst in dsts:
                suffix = f"_{idx}" if expanded else ""
                entries.append(acl_rule_from_filter(acl_name, rule, src, dst, suffix))
                idx += 1
    return entries


def delete_acl_table_config(node: "Node", name: str) -> list[ConfigEntry]:
    """Rules first, then the table."""
    rules = sorted(node.snapshot.keys_with_prefix(tables.ACL_RULE, keys.acl_rule_prefix(name)))
    return [entry(tables.ACL_RULE, k) for k in rules] + [entry(tables.ACL_TABLE, name)]


def acl_ports_config(name: str, ports: str) -> list[ConfigEntry]:
    return [entry(tables.ACL_TABLE, name, {"ports": ports})]


# --- Operations ---

def create_acl_table(
    node: "Node", name: str, acl_type: str = "L3", stage: str = "ingress", description: str = "", ports: str = ""
) -> ChangeSet:
    cs = run_op(
        node, "create-acl-table", name, ChangeType.ADD,
        lambda pc: pc.require_acl_table_not_exists(name),
        lambda: acl_table_config(name, acl_type or "L3", stage or "ingress", ports, description),
    )
    logger.info(f"{node.name}: created ACL table {name}")
    return cs


@dataclass
class ACLRuleConfig:
    priority: int
    action: str = "deny"
    src_ip: str = ""
    dst_ip: str = ""
    protocol: str = ""
    src_port: str = ""
    dst_port: str = ""

    def to_fields(self) -> dict[str, str]:
        fields = {
            "PRIORITY": str(self.priority),
            "PACKET_ACTION": "FORWARD" if self.action in ("permit", "FORWARD") else "DROP",
        }
        if self.src_ip:
            fields["SRC_IP"] = self.src_ip
        if self.dst_ip:
            fields["DST_IP"] = self.dst_ip
        if self.protocol:
            fields["IP_PROTOCOL"] = protocol_number(self.protocol)
        if self.src_port:
            fields["L4_SRC_PORT"] = self.src_port
        if self.dst_port:
            fields["L4_DST_PORT"] = self.dst_port
        return fields


def add_acl_rule(node: "Node", table: str, rule_name: str, rule: ACLRuleConfig) -> ChangeSet:
    cs = run_op(
        node, "add-acl-rule", table, ChangeType.ADD,
        lambda pc: pc.require_acl_table_exists(table),
        lambda: [entry(tables.ACL_RULE, keys.acl_rule_key(table, rule_name), rule.to_fields())],
    )
    logger.info(f"{node.name}: added rule {rule_name} to ACL table {table}")
    return cs


def delete_acl_rule(node: "Node", table: str, rule_name: str) -> ChangeSet:
    rule_key = keys.acl_rule_key(table, rule_name)

    def precheck(pc):
        pc.require_acl_table_exists(table)
        pc.check(
            node.snapshot.has(tables.ACL_RULE, rule_key),
            "ACL rule must exist", f"rule {rule_name} not found in ACL table {table}",
        )

    cs = run_op(
        node, "delete-acl-rule", table, ChangeType.DELETE, precheck,
        lambda: [entry(tables.ACL_RULE, rule_key)],
    )
    logger.info(f"{node.name}: deleted rule {rule_name} from ACL table {table}")
    return cs


def delete_acl_table(node: "Node", name: str) -> ChangeSet:
    cs = run_op(
        node, "delete-acl-table", name, ChangeType.DELETE,
        lambda pc: pc.require_acl_table_exists(name),
        lambda: delete_acl_table_config(node, name),
    )
    logger.info(f"{node.name}: deleted ACL table {name}")
    return cs


def bind_acl(node: "Node", acl_name: str, interface: str, direction: str) -> ChangeSet:
    """Add ``interface`` to the ACL's ports and set its stage."""
    interface = normalize_interface_name(interface)

    def precheck(pc):
        pc.require_interface_exists(interface).require_acl_table_exists(acl_name)
        pc.check(
            direction in ("ingress", "egress"),
            "direction must be ingress or egress", f"got {direction!r}",
        )

    def build():
        if node.dependencies().is_first_acl_user(acl_name):
            ports = interface
        else:
            ports = add_to_csv(node.snapshot.field(tables.ACL_TABLE, acl_name, "ports"), interface)
        return [entry(tables.ACL_TABLE, acl_name, {"ports": ports, "stage": direction})]

    cs = run_op(node, "bind-acl", interface, ChangeType.MODIFY, precheck, build, scope="interface")
    logger.info(f"{node.name}: bound ACL {acl_name} to interface {interface} ({direction})")
    return cs


def unbind_acl(node: "Node", acl_name: str, interface: str) -> ChangeSet:
    """Narrow the ACL's ports. The table is never deleted here, even when
    the list becomes empty; ``cleanup`` reclaims unbound tables."""
    interface = normalize_interface_name(interface)
    cs = run_op(
        node, "unbind-acl", acl_name, ChangeType.MODIFY,
        lambda pc: pc.require_acl_table_exists(acl_name),
        lambda: acl_ports_config(
            acl_name, remove_from_csv(node.snapshot.field(tables.ACL_TABLE, acl_name, "ports"), interface)
        ),
    )
    logger.info(f"{node.name}: unbound ACL {acl_name} from interface {interface}")
    return cs
