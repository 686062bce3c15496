"""Per-interface L3 and port property operations."""
import logging
from typing import TYPE_CHECKING, Optional

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..utils.naming import is_valid_ipv4_cidr, normalize_interface_name, validate_mtu
from .base import entry, run_op

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)

VALID_SPEEDS = ("1G", "10G", "25G", "40G", "50G", "100G", "200G", "400G")
PROPERTIES = ("mtu", "speed", "admin_status", "description")


# --- Entry generators ---

def interface_base_config(table: str, interface: str, vrf: str = "") -> list[ConfigEntry]:
    """The base row that enables L3 on an interface, optionally VRF-bound."""
    return [entry(table, interface, {"vrf_name": vrf} if vrf else {})]


def interface_ip_config(table: str, interface: str, ip_address: str, vrf: str = "") -> list[ConfigEntry]:
    return interface_base_config(table, interface, vrf) + [
        entry(table, keys.interface_ip_key(interface, ip_address))
    ]


# --- Operations ---

def set_ip(node: "Node", interface: str, ip_address: str) -> ChangeSet:
    interface = normalize_interface_name(interface)
    intf = node.interface(interface)

    def precheck(pc):
        pc.require_interface_exists(interface).require_interface_not_lag_member(interface)
        pc.check(is_valid_ipv4_cidr(ip_address), "IP address must be valid", f"invalid IP address: {ip_address}")

    cs = run_op(
        node, "set-ip", interface, ChangeType.ADD, precheck,
        lambda: interface_ip_config(intf.ip_table, interface, ip_address),
        scope="interface",
    )
    logger.info(f"{node.name}: configured IP {ip_address} on interface {interface}")
    return cs


def remove_ip(node: "Node", interface: str, ip_address: str) -> ChangeSet:
    """Delete one address; the base row goes too once no address remains."""
    interface = normalize_interface_name(interface)
    intf = node.interface(interface)

    def build():
        entries = [entry(intf.ip_table, keys.interface_ip_key(interface, ip_address))]
        if not [ip for ip in intf.ip_addresses if ip != ip_address]:
            entries.append(entry(intf.ip_table, interface))
        return entries

    cs = run_op(
        node, "remove-ip", interface, ChangeType.DELETE,
        lambda pc: pc.check(
            is_valid_ipv4_cidr(ip_address), "IP address must be valid", f"invalid IP address: {ip_address}"
        ),
        build,
        scope="interface",
    )
    logger.info(f"{node.name}: removed IP {ip_address} from interface {interface}")
    return cs


def set_vrf(node: "Node", interface: str, vrf: str) -> ChangeSet:
    """Bind to ``vrf``; "" or ``default`` returns the interface to the global table."""
    interface = normalize_interface_name(interface)
    intf = node.interface(interface)

    def precheck(pc):
        pc.require_interface_exists(interface).require_interface_not_lag_member(interface)
        if vrf and vrf != tables.DEFAULT_VRF:
            pc.require_vrf_exists(vrf)

    cs = run_op(
        node, "set-vrf", interface, ChangeType.MODIFY, precheck,
        lambda: [entry(intf.ip_table, interface, {"vrf_name": vrf})],
        scope="interface",
    )
    logger.info(f"{node.name}: bound interface {interface} to VRF {vrf or tables.DEFAULT_VRF}")
    return cs


def _property_error(prop: str, value: str) -> Optional[str]:
    if prop == "mtu":
        if not value.isdigit():
            return f"invalid MTU value: {value}"
        return validate_mtu(int(value))
    if prop == "speed":
        if value not in VALID_SPEEDS:
            return f"invalid speed: {value} (valid: {', '.join(VALID_SPEEDS)})"
        return None
    if prop == "admin_status":
        if value not in ("up", "down"):
            return "admin-status must be 'up' or 'down'"
        return None
    if prop == "description":
        return None
    return f"unknown property: {prop} (valid: mtu, speed, admin-status, description)"


def set_property(node: "Node", interface: str, prop: str, value: str) -> ChangeSet:
    """Modify one attribute of a port or PortChannel. LAG members are configured
    through their parent."""
    interface = normalize_interface_name(interface)
    prop = prop.replace("-", "_")
    intf = node.interface(interface)
    table = tables.PORTCHANNEL if intf.is_portchannel else tables.PORT

    def precheck(pc):
        pc.require_interface_exists(interface)
        pc.check(
            not intf.is_portchannel_member,
            "interface must not be a LAG member",
            "cannot configure PortChannel member directly - configure the parent PortChannel",
        )
        err = _property_error(prop, value)
        pc.check(err is None, f"{prop} must be valid", err or "")

    cs = run_op(
        node, "set-property", interface, ChangeType.MODIFY, precheck,
        lambda: [entry(table, interface, {prop: value})],
        scope="interface",
    )
    logger.info(f"{node.name}: set {prop}={value} on interface {interface}")
    return cs


def set_admin_status(node: "Node", interface: str, status: str) -> ChangeSet:
    return set_property(node, interface, "admin_status", status)


def set_description(node: "Node", interface: str, description: str) -> ChangeSet:
    return set_property(node, interface, "description", description)


def set_mtu(node: "Node", interface: str, mtu: int) -> ChangeSet:
    return set_property(node, interface, "mtu", str(mtu))


def set_speed(node: "Node", interface: str, speed: str) -> ChangeSet:
    return set_property(node, interface, "speed", speed)
