"""Name and address derivation helpers.

Interface names come in two spellings: the long form the device stores
(``Ethernet0``, ``PortChannel100``) and the short form operators type and
derived resource names embed (``Eth0``, ``Po100``).
"""
import ipaddress
import re
from typing import Optional

from ..errors import TranslationError

_SANITIZE_RE = re.compile(r"[^a-zA-Z0-9_-]")
_INTERFACE_RE = re.compile(r"^([a-zA-Z]+)(\d+(?:/\d+)*)$")

LONG_TO_SHORT = {
    "Ethernet": "Eth",
    "PortChannel": "Po",
    "Loopback": "Lo",
    "Vlan": "Vl",
    "Management": "Mgmt",
}

SHORT_TO_LONG = {
    "eth": "Ethernet",
    "po": "PortChannel",
    "lo": "Loopback",
    "vl": "Vlan",
    "vlan": "Vlan",
    "mgmt": "Management",
}

# longest first so "vlan" wins over "vl"
_SHORT_PREFIXES = sorted(SHORT_TO_LONG, key=len, reverse=True)


# --- Interface names ---

def sanitize_for_name(name: str) -> str:
    """Make ``name`` safe to embed in a resource name (Ethernet0.100 -> Ethernet0_100)."""
    name = name.replace(".", "_").replace("/", "_")
    return _SANITIZE_RE.sub("", name)


def parse_interface_name(name: str) -> tuple[str, str, str]:
    """Split an interface name into (type, number, subinterface)."""
    subintf = ""
    if "." in name:
        name, subintf = name.split(".", 1)
    match = _INTERFACE_RE.match(name)
    if match:
        return match.group(1), match.group(2), subintf
    return name, "", subintf


def shorten_interface_name(name: str) -> str:
    """Ethernet0 -> Eth0, PortChannel100 -> Po100, Vlan100 -> Vl100."""
    if_type, num, subintf = parse_interface_name(name)
    short = LONG_TO_SHORT.get(if_type)
    if short is None:
        return sanitize_for_name(name)
    result = short + num
    if subintf:
        result += "." + subintf
    return result


def normalize_interface_name(name: str) -> str:
    """Expand operator spellings to the stored form (eth0 -> Ethernet0, po1 -> PortChannel1).

    Names that are already long, or that don't start with a known
    abbreviation followed by a digit, are returned unchanged.
    """
    name = name.strip()
    lower = name.lower()
    for abbr in _SHORT_PREFIXES:
        if lower.startswith(abbr) and len(name) > len(abbr) and name[len(abbr)].isdigit():
            return SHORT_TO_LONG[abbr] + name[len(abbr):]
    return name


def sanitize_route_map_name(name: str) -> str:
    """Replace anything but letters, digits and hyphens with a hyphen."""
    return re.sub(r"[^a-zA-Z0-9-]", "-", name)


# --- Derived resource names ---

def derive_vrf_name(vrf_type: str, service_name: str, interface_name: str) -> str:
    """Per-interface VRFs are named ``{service}-{ShortIntf}``; shared VRFs by service."""
    if vrf_type == "shared":
        return service_name
    return f"{service_name}-{sanitize_for_name(shorten_interface_name(interface_name))}"


def derive_acl_name(service_name: str, direction: str) -> str:
    """ACLs are per service, shared by every interface bound to it."""
    return f"{service_name}-{direction}"


# --- Addresses ---

def split_ip_mask(cidr: str) -> tuple[str, int]:
    """Split ``10.1.1.1/30`` into (``10.1.1.1``, 30). A missing or bad mask gives 0."""
    parts = cidr.split("/")
    if len(parts) != 2:
        return cidr, 0
    try:
        return parts[0], int(parts[1])
    except ValueError:
        return parts[0], 0


def is_valid_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def is_valid_ipv4_cidr(value: str) -> bool:
    """True for host-in-network notation such as ``10.1.1.1/30``."""
    if "/" not in value:
        return False
    try:
        ipaddress.IPv4Interface(value)
    except ValueError:
        return False
    return True


def compute_neighbor_ip(local_ip: str, mask_len: int) -> Optional[str]:
    """Peer address on a point-to-point subnet, or None.

    /31 peers are the other address of the pair. /30 peers are the other
    usable host; network and broadcast addresses have no peer.
    """
    try:
        addr = ipaddress.IPv4Address(local_ip)
    except ValueError:
        return None
    value = int(addr)
    if mask_len == 31:
        return str(ipaddress.IPv4Address(value ^ 1))
    if mask_len == 30:
        host = value & 0x3
        if host == 1:
            return str(ipaddress.IPv4Address(value + 1))
        if host == 2:
            return str(ipaddress.IPv4Address(value - 1))
    return None


def derive_neighbor_ip(local_ip_with_mask: str) -> str:
    """Derive the BGP peer from the local interface address.

    Raises:
        TranslationError: no mask, or a subnet that is not /30 or /31
    """
    ip, mask_len = split_ip_mask(local_ip_with_mask)
    if mask_len == 0:
        raise TranslationError(
            "IP address must include CIDR mask (e.g., 10.1.1.1/30)",
            reference=local_ip_with_mask,
        )
    neighbor = compute_neighbor_ip(ip, mask_len)
    if neighbor is None:
        raise TranslationError(
            f"cannot derive neighbor IP: /{mask_len} is not a point-to-point subnet (use /30 or /31)",
            reference=local_ip_with_mask,
        )
    return neighbor


def validate_vlan_id(vlan_id: int) -> Optional[str]:
    """Return an error message for out-of-range VLAN IDs, else None."""
    if vlan_id < 1 or vlan_id > 4094:
        return f"VLAN ID must be between 1 and 4094, got {vlan_id}"
    return None


def validate_vni(vni: int) -> Optional[str]:
    if vni < 1 or vni > 16777215:
        return f"VNI must be between 1 and 16777215, got {vni}"
    return None


def validate_mtu(mtu: int) -> Optional[str]:
    if mtu < 68 or mtu > 9216:
        return f"MTU must be between 68 and 9216, got {mtu}"
    return None


# --- Comma-separated lists ---

def add_to_csv(csv: str, item: str) -> str:
    """Append ``item`` to a comma list unless already present."""
    items = [i for i in csv.split(",") if i] if csv else []
    if item not in items:
        items.append(item)
    return ",".join(items)


def remove_from_csv(csv: str, item: str) -> str:
    items = [i for i in csv.split(",") if i] if csv else []
    return ",".join(i for i in items if i != item)


def split_csv(csv: str) -> list[str]:
    return [i.strip() for i in csv.split(",") if i.strip()] if csv else []
