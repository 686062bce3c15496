"""Translate a service definition into CONFIG_DB entries for one interface.

This is the single translation path shared by online apply and offline
composite generation. It is pure: it reads the resolver but never the
device, performs no existence filtering, and either returns the complete
ordered entry list or raises before returning anything.

Order follows table dependencies: VLAN before members, VRF before the
interfaces bound to it, the binding record last.
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..config_db import keys, tables
from ..config_db.binding import ServiceBinding
from ..config_db.entry import ConfigEntry
from ..errors import SpecNotFoundError, TranslationError
from ..spec.schema import IPVPNSpec, MACVPNSpec, ServiceSpec, ServiceType, VRFType
from ..utils.naming import derive_acl_name, derive_neighbor_ip, derive_vrf_name, split_ip_mask
from .acl import acl_rule_from_filter, acl_table_config, filter_type_to_acl_type
from .base import entry
from .bgp import bgp_neighbor_config
from .evpn import arp_suppression_config
from .interface import interface_base_config
from .qos import bind_qos_config, bind_qos_profile_config, service_qos_policy
from .vlan import svi_config, vlan_config, vlan_member_config
from .vrf import ipvpn_config, vrf_config

if TYPE_CHECKING:
    from ..node.node import Node
    from ..spec.resolver import SpecResolver

logger = logging.getLogger(__name__)

PEER_AS_REQUEST = "request"


@dataclass
class ServiceEntryParams:
    """Inputs for one service binding.

    ``vlan`` is only used by local types (irb, bridged); overlay types take
    the VLAN from their MAC-VPN. ``params`` carries topology parameters:
    peer_as, route_reflector_client and next_hop_self.
    """
    service_name: str
    ip_address: str = ""
    vlan: int = 0
    params: dict[str, str] = field(default_factory=dict)
    peer_as: int = 0
    underlay_asn: int = 0
    router_id: str = ""
    platform_name: str = ""


def binding_entry(interface: str, binding: ServiceBinding) -> ConfigEntry:
    return entry(tables.SERVICE_BINDING, interface, binding.to_fields())


def resolve_vpns(resolver: "SpecResolver", service: ServiceSpec) -> tuple[Optional[IPVPNSpec], Optional[MACVPNSpec]]:
    ipvpn = resolver.get_ipvpn(service.ipvpn) if service.ipvpn else None
    macvpn = resolver.get_macvpn(service.macvpn) if service.macvpn else None
    return ipvpn, macvpn


def service_vrf_name(service_name: str, service: ServiceSpec, interface: str, ipvpn: Optional[IPVPNSpec]) -> str:
    """Per-interface VRFs are derived from service and interface; shared ones come from the IP-VPN."""
    if service.can_route and service.vrf_type == VRFType.INTERFACE:
        return derive_vrf_name(VRFType.INTERFACE.value, service_name, interface)
    if service.vrf_type == VRFType.SHARED and ipvpn is not None:
        return ipvpn.vrf
    return ""


def acl_binding_config(
    resolver: "SpecResolver", interface: str, service_name: str, filter_name: str, stage: str
) -> list[ConfigEntry]:
    """ACL table bound to ``interface`` plus one rule per filter rule, unexpanded."""
    filter_spec = resolver.get_filter(filter_name)
    acl_name = derive_acl_name(service_name, "in" if stage == "ingress" else "out")
    description = f"{stage.capitalize()} filter for {service_name}"
    entries = acl_table_config(acl_name, filter_type_to_acl_type(filter_spec.type), stage, interface, description)
    entries += [acl_rule_from_filter(acl_name, rule, rule.src_ip, rule.dst_ip) for rule in filter_spec.rules]
    return entries


def _acl_supported(resolver: "SpecResolver", platform_name: str) -> bool:
    if not platform_name:
        return True
    try:
        return resolver.get_platform(platform_name).supports_feature("acl")
    except SpecNotFoundError:
        return True


def _peer_as(service: ServiceSpec, p: ServiceEntryParams) -> int:
    routing = service.routing
    peer_as = 0
    if routing.peer_as == PEER_AS_REQUEST:
        value = p.params.get("peer_as", "")
        if value.isdigit():
            peer_as = int(value)
        if peer_as == 0:
            peer_as = p.peer_as
        if peer_as == 0:
            raise TranslationError("service requires peer_as parameter")
    elif routing.peer_as.isdigit():
        peer_as = int(routing.peer_as)
    if peer_as == 0:
        raise TranslationError("could not determine BGP peer AS for service routing")
    return peer_as


def bgp_peering_config(service: ServiceSpec, p: ServiceEntryParams, vrf: str) -> list[ConfigEntry]:
    """eBGP session to the far end of the interface's /30 or /31."""
    if not p.ip_address:
        raise TranslationError("BGP routing requires an IP address")
    try:
        peer_ip = derive_neighbor_ip(p.ip_address)
    except TranslationError as e:
        raise TranslationError(f"could not derive BGP peer IP: {e}", reference=p.ip_address) from e
    peer_as = _peer_as(service, p)
    if p.underlay_asn == 0:
        raise TranslationError("device has no AS number configured (underlay_asn required)")

    local_ip, _ = split_ip_mask(p.ip_address)
    return bgp_neighbor_config(
        vrf, peer_ip, peer_as, local_ip,
        route_reflector_client=p.params.get("route_reflector_client") == "true",
        next_hop_self=p.params.get("next_hop_self") == "true",
    )


def generate_service_entries(node: "Node", interface: str, p: ServiceEntryParams) -> list[ConfigEntry]:
    """Ordered CONFIG_DB entries for binding ``p.service_name`` to ``interface``.

    Raises:
        SpecNotFoundError: the service or anything it references is undefined
        TranslationError: BGP peering cannot be derived
    """
    resolver = node.resolver
    service = resolver.get_service(p.service_name)
    ipvpn, macvpn = resolve_vpns(resolver, service)
    intf = node.interface(interface)

    vlan_id = macvpn.vlan_id if macvpn is not None else p.vlan
    entries: list[ConfigEntry] = []

    # --- L2 ---
    if service.can_bridge and vlan_id > 0:
        l2vni = macvpn.vni if macvpn is not None else 0
        entries += vlan_config(vlan_id, l2vni=l2vni)
        if macvpn is not None and macvpn.arp_suppression:
            entries += arp_suppression_config(keys.vlan_name(vlan_id))

    # --- VRF ---
    vrf = service_vrf_name(p.service_name, service, interface, ipvpn)
    if service.can_route and service.vrf_type == VRFType.INTERFACE:
        if ipvpn is not None:
            entries += ipvpn_config(vrf, ipvpn, p.underlay_asn, p.router_id)
        else:
            entries += vrf_config(vrf)
    if service.can_route and service.vrf_type == VRFType.SHARED and ipvpn is not None and ipvpn.vrf:
        entries += ipvpn_config(ipvpn.vrf, ipvpn, p.underlay_asn, p.router_id)

    # --- Interface shape ---
    stype = service.service_type
    if stype in (ServiceType.EVPN_BRIDGED, ServiceType.BRIDGED):
        if vlan_id > 0:
            entries += vlan_member_config(vlan_id, interface, tagged=False)
    elif stype in (ServiceType.EVPN_ROUTED, ServiceType.ROUTED):
        entries += interface_base_config(intf.ip_table, interface, vrf)
        if p.ip_address:
            entries.append(entry(intf.ip_table, keys.interface_ip_key(interface, p.ip_address)))
    elif stype == ServiceType.EVPN_IRB:
        if vlan_id > 0:
            entries += vlan_member_config(vlan_id, interface, tagged=True)
            entries += svi_config(
                vlan_id, vrf,
                macvpn.anycast_ip if macvpn else "",
                macvpn.anycast_mac if macvpn else "",
            )
    elif stype == ServiceType.IRB:
        if vlan_id > 0:
            entries += vlan_member_config(vlan_id, interface, tagged=True)
            entries += svi_config(vlan_id, vrf, p.ip_address)

    # --- ACL ---
    if _acl_supported(resolver, p.platform_name):
        if service.ingress_filter:
            entries += acl_binding_config(resolver, interface, p.service_name, service.ingress_filter, "ingress")
        if service.egress_filter:
            entries += acl_binding_config(resolver, interface, p.service_name, service.egress_filter, "egress")
    else:
        logger.debug(f"Platform {p.platform_name} has no ACL support, skipping filters for {interface}")

    # --- QoS ---
    policy_name, policy = service_qos_policy(resolver, service)
    if policy is not None:
        entries += bind_qos_config(interface, policy_name, policy)
    elif service.qos_profile:
        try:
            profile = resolver.get_qos_profile(service.qos_profile)
        except SpecNotFoundError:
            profile = None
        if profile is not None:
            entries += bind_qos_profile_config(interface, profile)

    # --- BGP ---
    if service.uses_bgp:
        try:
            entries += bgp_peering_config(service, p, vrf)
        except TranslationError as e:
            raise TranslationError(f"interface {interface}: BGP routing: {e}", reference=e.reference) from e

    entries.append(binding_entry(interface, ServiceBinding(
        service_name=p.service_name,
        service_type=service.service_type.value,
        vrf_type=service.vrf_type.value if service.vrf_type else "",
        ip_address=p.ip_address,
        vrf_name=vrf,
        ipvpn=service.ipvpn,
        macvpn=service.macvpn,
    )))
    return entries
