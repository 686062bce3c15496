"""Apply, remove and refresh services on interfaces.

``apply_service`` runs the pure translation in ``service_gen`` and then
filters its output against the device: shared resources that already exist
are not re-created, and ACLs already in use get the interface merged into
their port list instead. ``remove_service`` works from the SERVICE_BINDING
record rather than the current service definition, so it undoes exactly
what was applied even if the definition has changed since.

Shared resources are only deleted by their last user:

    resource            shared by                   deleted when
    ACL table/rules     interfaces of a service     last ACL port removed
    route policies      interfaces of a service     last service user
    shared VRF          services of an IP-VPN       last IP-VPN user
    VLAN, SVI, VNI map  members of the VLAN         last VLAN member
    SAG_GLOBAL          anycast MAC-VPN bindings    last anycast MAC user
    QoS maps/schedulers interfaces of a policy      policy unreferenced
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from ..config_db import keys, tables
from ..config_db.changeset import ChangeSet
from ..config_db.entry import ConfigEntry
from ..errors import SpecNotFoundError, TranslationError, ValidationError
from ..spec.schema import BRIDGING_TYPES, IPVPNSpec, MACVPNSpec, ServiceSpec, ServiceType, VRFType
from ..utils.logging_config import timed_section_sync
from ..utils.naming import (
    add_to_csv,
    derive_acl_name,
    derive_neighbor_ip,
    is_valid_ipv4_cidr,
    normalize_interface_name,
)
from .acl import acl_ports_config, acl_rules_from_filter, delete_acl_table_config
from .bgp import delete_bgp_neighbor_config, redistribution_config, revert_redistribution_config
from .evpn import unbind_macvpn_config
from .qos import delete_qos_device_config, qos_device_config, service_qos_policy, unbind_qos_config
from .route_policy import delete_route_policies, service_route_policies
from .service_gen import ServiceEntryParams, generate_service_entries, resolve_vpns
from .vlan import SAG_KEY, delete_sag_global_config, delete_vlan_config, destroy_svi_config
from .vrf import destroy_vrf_config

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)

ROUTED_TYPES = (ServiceType.ROUTED, ServiceType.EVPN_ROUTED)
IRB_TYPES = (ServiceType.EVPN_IRB, ServiceType.IRB)


@dataclass
class ApplyServiceOptions:
    ip_address: str = ""
    vlan: int = 0
    peer_as: int = 0
    params: dict[str, str] = field(default_factory=dict)


def _type_errors(
    name: str,
    service: ServiceSpec,
    ipvpn: Optional[IPVPNSpec],
    macvpn: Optional[MACVPNSpec],
    opts: ApplyServiceOptions,
) -> list[str]:
    """What the service type needs that the definition or options lack."""
    stype = service.service_type
    errors = []
    if stype in (ServiceType.EVPN_IRB, ServiceType.EVPN_BRIDGED) and macvpn is None:
        errors.append(f"service '{name}' ({stype.value}) requires a macvpn reference")
    if stype in (ServiceType.EVPN_IRB, ServiceType.EVPN_ROUTED) and ipvpn is None:
        errors.append(f"service '{name}' ({stype.value}) requires an ipvpn reference")
    if stype in ROUTED_TYPES:
        if not opts.ip_address:
            errors.append(f"service '{name}' ({stype.value}) requires an IP address")
        elif not is_valid_ipv4_cidr(opts.ip_address):
            errors.append(
                f"invalid IP address: {opts.ip_address} (expected CIDR notation like 10.1.1.1/30)"
            )
    if stype in (ServiceType.IRB, ServiceType.BRIDGED) and opts.vlan == 0 and macvpn is None:
        errors.append(f"service '{name}' ({stype.value}) requires a VLAN")
    return errors


def _check_references(node: "Node", interface: str, name: str, service: ServiceSpec) -> None:
    resolver = node.resolver
    pc = node.precondition("apply-service", interface)
    if service.is_overlay:
        pc.require_vtep_configured().require_bgp_configured()
    if service.ingress_filter:
        pc.require_filter_exists(service.ingress_filter)
    if service.egress_filter:
        pc.require_filter_exists(service.egress_filter)
    if service.qos_policy:
        try:
            resolver.get_qos_policy(service.qos_policy)
        except SpecNotFoundError:
            pc.check(False, "QoS policy must exist",
                     f"service '{name}' references QoS policy '{service.qos_policy}' which was not found")
    elif service.qos_profile:
        try:
            resolver.get_qos_profile(service.qos_profile)
        except SpecNotFoundError:
            pc.check(False, "QoS profile must exist",
                     f"service '{name}' references QoS profile '{service.qos_profile}' which was not found")
    pc.raise_if_failed()


def _keep_entry(node: "Node", e: ConfigEntry, service: ServiceSpec, ipvpn: Optional[IPVPNSpec], vlan_id: int) -> bool:
    """False for shared entries the device already has."""
    vlan_exists = vlan_id > 0 and node.vlan_exists(vlan_id)
    shared_vrf_exists = (
        service.vrf_type == VRFType.SHARED and ipvpn is not None and node.vrf_exists(ipvpn.vrf)
    )
    if e.table in (tables.VLAN, tables.SUPPRESS_VLAN_NEIGH) and vlan_exists:
        return False
    if e.table == tables.VXLAN_TUNNEL_MAP:
        if e.fields.get("vlan") and vlan_exists:
            return False
        if e.fields.get("vrf") and shared_vrf_exists:
            return False
    if e.table == tables.VRF and service.vrf_type == VRFType.SHARED and node.vrf_exists(e.key):
        return False
    if e.table in (tables.BGP_GLOBALS_AF, tables.BGP_EVPN_VNI) and shared_vrf_exists:
        return False
    return True


def apply_service(node: "Node", interface: str, service_name: str, opts: Optional[ApplyServiceOptions] = None) -> ChangeSet:
    """Bind a service to an interface.

    Raises:
        PreconditionError / ValidationError: the interface or device is not ready
        SpecNotFoundError: the service or a definition it references is missing
        TranslationError: the service cannot be expressed for this interface
    """
    opts = opts or ApplyServiceOptions()
    interface = normalize_interface_name(interface)
    node.precondition("apply-service", interface) \
        .require_interface_exists(interface) \
        .require_interface_not_lag_member(interface) \
        .require_no_existing_service(interface) \
        .require_service_exists(service_name) \
        .raise_if_failed()

    resolver = node.resolver
    service = resolver.get_service(service_name)
    ipvpn, macvpn = resolve_vpns(resolver, service)
    errors = _type_errors(service_name, service, ipvpn, macvpn, opts)
    if errors:
        raise ValidationError(errors)
    _check_references(node, interface, service_name, service)

    profile = node.profile
    with timed_section_sync("generate-service", device=node.name, service=service_name):
        generated = generate_service_entries(node, interface, ServiceEntryParams(
            service_name=service_name,
            ip_address=opts.ip_address,
            vlan=opts.vlan,
            params=opts.params,
            peer_as=opts.peer_as,
            underlay_asn=profile.underlay_asn,
            router_id=profile.router_id,
            platform_name=profile.platform,
        ))

    vlan_id = macvpn.vlan_id if macvpn is not None else opts.vlan
    ingress_acl = derive_acl_name(service_name, "in") if service.ingress_filter else ""
    egress_acl = derive_acl_name(service_name, "out") if service.egress_filter else ""
    acl_filters = {ingress_acl: service.ingress_filter, egress_acl: service.egress_filter}
    policy_name, policy = service_qos_policy(resolver, service)
    binding = None

    cs = ChangeSet(node.name, "interface.apply-service")
    for e in generated:
        if e.table == tables.SERVICE_BINDING:
            binding = e
            continue
        if e.table == tables.ACL_RULE:
            continue
        if e.table == tables.ACL_TABLE and e.key in (ingress_acl, egress_acl):
            existing = node.snapshot.get(tables.ACL_TABLE, e.key)
            if existing is not None:
                cs.updates(acl_ports_config(e.key, add_to_csv(existing.get("ports", ""), interface)))
            else:
                cs.add(e.table, e.key, e.fields)
                cs.adds(acl_rules_from_filter(resolver, e.key, resolver.get_filter(acl_filters[e.key])))
            continue
        if e.table == tables.PORT_QOS_MAP and policy is not None:
            cs.adds(qos_device_config(policy_name, policy))
        if _keep_entry(node, e, service, ipvpn, vlan_id):
            cs.add(e.table, e.key, e.fields)

    vrf = binding.fields.get("vrf_name", "") if binding else ""
    vrf_key = vrf or tables.DEFAULT_VRF
    bgp_neighbor = ""
    if service.uses_bgp:
        routing = service.routing
        if opts.ip_address:
            bgp_neighbor = derive_neighbor_ip(opts.ip_address)
        policy_entries, af_fields = service_route_policies(resolver, service_name, routing)
        cs.adds(policy_entries)
        if af_fields and bgp_neighbor:
            cs.update(tables.BGP_NEIGHBOR_AF, keys.bgp_neighbor_af_key(vrf_key, bgp_neighbor), af_fields)
        if routing.redistribute is not None:
            cs.updates(redistribution_config(vrf_key, routing.redistribute))

    extra = {
        "ingress_acl": ingress_acl,
        "egress_acl": egress_acl,
        "bgp_neighbor": bgp_neighbor,
        "qos_policy": policy_name,
        "vlan_id": str(vlan_id) if vlan_id > 0 else "",
    }
    if service.routing is not None and service.routing.redistribute is not None:
        extra["redistribute_vrf"] = vrf_key
    fields = dict(binding.fields) if binding else {"service_name": service_name}
    fields.update({k: v for k, v in extra.items() if v})
    cs.add(tables.SERVICE_BINDING, interface, fields)

    node.track_offline(cs)
    logger.info(f"{node.name}: applied service '{service_name}' to interface {interface}")
    return cs


def _lookup(getter, name: str):
    if not name:
        return None
    try:
        return getter(name)
    except SpecNotFoundError:
        return None


def _recorded(enum_cls, value: str, fallback):
    """The type stored in the binding; bindings written without one fall back to the definition."""
    if value:
        try:
            return enum_cls(value)
        except ValueError:
            logger.warning(f"ignoring unknown {enum_cls.__name__} {value!r} in service binding")
    return fallback


def remove_service(node: "Node", interface: str) -> ChangeSet:
    """Undo the service bound to ``interface``, sparing resources others still use."""
    interface = normalize_interface_name(interface)
    node.precondition("remove-service", interface) \
        .check(
            node.interface_has_service(interface),
            "interface must have a service bound", f"interface {interface} has no service to remove",
        ) \
        .raise_if_failed()

    resolver = node.resolver
    snapshot = node.snapshot
    intf = node.interface(interface)
    b = intf.binding
    service_name = b.service_name
    vrf = b.vrf_name
    deps = node.dependencies(interface)

    service: Optional[ServiceSpec] = _lookup(resolver.get_service, service_name)
    macvpn: Optional[MACVPNSpec] = _lookup(resolver.get_macvpn, b.macvpn)
    stype = _recorded(ServiceType, b.service_type, service.service_type if service else None)
    vrf_type = _recorded(VRFType, b.vrf_type, service.vrf_type if service else None)
    last_service_user = deps.is_last_service_user(service_name)
    routed = stype in ROUTED_TYPES

    cs = ChangeSet(node.name, "interface.remove-service")

    # --- Per-interface ---
    cs.deletes(unbind_qos_config(node, interface))
    if b.qos_policy and not deps.is_qos_policy_referenced(b.qos_policy):
        cs.deletes(delete_qos_device_config(node, b.qos_policy))

    for ip in intf.ip_addresses:
        cs.delete(intf.ip_table, keys.interface_ip_key(interface, ip))
    if routed and vrf in ("", tables.DEFAULT_VRF):
        cs.delete(intf.ip_table, interface)

    if b.bgp_neighbor:
        vrf_key = vrf if vrf and vrf != tables.DEFAULT_VRF else tables.DEFAULT_VRF
        cs.deletes(delete_bgp_neighbor_config(vrf_key, b.bgp_neighbor))

    # --- Per-service ---
    for acl in (b.ingress_acl, b.egress_acl):
        if not acl or not node.acl_table_exists(acl):
            continue
        if deps.is_last_acl_user(acl):
            cs.deletes(delete_acl_table_config(node, acl))
        else:
            cs.updates(acl_ports_config(acl, deps.acl_remaining_interfaces(acl)))

    if last_service_user:
        cs.deletes(delete_route_policies(snapshot, service_name))
        if b.redistribute_vrf:
            cs.updates(revert_redistribution_config(b.redistribute_vrf))

    # --- VRF ---
    if vrf and vrf != tables.DEFAULT_VRF:
        if routed:
            cs.delete(intf.ip_table, interface)
        elif snapshot.has(intf.ip_table, interface):
            cs.update(intf.ip_table, interface, {"vrf_name": ""})

        if vrf_type == VRFType.INTERFACE:
            cs.deletes(destroy_vrf_config(node, vrf))
        elif vrf_type == VRFType.SHARED:
            last_user = deps.is_last_ipvpn_user(b.ipvpn) if b.ipvpn else deps.is_last_vrf_user(vrf)
            if last_user:
                cs.deletes(destroy_vrf_config(node, vrf))

    # --- VLAN ---
    vlan_id = b.vlan or (macvpn.vlan_id if macvpn is not None else 0)
    if stype in BRIDGING_TYPES and vlan_id > 0:
        vlan_name = keys.vlan_name(vlan_id)
        cs.delete(tables.VLAN_MEMBER, keys.vlan_member_key(vlan_id, interface))
        if deps.is_last_vlan_member(vlan_id):
            if stype in IRB_TYPES:
                cs.deletes(destroy_svi_config(node, vlan_id))
                if (stype == ServiceType.EVPN_IRB and snapshot.has(tables.SAG_GLOBAL, SAG_KEY)
                        and deps.is_last_anycast_mac_user()):
                    cs.deletes(delete_sag_global_config())
            cs.deletes(unbind_macvpn_config(node, vlan_name))
            cs.deletes(delete_vlan_config(vlan_id))

    cs.delete(tables.SERVICE_BINDING, interface)

    node.track_offline(cs)
    if last_service_user:
        logger.info(f"{node.name}: last interface removed from service '{service_name}', service resources cleaned up")
    logger.info(f"{node.name}: removed service '{service_name}' from interface {interface}")
    return cs


def refresh_service(node: "Node", interface: str) -> ChangeSet:
    """Re-translate the bound service from its current definition.

    The removal is folded into the snapshot before reapplying, so the
    reapply sees the interface as unbound and recreates shared resources
    the removal deleted. The snapshot is re-read on the next lock.
    """
    interface = normalize_interface_name(interface)
    node.precondition("refresh-service", interface) \
        .check(
            node.interface_has_service(interface),
            "interface must have a service bound", f"interface {interface} has no service to refresh",
        ) \
        .raise_if_failed()

    b = node.interface_binding(interface)
    peer_as = 0
    if b.bgp_neighbor:
        vrf_key = b.vrf_name or tables.DEFAULT_VRF
        asn = node.snapshot.field(tables.BGP_NEIGHBOR, keys.bgp_neighbor_key(vrf_key, b.bgp_neighbor), "asn")
        peer_as = int(asn) if asn.isdigit() else 0

    try:
        removed = remove_service(node, interface)
    except TranslationError as e:
        raise TranslationError(f"removing old service: {e}", reference=e.reference) from e
    if not node.offline:
        node.snapshot.apply_changes(removed.changes)

    applied = apply_service(node, interface, b.service_name, ApplyServiceOptions(
        ip_address=b.ip_address, vlan=b.vlan, peer_as=peer_as,
    ))

    cs = ChangeSet(node.name, "interface.refresh-service")
    cs.merge(removed).merge(applied)
    logger.info(f"{node.name}: refreshed service '{b.service_name}' on interface {interface}")
    return cs
