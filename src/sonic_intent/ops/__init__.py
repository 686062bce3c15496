"""Operations - translate intents into change-sets.

Each resource module pairs pure entry generators (``*_config``) with
operations that check preconditions against a Node and return a ChangeSet.
Operations never write to the device; pass them to ``Node.execute_op`` or
``config_engine.Engine.run``.

Usage:
    from sonic_intent.ops import ApplyServiceOptions, apply_service

    await node.execute_op(lambda: apply_service(
        node, "Ethernet0", "customer-l3", ApplyServiceOptions(ip_address="10.1.1.1/30"),
    ))
"""

from .acl import (
    ACLRuleConfig,
    add_acl_rule,
    bind_acl,
    create_acl_table,
    delete_acl_rule,
    delete_acl_table,
    unbind_acl,
)
from .baseline import CONFIGLETS, apply_baseline
from .bgp import BGPGlobalsConfig, add_bgp_neighbor, remove_bgp_neighbor, set_bgp_globals
from .cleanup import CleanupSummary, cleanup
from .composite import (
    CompositeBuilder,
    CompositeConfig,
    CompositeDeliveryResult,
    CompositeMetadata,
    CompositeMode,
    deliver_composite,
    verify_composite,
)
from .evpn import bind_macvpn, map_l2vni, setup_evpn, teardown_evpn, unbind_macvpn, unmap_l2vni
from .interface import (
    remove_ip,
    set_admin_status,
    set_description,
    set_ip,
    set_mtu,
    set_property,
    set_speed,
    set_vrf,
)
from .portchannel import (
    PortChannelConfig,
    PortChannelInfo,
    add_portchannel_member,
    create_portchannel,
    delete_portchannel,
    get_portchannel,
    list_portchannels,
    remove_portchannel_member,
)
from .qos import apply_qos, remove_qos
from .service import ApplyServiceOptions, apply_service, refresh_service, remove_service
from .service_gen import ServiceEntryParams, generate_service_entries
from .vlan import (
    VLANInfo,
    add_vlan_member,
    configure_svi,
    create_vlan,
    delete_vlan,
    get_vlan,
    list_vlans,
    remove_svi,
    remove_vlan_member,
)
from .vrf import (
    VRFInfo,
    add_static_route,
    add_vrf_interface,
    bind_ipvpn,
    create_vrf,
    delete_vrf,
    get_vrf,
    list_vrfs,
    remove_static_route,
    remove_vrf_interface,
    unbind_ipvpn,
)

__all__ = [
    # Services
    "ApplyServiceOptions",
    "apply_service",
    "remove_service",
    "refresh_service",
    "ServiceEntryParams",
    "generate_service_entries",
    # VLAN
    "VLANInfo",
    "create_vlan",
    "delete_vlan",
    "add_vlan_member",
    "remove_vlan_member",
    "configure_svi",
    "remove_svi",
    "get_vlan",
    "list_vlans",
    # VRF
    "VRFInfo",
    "create_vrf",
    "delete_vrf",
    "add_vrf_interface",
    "remove_vrf_interface",
    "bind_ipvpn",
    "unbind_ipvpn",
    "add_static_route",
    "remove_static_route",
    "get_vrf",
    "list_vrfs",
    # EVPN
    "setup_evpn",
    "teardown_evpn",
    "map_l2vni",
    "unmap_l2vni",
    "bind_macvpn",
    "unbind_macvpn",
    # Baseline
    "CONFIGLETS",
    "apply_baseline",
    # ACL
    "ACLRuleConfig",
    "create_acl_table",
    "add_acl_rule",
    "delete_acl_rule",
    "delete_acl_table",
    "bind_acl",
    "unbind_acl",
    # QoS
    "apply_qos",
    "remove_qos",
    # BGP
    "BGPGlobalsConfig",
    "set_bgp_globals",
    "add_bgp_neighbor",
    "remove_bgp_neighbor",
    # Interface
    "set_ip",
    "remove_ip",
    "set_vrf",
    "set_property",
    "set_admin_status",
    "set_description",
    "set_mtu",
    "set_speed",
    # PortChannel
    "PortChannelConfig",
    "PortChannelInfo",
    "create_portchannel",
    "delete_portchannel",
    "add_portchannel_member",
    "remove_portchannel_member",
    "get_portchannel",
    "list_portchannels",
    # Cleanup and composite delivery
    "CleanupSummary",
    "cleanup",
    "CompositeMode",
    "CompositeMetadata",
    "CompositeBuilder",
    "CompositeConfig",
    "CompositeDeliveryResult",
    "deliver_composite",
    "verify_composite",
]
