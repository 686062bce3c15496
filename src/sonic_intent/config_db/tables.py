"""CONFIG_DB table names."""

PORT = "PORT"
INTERFACE = "INTERFACE"
LOOPBACK_INTERFACE = "LOOPBACK_INTERFACE"
PORTCHANNEL = "PORTCHANNEL"
PORTCHANNEL_MEMBER = "PORTCHANNEL_MEMBER"
PORTCHANNEL_INTERFACE = "PORTCHANNEL_INTERFACE"

VLAN = "VLAN"
VLAN_MEMBER = "VLAN_MEMBER"
VLAN_INTERFACE = "VLAN_INTERFACE"
SAG_GLOBAL = "SAG_GLOBAL"
SUPPRESS_VLAN_NEIGH = "SUPPRESS_VLAN_NEIGH"

VRF = "VRF"
STATIC_ROUTE = "STATIC_ROUTE"

VXLAN_TUNNEL = "VXLAN_TUNNEL"
VXLAN_EVPN_NVO = "VXLAN_EVPN_NVO"
VXLAN_TUNNEL_MAP = "VXLAN_TUNNEL_MAP"
BGP_EVPN_VNI = "BGP_EVPN_VNI"

BGP_GLOBALS = "BGP_GLOBALS"
BGP_GLOBALS_AF = "BGP_GLOBALS_AF"
BGP_GLOBALS_EVPN_RT = "BGP_GLOBALS_EVPN_RT"
BGP_NEIGHBOR = "BGP_NEIGHBOR"
BGP_NEIGHBOR_AF = "BGP_NEIGHBOR_AF"
ROUTE_REDISTRIBUTE = "ROUTE_REDISTRIBUTE"
ROUTE_MAP = "ROUTE_MAP"
PREFIX_SET = "PREFIX_SET"
COMMUNITY_SET = "COMMUNITY_SET"

ACL_TABLE = "ACL_TABLE"
ACL_RULE = "ACL_RULE"

PORT_QOS_MAP = "PORT_QOS_MAP"
QUEUE = "QUEUE"
DSCP_TO_TC_MAP = "DSCP_TO_TC_MAP"
TC_TO_QUEUE_MAP = "TC_TO_QUEUE_MAP"
SCHEDULER = "SCHEDULER"
WRED_PROFILE = "WRED_PROFILE"

SERVICE_BINDING = "SERVICE_BINDING"

DEVICE_METADATA = "DEVICE_METADATA"

# merge-only in overwrite delivery: stale keys are never deleted
MERGE_ONLY_TABLES = frozenset({PORT})

# tables whose base keys (no "|") name an interface
INTERFACE_TABLES = (INTERFACE, VLAN_INTERFACE, PORTCHANNEL_INTERFACE, LOOPBACK_INTERFACE)

DEFAULT_VRF = "default"
VTEP_NAME = "vtep1"
NVO_NAME = "nvo1"
