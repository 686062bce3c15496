"""Network spec and device inventory."""
from .inventory import DeviceInventory, DeviceProfile
from .resolver import NetworkSpec, SpecResolver
from .schema import (
    BRIDGING_TYPES,
    OVERLAY_TYPES,
    ROUTING_TYPES,
    FilterRule,
    FilterSpec,
    IPVPNSpec,
    MACVPNSpec,
    PlatformSpec,
    QoSPolicy,
    QoSProfile,
    QoSQueue,
    RoutePolicy,
    RoutePolicyRule,
    RoutePolicySet,
    RoutingSpec,
    ServiceSpec,
    ServiceType,
    VRFType,
)

__all__ = [
    # Resolution
    "SpecResolver",
    "NetworkSpec",
    "DeviceInventory",
    "DeviceProfile",
    # Definitions
    "ServiceSpec",
    "ServiceType",
    "VRFType",
    "RoutingSpec",
    "IPVPNSpec",
    "MACVPNSpec",
    "FilterSpec",
    "FilterRule",
    "QoSPolicy",
    "QoSQueue",
    "QoSProfile",
    "RoutePolicy",
    "RoutePolicyRule",
    "RoutePolicySet",
    "PlatformSpec",
    "BRIDGING_TYPES",
    "ROUTING_TYPES",
    "OVERLAY_TYPES",
]
