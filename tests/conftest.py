"""Shared fixtures: a small network spec and an in-memory leaf switch."""
import copy

import pytest

from sonic_intent.config_db import tables
from sonic_intent.config_db.entry import ConfigEntry
from sonic_intent.node import Node
from sonic_intent.spec import DeviceProfile, NetworkSpec
from sonic_intent.store import MemoryBackend, memory_store_factory

NETWORK = {
    "services": {
        "customer-l3": {
            "service_type": "evpn-routed",
            "ipvpn": "customer",
            "vrf_type": "shared",
            "ingress_filter": "protect-in",
            "routing": {"protocol": "bgp", "peer_as": "request"},
        },
        "transit": {
            "service_type": "routed",
            "routing": {
                "protocol": "bgp",
                "peer_as": 65100,
                "import_community": "65100:100",
                "redistribute": False,
            },
        },
        "dedicated-l3": {
            "service_type": "routed",
            "vrf_type": "interface",
        },
        "campus-irb": {
            "service_type": "evpn-irb",
            "ipvpn": "customer",
            "macvpn": "servers",
            "vrf_type": "shared",
        },
        "servers-l2": {
            "service_type": "evpn-bridged",
            "macvpn": "servers",
        },
        "local-bridge": {
            "service_type": "bridged",
        },
        "voice": {
            "service_type": "routed",
            "qos_policy": "gold",
        },
        "broken-qos": {
            "service_type": "routed",
            "qos_policy": "platinum",
        },
    },
    "ipvpns": {
        "customer": {"vrf": "Vrf_customer", "l3vni": 10001, "route_targets": ["65000:10001"]},
    },
    "macvpns": {
        "servers": {
            "vlan_id": 200,
            "vni": 20200,
            "anycast_ip": "10.200.0.1/24",
            "anycast_mac": "00:00:5e:00:01:01",
            "arp_suppression": True,
        },
    },
    "filters": {
        "protect-in": {
            "type": "ipv4",
            "rules": [
                {"seq": 10, "action": "deny", "src_prefix_list": "bogons"},
                {"seq": 20, "action": "permit", "protocol": "tcp", "dst_port": 179, "cos": "ef"},
            ],
        },
    },
    "prefix_lists": {
        "bogons": ["10.0.0.0/8", "192.168.0.0/16"],
    },
    "qos_policies": {
        "gold": {
            "queues": [
                {"name": "best-effort", "type": "dwrr", "weight": 20, "dscp": [0]},
                {"name": "voice", "type": "strict", "dscp": [46], "ecn": True},
            ],
        },
    },
    "platforms": {
        "as7326": {"hwsku": "Accton-AS7326-56X", "port_count": 56},
        "vs-lite": {"hwsku": "Force10-S6000", "unsupported_features": ["acl", "evpn-vxlan"]},
    },
}

PORTS = [f"Ethernet{i}" for i in range(0, 32, 4)]


def baseline_tables() -> dict:
    """Ports, underlay BGP and a VTEP: what a leaf has before any service."""
    return {
        tables.PORT: {p: {"admin_status": "up", "mtu": "9100", "speed": "100G"} for p in PORTS},
        tables.BGP_GLOBALS: {tables.DEFAULT_VRF: {"local_asn": "65001", "router_id": "10.0.0.1"}},
        tables.VXLAN_TUNNEL: {tables.VTEP_NAME: {"src_ip": "10.0.0.1"}},
        tables.VXLAN_EVPN_NVO: {tables.NVO_NAME: {"source_vtep": tables.VTEP_NAME}},
    }


def seed_entries(data: dict) -> list[ConfigEntry]:
    return [
        ConfigEntry(table, key, dict(fields))
        for table, rows in data.items()
        for key, fields in rows.items()
    ]


@pytest.fixture
def network_data():
    return copy.deepcopy(NETWORK)


@pytest.fixture
def spec(network_data):
    return NetworkSpec(network_data)


@pytest.fixture
def profile():
    return DeviceProfile(
        name="leaf1",
        mgmt_ip="192.0.2.11",
        underlay_asn=65001,
        router_id="10.0.0.1",
        loopback_ip="10.0.0.1",
        vtep_source_ip="10.0.0.1",
        platform="as7326",
    )


@pytest.fixture
def node(spec, profile):
    """Abstract leaf seeded with the baseline; changes fold into its snapshot."""
    n = Node.abstract("leaf1", spec, profile=profile)
    n.add_entries(seed_entries(baseline_tables()))
    return n


@pytest.fixture
def backend():
    return MemoryBackend(baseline_tables())


@pytest.fixture
def online_node(spec, profile, backend):
    return Node(
        "leaf1", spec, profile=profile,
        store_factory=memory_store_factory(backend), holder="alice@ops1",
    )
