"""Tests for orphan cleanup."""
import pytest

from sonic_intent.config_db import tables
from sonic_intent.config_db.entry import ConfigEntry
from sonic_intent.errors import PreconditionError
from sonic_intent.ops import ACLRuleConfig, add_acl_rule, bind_acl, cleanup, create_acl_table, unbind_acl


@pytest.fixture
def littered(node):
    """A leaf with one orphan of each kind next to resources still in use."""
    create_acl_table(node, "old-in")
    add_acl_rule(node, "old-in", "RULE_10", ACLRuleConfig(priority=9990))
    bind_acl(node, "old-in", "Ethernet0", "ingress")
    unbind_acl(node, "old-in", "Ethernet0")
    node.add_entries([
        ConfigEntry(tables.ACL_TABLE, "live-in", {"type": "L3", "ports": "Ethernet4"}),
        ConfigEntry(tables.VRF, "Vrf_old", {}),
        ConfigEntry(tables.VRF, "Vrf_live", {}),
        ConfigEntry(tables.INTERFACE, "Ethernet4", {"vrf_name": "Vrf_live"}),
        ConfigEntry(tables.VXLAN_TUNNEL_MAP, "vtep1|map_30300_Vlan300", {"vlan": "Vlan300", "vni": "30300"}),
        ConfigEntry(tables.VXLAN_TUNNEL_MAP, "vtep1|map_10002_Vrf_live", {"vrf": "Vrf_live", "vni": "10002"}),
    ])
    return node


class TestCleanup:
    """Tests for finding and deleting orphaned resources."""

    def test_clean_device(self, node):
        cs, summary = cleanup(node)
        assert cs.is_empty
        assert summary.total == 0

    def test_finds_every_kind(self, littered):
        cs, summary = cleanup(littered)

        assert cs.operation == "device.cleanup"
        assert summary.orphaned_acls == ["old-in"]
        assert summary.orphaned_vrfs == ["Vrf_old"]
        assert summary.orphaned_vni_mappings == ["vtep1|map_30300_Vlan300"]
        assert summary.total == 3
        assert summary.to_dict()["orphaned_vrfs"] == ["Vrf_old"]

    def test_acl_rules_go_first(self, littered):
        cs, _ = cleanup(littered, "acl")
        assert [c.path for c in cs] == ["ACL_RULE|old-in|RULE_10", "ACL_TABLE|old-in"]

    def test_live_resources_survive(self, littered):
        cleanup(littered)

        assert littered.acl_table_exists("live-in")
        assert littered.vrf_exists("Vrf_live")
        assert littered.snapshot.has(tables.VXLAN_TUNNEL_MAP, "vtep1|map_10002_Vrf_live")
        assert not littered.vrf_exists("Vrf_old")

    @pytest.mark.parametrize("kind,expected", [
        ("acl", (1, 0, 0)),
        ("vrf", (0, 1, 0)),
        ("vni", (0, 0, 1)),
    ])
    def test_narrowed_by_kind(self, littered, kind, expected):
        _, summary = cleanup(littered, kind)
        counts = (
            len(summary.orphaned_acls), len(summary.orphaned_vrfs), len(summary.orphaned_vni_mappings),
        )
        assert counts == expected

    def test_unknown_kind(self, node):
        with pytest.raises(PreconditionError, match="unknown cleanup type: bogus"):
            cleanup(node, "bogus")

    def test_orphaned_vrf_takes_its_children(self, node):
        node.add_entries([
            ConfigEntry(tables.VRF, "Vrf_old", {"vni": "10009"}),
            ConfigEntry(tables.BGP_GLOBALS, "Vrf_old", {"local_asn": "65001"}),
            ConfigEntry(tables.BGP_GLOBALS_AF, "Vrf_old|ipv4_unicast", {}),
            ConfigEntry(tables.VXLAN_TUNNEL_MAP, "vtep1|map_10009_Vrf_old", {"vrf": "Vrf_old", "vni": "10009"}),
        ])

        cs, summary = cleanup(node, "vrf")

        assert summary.orphaned_vrfs == ["Vrf_old"]
        assert [c.path for c in cs] == [
            "BGP_GLOBALS_AF|Vrf_old|ipv4_unicast",
            "VXLAN_TUNNEL_MAP|vtep1|map_10009_Vrf_old",
            "BGP_GLOBALS|Vrf_old",
            "VRF|Vrf_old",
        ]
        assert not node.snapshot.has(tables.BGP_GLOBALS, "Vrf_old")
        assert not node.snapshot.has(tables.VXLAN_TUNNEL_MAP, "vtep1|map_10009_Vrf_old")

    def test_vrf_bound_by_portchannel_survives(self, node):
        node.add_entries([
            ConfigEntry(tables.VRF, "Vrf_pc", {}),
            ConfigEntry(tables.PORTCHANNEL_INTERFACE, "PortChannel1", {"vrf_name": "Vrf_pc"}),
        ])
        _, summary = cleanup(node, "vrf")
        assert summary.orphaned_vrfs == []
