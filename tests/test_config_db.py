"""Tests for the CONFIG_DB data model."""
from sonic_intent.config_db import (
    ChangeSet,
    ChangeType,
    ConfigEntry,
    ConfigSnapshot,
    ServiceBinding,
    keys,
)


class TestKeys:
    """Tests for composite key construction."""

    def test_vlan_keys(self):
        assert keys.vlan_name(100) == "Vlan100"
        assert keys.vlan_member_key(100, "Ethernet0") == "Vlan100|Ethernet0"
        assert keys.parse_vlan_id("Vlan100") == 100
        assert keys.parse_vlan_id("Ethernet0") is None
        assert keys.parse_vlan_id("VlanX") is None

    def test_vni_map_key(self):
        """VNI maps hang off the VTEP and name both the VNI and its target."""
        assert keys.vni_map_key(20200, "Vlan200") == "vtep1|map_20200_Vlan200"
        assert keys.vni_map_key(10001, "Vrf_customer") == "vtep1|map_10001_Vrf_customer"

    def test_bgp_keys(self):
        assert keys.bgp_neighbor_key("default", "10.1.1.2") == "default|10.1.1.2"
        assert keys.bgp_neighbor_af_key("default", "10.1.1.2") == "default|10.1.1.2|ipv4_unicast"
        assert keys.bgp_globals_af_key("Vrf_a", "l2vpn_evpn") == "Vrf_a|l2vpn_evpn"
        assert keys.route_redistribute_key("Vrf_a", "connected") == "Vrf_a|connected|bgp|ipv4"
        assert keys.evpn_rt_key("Vrf_a", "65000:1") == "Vrf_a|L2VPN_EVPN|65000:1"

    def test_static_route_key(self):
        """The default VRF's routes are keyed by the bare prefix."""
        assert keys.static_route_key("default", "0.0.0.0/0") == "0.0.0.0/0"
        assert keys.static_route_key("", "0.0.0.0/0") == "0.0.0.0/0"
        assert keys.static_route_key("Vrf_a", "0.0.0.0/0") == "Vrf_a|0.0.0.0/0"

    def test_qos_keys(self):
        assert keys.scheduler_key("gold", 0) == "gold.0"
        assert keys.wred_key("gold") == "gold.ecn"
        assert keys.queue_key("Ethernet0", 3) == "Ethernet0|3"
        assert keys.table_ref("SCHEDULER", "gold.0") == "[SCHEDULER|gold.0]"

    def test_sub_keys(self):
        assert keys.is_sub_key("Ethernet0|10.1.1.1/30")
        assert not keys.is_sub_key("Ethernet0")
        assert keys.acl_rule_key("svc-in", "RULE_10") == "svc-in|RULE_10"


class TestConfigSnapshot:
    """Tests for the in-memory CONFIG_DB image."""

    def test_reads(self):
        snap = ConfigSnapshot({"VLAN": {"Vlan100": {"vlanid": "100"}}})

        assert snap.has("VLAN", "Vlan100")
        assert snap.field("VLAN", "Vlan100", "vlanid") == "100"
        assert snap.field("VLAN", "Vlan200", "vlanid", "none") == "none"
        assert snap.get("VRF", "x") is None
        assert snap.table("VRF") == {}
        assert snap.entry_count == 1

    def test_apply_changes_merges_and_deletes(self):
        """Add/Modify merge fields; Delete removes the key and empty tables."""
        snap = ConfigSnapshot({"ACL_TABLE": {"a": {"type": "L3", "ports": "Ethernet0"}}})
        cs = ChangeSet("leaf1", "test")
        cs.update("ACL_TABLE", "a", {"ports": "Ethernet0,Ethernet4"})
        cs.add("VRF", "Vrf_a")

        snap.apply_changes(cs.changes)

        assert snap.get("ACL_TABLE", "a") == {"type": "L3", "ports": "Ethernet0,Ethernet4"}
        assert snap.get("VRF", "Vrf_a") == {}

        snap.apply_changes(ChangeSet("leaf1", "test").delete("VRF", "Vrf_a").changes)
        assert "VRF" not in snap

    def test_copy_is_independent(self):
        snap = ConfigSnapshot({"VLAN": {"Vlan100": {"vlanid": "100"}}})
        other = snap.copy()
        other.remove("VLAN", "Vlan100")
        assert snap.has("VLAN", "Vlan100")

    def test_keys_with_prefix(self):
        snap = ConfigSnapshot({"VLAN_MEMBER": {
            "Vlan100|Ethernet0": {}, "Vlan100|Ethernet4": {}, "Vlan1000|Ethernet8": {},
        }})
        assert sorted(snap.keys_with_prefix("VLAN_MEMBER", keys.vlan_member_prefix(100))) == [
            "Vlan100|Ethernet0", "Vlan100|Ethernet4",
        ]


class TestChangeSet:
    """Tests for ordered change-sets."""

    def test_order_is_emission_order(self):
        """Changes are never reordered."""
        cs = ChangeSet("leaf1", "device.test")
        cs.delete("VLAN_MEMBER", "Vlan100|Ethernet0").delete("VLAN", "Vlan100").add("VRF", "a")

        assert [c.path for c in cs] == ["VLAN_MEMBER|Vlan100|Ethernet0", "VLAN|Vlan100", "VRF|a"]
        assert [c.type for c in cs] == [ChangeType.DELETE, ChangeType.DELETE, ChangeType.ADD]

    def test_from_entries(self):
        entries = [ConfigEntry("VLAN", "Vlan100", {"vlanid": "100"})]
        cs = ChangeSet.from_entries("leaf1", "device.create-vlan", entries)

        assert len(cs) == 1
        assert cs.changes[0].new_value == {"vlanid": "100"}
        deleted = ChangeSet.from_entries("leaf1", "x", entries, ChangeType.DELETE)
        assert deleted.changes[0].new_value is None

    def test_merge_and_empty(self):
        cs = ChangeSet("leaf1", "a")
        assert cs.is_empty
        assert str(cs) == "No changes"
        cs.merge(ChangeSet("leaf1", "b").add("VRF", "x"))
        assert not cs.is_empty

    def test_preview(self):
        cs = ChangeSet("leaf1", "device.create-vlan").add("VLAN", "Vlan100", {"vlanid": "100"})
        preview = cs.preview()

        assert "Operation: device.create-vlan" in preview
        assert "Device: leaf1" in preview
        assert "[ADD] VLAN|Vlan100" in preview
        assert "vlanid=100" in preview

    def test_net_changes_last_change_wins(self):
        """A key deleted then re-added nets to its final Add; Modify fields merge over Add."""
        cs = ChangeSet("leaf1", "interface.refresh-service") \
            .add("VRF", "Vrf_a", {"vni": "1"}) \
            .delete("SERVICE_BINDING", "Ethernet0") \
            .delete("VLAN", "Vlan100") \
            .add("SERVICE_BINDING", "Ethernet0", {"service_name": "transit"}) \
            .update("VRF", "Vrf_a", {"fallback": "true"})

        net = cs.net_changes()

        assert [(c.path, c.type) for c in net] == [
            ("VLAN|Vlan100", ChangeType.DELETE),
            ("SERVICE_BINDING|Ethernet0", ChangeType.ADD),
            ("VRF|Vrf_a", ChangeType.ADD),
        ]
        assert net[1].new_value == {"service_name": "transit"}
        assert net[2].new_value == {"vni": "1", "fallback": "true"}
        assert len(cs) == 5

    def test_net_changes_delete_after_add(self):
        cs = ChangeSet("leaf1", "x").add("VRF", "Vrf_a", {"vni": "1"}).delete("VRF", "Vrf_a")
        assert [c.type for c in cs.net_changes()] == [ChangeType.DELETE]

    def test_to_dict(self):
        cs = ChangeSet("leaf1", "x").update("PORT", "Ethernet0", {"mtu": "9000"})
        data = cs.to_dict()
        assert data["changes"][0]["type"] == "modify"
        assert data["verification"] is None


class TestServiceBinding:
    """Tests for the persisted binding record."""

    def test_round_trip_drops_empty_fields(self):
        binding = ServiceBinding(service_name="transit", ip_address="10.1.1.1/30", vlan_id="")
        fields = binding.to_fields()

        assert fields == {"service_name": "transit", "ip_address": "10.1.1.1/30"}
        assert ServiceBinding.from_fields(fields) == binding

    def test_unknown_fields_ignored(self):
        binding = ServiceBinding.from_fields({"service_name": "x", "future_field": "y", "vlan_id": "200"})
        assert binding.service_name == "x"
        assert binding.vlan == 200

    def test_corrupt_vlan_id_reads_as_unset(self):
        """A hand-edited vlan_id must not escape as a ValueError."""
        assert ServiceBinding(vlan_id="Vlan200").vlan == 0
        assert ServiceBinding(vlan_id="-1").vlan == 0
