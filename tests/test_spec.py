"""Tests for network spec loading and lookup."""
import pytest

from sonic_intent.errors import SpecLoadError, SpecNotFoundError, TranslationError
from sonic_intent.spec import NetworkSpec, ServiceType, VRFType


class TestNetworkSpec:
    """Tests for NetworkSpec lookups."""

    def test_service(self, spec):
        """Services parse into typed definitions."""
        svc = spec.get_service("customer-l3")

        assert svc.service_type == ServiceType.EVPN_ROUTED
        assert svc.vrf_type == VRFType.SHARED
        assert svc.ipvpn == "customer"
        assert svc.routing.peer_as == "request"
        assert svc.uses_bgp
        assert svc.is_overlay
        assert svc.can_route and not svc.can_bridge

    def test_numeric_peer_as_becomes_string(self, spec):
        assert spec.get_service("transit").routing.peer_as == "65100"
        assert spec.get_service("transit").routing.redistribute is False

    def test_redistribute_unset(self, spec):
        assert spec.get_service("customer-l3").routing.redistribute is None

    def test_vpns(self, spec):
        ipvpn = spec.get_ipvpn("customer")
        assert ipvpn.vrf == "Vrf_customer"
        assert ipvpn.l3vni == 10001
        assert ipvpn.route_targets == ["65000:10001"]

        macvpn = spec.get_macvpn("servers")
        assert macvpn.vlan_id == 200
        assert macvpn.vni == 20200
        assert macvpn.arp_suppression

    def test_ipvpn_vrf_defaults_to_name(self):
        spec = NetworkSpec({"ipvpns": {"blue": {"l3vni": 5000}}})
        assert spec.get_ipvpn("blue").vrf == "blue"

    def test_filter_rules(self, spec):
        rules = spec.get_filter("protect-in").rules
        assert [r.seq for r in rules] == [10, 20]
        assert rules[1].dst_port == "179"

    def test_qos_policy(self, spec):
        policy = spec.get_qos_policy("gold")
        assert len(policy.queues) == 2
        assert policy.has_ecn
        assert policy.queues[1].dscp == [46]

    def test_prefix_list(self, spec):
        assert spec.get_prefix_list("bogons") == ["10.0.0.0/8", "192.168.0.0/16"]

    def test_platform_features(self, spec):
        assert spec.get_platform("as7326").supports_feature("acl")
        assert not spec.get_platform("vs-lite").supports_feature("acl")

    def test_find_macvpn_by_vni(self, spec):
        name, macvpn = spec.find_macvpn_by_vni(20200)
        assert name == "servers"
        assert macvpn.vlan_id == 200
        assert spec.find_macvpn_by_vni(99) is None

    def test_lookups_are_cached(self, spec):
        assert spec.get_service("transit") is spec.get_service("transit")

    def test_names(self, spec):
        assert "customer" in spec.names("ipvpns")


class TestSpecErrors:
    """Tests for missing and malformed definitions."""

    @pytest.mark.parametrize("getter,kind", [
        ("get_service", "service"),
        ("get_ipvpn", "ipvpn"),
        ("get_macvpn", "macvpn"),
        ("get_filter", "filter"),
        ("get_qos_policy", "QoS policy"),
        ("get_route_policy", "route policy"),
    ])
    def test_not_found(self, spec, getter, kind):
        """Every getter names the kind and the missing name."""
        with pytest.raises(SpecNotFoundError) as exc_info:
            getattr(spec, getter)("nope")
        assert str(exc_info.value) == f"{kind} 'nope' not found"
        assert exc_info.value.kind == kind

    def test_not_found_is_translation_error(self, spec):
        with pytest.raises(TranslationError):
            spec.get_service("nope")

    def test_bad_service_type(self):
        spec = NetworkSpec({"services": {"x": {"service_type": "teleport"}}})
        with pytest.raises(SpecLoadError, match="Invalid service_type"):
            spec.get_service("x")

    def test_bad_integer(self):
        spec = NetworkSpec({"macvpns": {"x": {"vlan_id": "two hundred"}}})
        with pytest.raises(SpecLoadError, match="vlan_id"):
            spec.get_macvpn("x")

    def test_section_must_be_mapping(self):
        with pytest.raises(SpecLoadError, match="section 'services' must be a mapping"):
            NetworkSpec({"services": ["a", "b"]})

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "network.yaml"
        path.write_text("services:\n  l2:\n    service_type: bridged\n")
        spec = NetworkSpec.load(str(path))
        assert spec.get_service("l2").service_type == ServiceType.BRIDGED

    def test_load_malformed_yaml(self, tmp_path):
        path = tmp_path / "network.yaml"
        path.write_text("services: [unclosed\n")
        with pytest.raises(SpecLoadError):
            NetworkSpec.load(str(path))
