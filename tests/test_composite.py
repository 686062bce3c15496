"""Tests for offline composite generation and delivery."""
import json

import pytest

from sonic_intent.config_db import tables
from sonic_intent.config_db.entry import ConfigEntry
from sonic_intent.errors import CompositeError, PreconditionError
from sonic_intent.node import Node
from sonic_intent.ops import (
    ApplyServiceOptions,
    CompositeBuilder,
    CompositeConfig,
    CompositeMode,
    apply_service,
    deliver_composite,
    verify_composite,
)


@pytest.fixture
def composite(node):
    """Baseline plus one customer interface, exported from the abstract leaf."""
    apply_service(node, "Ethernet0", "customer-l3", ApplyServiceOptions(ip_address="10.1.1.1/30", peer_as=65100))
    return node.build_composite("day-one config")


class TestCompositeBuilder:
    """Tests for building composite configs."""

    def test_repeated_keys_merge(self):
        config = CompositeBuilder("leaf1") \
            .add_entry(tables.VLAN, "Vlan100", {"vlanid": "100"}) \
            .add_entry(tables.VLAN, "Vlan100", {"description": "users"}) \
            .add_entries([ConfigEntry(tables.VRF, "Vrf_a", {})]) \
            .set_network_name("dc1") \
            .build()

        assert config.tables[tables.VLAN]["Vlan100"] == {"vlanid": "100", "description": "users"}
        assert config.entry_count == 2
        assert config.metadata.device_name == "leaf1"
        assert config.metadata.network_name == "dc1"
        assert config.metadata.mode == CompositeMode.OVERWRITE

    def test_build_is_a_copy(self):
        builder = CompositeBuilder("leaf1").add_entry(tables.VRF, "Vrf_a", {})
        config = builder.build()
        builder.add_entry(tables.VRF, "Vrf_b", {})
        assert list(config.tables[tables.VRF]) == ["Vrf_a"]

    def test_from_abstract_node(self, composite):
        """The export carries everything the shadow snapshot holds."""
        assert composite.metadata.generated_by == "abstract-node"
        assert composite.metadata.description == "day-one config"
        assert composite.tables[tables.SERVICE_BINDING]["Ethernet0"]["service_name"] == "customer-l3"
        assert "Ethernet28" in composite.tables[tables.PORT]


class TestCompositeFiles:
    """Tests for saving and loading composites."""

    def test_yaml(self, composite, tmp_path):
        path = composite.write(tmp_path / "out" / "leaf1.yaml")
        loaded = CompositeConfig.load(path)

        assert loaded.tables == composite.tables
        assert loaded.metadata.description == "day-one config"
        assert loaded.metadata.timestamp == composite.metadata.timestamp

    def test_json(self, composite, tmp_path):
        path = composite.write(tmp_path / "leaf1.json")
        data = json.loads(path.read_text())

        assert data["metadata"]["mode"] == "overwrite"
        assert CompositeConfig.load(path).entry_count == composite.entry_count

    def test_numbers_load_as_strings(self, tmp_path):
        path = tmp_path / "hand.yaml"
        path.write_text("tables:\n  VLAN:\n    Vlan100:\n      vlanid: 100\n")
        assert CompositeConfig.load(path).tables["VLAN"]["Vlan100"] == {"vlanid": "100"}

    @pytest.mark.parametrize("text,message", [
        ("tables: [unclosed\n", "cannot parse composite"),
        ("- a\n- b\n", "is not a mapping"),
        ("metadata:\n  mode: sideways\n", "unknown composite mode: sideways"),
    ])
    def test_bad_files(self, tmp_path, text, message):
        path = tmp_path / "bad.yaml"
        path.write_text(text)
        with pytest.raises(CompositeError, match=message):
            CompositeConfig.load(path)


class TestDeliverOffline:
    """Tests for delivering to abstract nodes."""

    @pytest.mark.asyncio
    async def test_deliver_to_abstract(self, composite, spec):
        target = Node.abstract("leaf1", spec)
        result = await deliver_composite(target, composite)

        assert result.success
        assert result.applied == composite.entry_count
        assert target.interface("Ethernet0").service_name == "customer-l3"

    @pytest.mark.asyncio
    async def test_merge_conflict(self, composite, node):
        """Merge refuses interfaces that already carry a service."""
        with pytest.raises(CompositeError) as exc_info:
            await deliver_composite(node, composite, CompositeMode.MERGE)
        assert "interface Ethernet0 already has service 'customer-l3' bound" in str(exc_info.value)
        assert len(exc_info.value.conflicts) == 1

    @pytest.mark.asyncio
    async def test_unknown_mode(self, composite, spec):
        with pytest.raises(CompositeError, match="unknown composite mode"):
            await deliver_composite(Node.abstract("leaf1", spec), composite, "sideways")

    def test_result_to_dict(self):
        from sonic_intent.ops import CompositeDeliveryResult

        result = CompositeDeliveryResult(mode=CompositeMode.MERGE, applied=3)
        assert result.to_dict() == {"mode": "merge", "applied": 3, "skipped": 0, "failed": 0, "error": None}


class TestDeliverOnline:
    """Tests for delivering to a device."""

    @pytest.mark.asyncio
    async def test_requires_lock(self, composite, online_node):
        await online_node.connect()
        with pytest.raises(PreconditionError, match="device must be locked"):
            await deliver_composite(online_node, composite)
        await online_node.disconnect()

    @pytest.mark.asyncio
    async def test_overwrite(self, composite, online_node, backend):
        """Stale keys go from touched tables; merge-only tables keep theirs."""
        backend.set(tables.VRF, "Vrf_stale", {})
        backend.set(tables.PORT, "Ethernet99", {"admin_status": "up"})
        await online_node.connect()
        await online_node.lock()

        result = await deliver_composite(online_node, composite)
        verification = await verify_composite(online_node, composite)

        assert result.success
        assert result.mode == CompositeMode.OVERWRITE
        assert backend.get(tables.VRF, "Vrf_stale") is None
        assert backend.get(tables.PORT, "Ethernet99") is not None
        assert backend.get(tables.SERVICE_BINDING, "Ethernet0")["service_name"] == "customer-l3"
        assert verification.ok
        assert verification.passed == composite.entry_count
        await online_node.disconnect()

    @pytest.mark.asyncio
    async def test_merge(self, composite, online_node, backend):
        backend.set(tables.VRF, "Vrf_stale", {})
        await online_node.connect()
        await online_node.lock()

        result = await deliver_composite(online_node, composite, CompositeMode.MERGE)

        assert result.mode == CompositeMode.MERGE
        assert backend.get(tables.VRF, "Vrf_stale") == {}
        assert backend.get(tables.VRF, "Vrf_customer") == {"vni": "10001"}
        await online_node.disconnect()

    @pytest.mark.asyncio
    async def test_store_failure_is_reported(self, composite, online_node, backend):
        """A failed write comes back in the result rather than as an exception."""
        backend.fail_writes.add((tables.SERVICE_BINDING, "Ethernet0"))
        await online_node.connect()
        await online_node.lock()

        result = await deliver_composite(online_node, composite)

        assert not result.success
        assert result.failed == composite.entry_count
        assert "write rejected for SERVICE_BINDING|Ethernet0" in result.error
        await online_node.disconnect()
