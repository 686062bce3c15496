"""Tests for the config engine: dry-run, execute, audit, delivery and drift."""
import pytest

from sonic_intent.config_db import tables
from sonic_intent.config_db.changeset import ChangeSet
from sonic_intent.config_db.snapshot import ConfigSnapshot
from sonic_intent.config_engine import Engine, ExecuteOptions, diff_tables, summarize_changes
from sonic_intent.ops import ApplyServiceOptions, apply_service, create_vlan, refresh_service
from sonic_intent.spec.inventory import DeviceInventory
from sonic_intent.store import memory_store_factory
from sonic_intent.utils.audit_log import get_recent_changes
from sonic_intent.utils.logging_config import global_stats


def apply_customer(node):
    return apply_service(node, "Ethernet0", "customer-l3", ApplyServiceOptions(ip_address="10.1.1.1/30", peer_as=65100))


@pytest.fixture
def inventory():
    return DeviceInventory(data={
        "devices": {
            "leaf1": {
                "mgmt_ip": "192.0.2.11",
                "underlay_asn": 65001,
                "router_id": "10.0.0.1",
                "loopback_ip": "10.0.0.1",
                "platform": "as7326",
            },
        },
    })


@pytest.fixture
def engine(inventory, spec, backend, tmp_path):
    return Engine(
        inventory, spec,
        store_factory=lambda profile: memory_store_factory(backend),
        audit_dir=str(tmp_path),
    )


class TestDryRun:
    """Tests for previewing changes."""

    @pytest.mark.asyncio
    async def test_writes_nothing(self, engine, backend):
        """Dry-run builds the full change-set without the lock or any write."""
        result = await engine.run("leaf1", apply_customer, ExecuteOptions(dry_run=True))

        assert result.success
        assert result.dry_run
        assert result.operation == "interface.apply-service"
        assert result.change_count > 0
        assert result.applied_count == 0
        assert backend.get(tables.SERVICE_BINDING, "Ethernet0") is None
        assert "leaf1" not in backend.leases

    @pytest.mark.asyncio
    async def test_preview(self, engine):
        result = await engine.run("leaf1", apply_customer, ExecuteOptions(dry_run=True))
        n = result.change_count

        assert result.preview.startswith(
            f"interface.apply-service on leaf1: {n} changes ({n} add, 0 modify, 0 delete)"
        )
        assert "[+] SERVICE_BINDING|Ethernet0" in result.preview

    @pytest.mark.asyncio
    async def test_preview_sees_device_state(self, engine, backend):
        """The preview is built against what the device already has."""
        backend.set(tables.SERVICE_BINDING, "Ethernet0", {"service_name": "transit"})
        result = await engine.run("leaf1", apply_customer, ExecuteOptions(dry_run=True))

        assert not result.success
        assert "already bound to service 'transit'" in result.error


class TestExecute:
    """Tests for applying changes."""

    @pytest.mark.asyncio
    async def test_apply_and_verify(self, engine, backend):
        result = await engine.run("leaf1", apply_customer)

        assert result.success
        assert not result.dry_run
        assert result.applied_count == result.change_count
        assert result.verification["failed"] == 0
        assert result.verification["passed"] == result.change_count
        assert backend.get(tables.SERVICE_BINDING, "Ethernet0")["service_name"] == "customer-l3"
        assert "leaf1" not in backend.leases

    @pytest.mark.asyncio
    async def test_perf_summary_covers_the_run(self, engine):
        global_stats.clear()
        await engine.run("leaf1", apply_customer)

        lines = engine.perf_summary().splitlines()
        assert lines[0] == "Performance Summary"
        for op in ("lock", "apply", "verify"):
            assert any(line.startswith(f"{op:24s} | count=   1 |") for line in lines), op

    @pytest.mark.asyncio
    async def test_verification_can_be_disabled(self, engine, monkeypatch):
        monkeypatch.setenv("SONIC_INTENT_VERIFY", "0")
        result = await engine.run("leaf1", apply_customer)

        assert result.success
        assert result.verification is None

    @pytest.mark.asyncio
    async def test_precondition_failure(self, engine, backend):
        """A rejected operation writes nothing and releases the lock."""
        result = await engine.run(
            "leaf1", lambda node: apply_service(node, "Ethernet99", "servers-l2"),
        )

        assert not result.success
        assert "interface 'Ethernet99' not found" in result.error
        assert result.changes == []
        assert result.error_context is None
        assert "leaf1" not in backend.leases

    @pytest.mark.asyncio
    async def test_partial_apply(self, engine, backend):
        """A failed write stops the run; earlier writes stay and the result says so."""
        backend.fail_writes.add((tables.SERVICE_BINDING, "Ethernet0"))
        result = await engine.run("leaf1", apply_customer)

        assert not result.success
        assert "SERVICE_BINDING" in result.error
        assert result.applied_count == result.change_count - 1
        assert "no rollback performed" in result.error_context
        assert backend.get(tables.VRF, "Vrf_customer") is not None
        assert "leaf1" not in backend.leases

    @pytest.mark.asyncio
    async def test_refresh_verifies(self, engine, backend):
        """Keys a refresh deletes and re-creates are verified by their final state."""
        await engine.run("leaf1", apply_customer)
        result = await engine.run("leaf1", lambda node: refresh_service(node, "Ethernet0"))

        assert result.success, result.error
        assert result.operation == "interface.refresh-service"
        assert result.verification["failed"] == 0
        assert result.verification["passed"] < result.change_count
        assert backend.get(tables.SERVICE_BINDING, "Ethernet0")["service_name"] == "customer-l3"
        assert backend.get(tables.VRF, "Vrf_customer") is not None

    @pytest.mark.asyncio
    async def test_repeat_create_fails(self, engine):
        """Re-creating something that exists is an error, not an empty run."""
        await engine.run("leaf1", lambda node: create_vlan(node, 100))
        result = await engine.run("leaf1", lambda node: create_vlan(node, 100))

        assert not result.success
        assert "VLAN 100 already exists" in result.error

    @pytest.mark.asyncio
    async def test_unknown_device(self, engine):
        with pytest.raises(KeyError):
            await engine.run("leaf9", apply_customer)


class TestAudit:
    """Tests for audit records written by the engine."""

    @pytest.mark.asyncio
    async def test_records_runs(self, engine, tmp_path):
        await engine.run("leaf1", apply_customer, ExecuteOptions(dry_run=True, user="alice"))
        await engine.run("leaf1", apply_customer, ExecuteOptions(user="alice", audit_context="CHG-42"))

        records = get_recent_changes(str(tmp_path / "audit.log"))

        assert len(records) == 2
        latest, first = records
        assert first.dry_run and not latest.dry_run
        assert latest.user == "alice"
        assert latest.operation == "interface.apply-service"
        assert latest.applied_count == len(latest.changes)
        assert latest.context == {"audit_context": "CHG-42"}
        assert latest.verification["failed"] == 0

    @pytest.mark.asyncio
    async def test_records_failures(self, engine, tmp_path):
        await engine.run("leaf1", lambda node: apply_service(node, "Ethernet99", "servers-l2"))

        record = get_recent_changes(str(tmp_path / "audit.log"))[0]
        assert not record.success
        assert record.changes == []
        assert "Ethernet99" in record.error
        assert record.user == "system"

    @pytest.mark.asyncio
    async def test_filters(self, engine, tmp_path):
        await engine.run("leaf1", lambda node: create_vlan(node, 100))
        await engine.run("leaf1", apply_customer)
        log_file = str(tmp_path / "audit.log")

        assert len(get_recent_changes(log_file, operation="device.create-vlan")) == 1
        assert get_recent_changes(log_file, device="leaf2") == []
        assert len(get_recent_changes(log_file, limit=1)) == 1

    def test_missing_log(self, tmp_path):
        assert get_recent_changes(str(tmp_path / "nope.log")) == []


class TestDeliveryAndDrift:
    """Tests for composite delivery and drift detection through the engine."""

    @pytest.fixture
    def composite(self, node):
        apply_customer(node)
        return node.build_composite()

    @pytest.mark.asyncio
    async def test_deliver(self, engine, composite, backend):
        result = await engine.deliver("leaf1", composite)

        assert result.success
        assert result.applied == composite.entry_count
        assert backend.get(tables.SERVICE_BINDING, "Ethernet0") is not None
        assert "leaf1" not in backend.leases

    @pytest.mark.asyncio
    async def test_in_sync_after_delivery(self, engine, composite):
        await engine.deliver("leaf1", composite)
        report = await engine.drift("leaf1", composite)

        assert report.in_sync
        assert report.summary() == "leaf1: IN SYNC"

    @pytest.mark.asyncio
    async def test_drift_kinds(self, engine, composite, backend):
        await engine.deliver("leaf1", composite)
        backend.delete(tables.SERVICE_BINDING, "Ethernet0")
        backend.set(tables.VRF, "Vrf_rogue", {})
        backend.set(tables.PORT, "Ethernet0", {"mtu": "1500"})

        report = await engine.drift("leaf1", composite)

        kinds = {item.path: item.drift_type for item in report.items}
        assert kinds == {
            "SERVICE_BINDING|Ethernet0": "missing",
            "VRF|Vrf_rogue": "extra",
            "PORT|Ethernet0": "modified",
        }
        assert report.summary().startswith("leaf1: DRIFT (3 issues)")
        assert report.to_dict()["in_sync"] is False


class TestDiff:
    """Tests for change summaries and table diffs."""

    def test_summarize_empty(self):
        assert summarize_changes(ChangeSet("leaf1", "noop")) == "No changes needed"

    def test_summarize_markers(self):
        cs = ChangeSet("leaf1", "device.edit") \
            .add(tables.VLAN, "Vlan100", {"vlanid": "100"}) \
            .update(tables.PORT, "Ethernet0", {"mtu": "9000"}) \
            .delete(tables.VRF, "Vrf_a")
        lines = summarize_changes(cs).splitlines()

        assert lines[0] == "device.edit on leaf1: 3 changes (1 add, 1 modify, 1 delete)"
        assert lines[2:] == [
            "  [+] VLAN|Vlan100  vlanid=100",
            "  [~] PORT|Ethernet0  mtu=9000",
            "  [-] VRF|Vrf_a",
        ]

    def test_extra_device_fields_are_not_drift(self):
        actual = ConfigSnapshot({tables.PORT: {"Ethernet0": {"mtu": "9100", "speed": "100G"}}})
        assert diff_tables({tables.PORT: {"Ethernet0": {"mtu": "9100"}}}, actual) == []

    def test_merge_only_tables_ignore_extra_keys(self):
        actual = ConfigSnapshot({tables.PORT: {"Ethernet0": {}, "Ethernet4": {}}})
        expected = {tables.PORT: {"Ethernet0": {}}}

        assert diff_tables(expected, actual, frozenset({tables.PORT})) == []
        assert [i.path for i in diff_tables(expected, actual)] == ["PORT|Ethernet4"]
