"""Main Config Engine - runs operations against devices from the inventory.

Provides a single entry point for:
1. Opening a session to a device
2. Building a change-set with an operation
3. Previewing it (dry-run) or applying it under the device lock
4. Verifying the device converged
5. Recording the run in the audit log
"""
import logging
import os
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config_db import tables
from ..config_db.changeset import ChangeSet
from ..errors import ApplyError, SonicIntentError
from ..node.node import Node, StoreFactory
from ..ops.composite import CompositeConfig, CompositeDeliveryResult, CompositeMode, deliver_composite, verify_composite
from ..spec.inventory import DeviceInventory, DeviceProfile
from ..spec.resolver import SpecResolver
from ..store.ssh import ssh_store_factory
from ..utils.audit_log import ChangeTracker, setup_audit_logging
from ..utils.logging_config import global_stats
from .diff import diff_tables, summarize_changes
from .schema import DriftReport, ExecuteOptions, ExecuteResult

logger = logging.getLogger(__name__)

BuildFn = Callable[[Node], ChangeSet]


def verify_enabled() -> bool:
    """Execute mode verifies unless SONIC_INTENT_VERIFY=0."""
    return os.environ.get("SONIC_INTENT_VERIFY", "1") != "0"


class Engine:
    """
    Config Engine for running operations against inventory devices.

    Usage:
        engine = Engine(inventory, NetworkSpec.load())
        result = await engine.run(
            "leaf1",
            lambda node: apply_service(node, "Ethernet0", "customer-l3",
                                       ApplyServiceOptions(ip_address="10.1.1.1/30")),
            ExecuteOptions(dry_run=True),
        )
    """

    def __init__(
        self,
        inventory: DeviceInventory,
        resolver: SpecResolver,
        store_factory: Optional[Callable[[DeviceProfile], StoreFactory]] = None,
        audit_dir: Optional[str] = None,
    ):
        """
        Initialize the Config Engine.

        Args:
            inventory: Device inventory for looking up devices
            resolver: Network spec the operations translate against
            store_factory: Builds a per-device store factory (default: SSH to redis-cli)
            audit_dir: Directory for the audit log (optional; uses the
                already configured audit logger when omitted)
        """
        self.inventory = inventory
        self.resolver = resolver
        self.store_factory = store_factory or ssh_store_factory
        if audit_dir is not None:
            setup_audit_logging(audit_dir)

    def perf_summary(self) -> str:
        """Timings recorded by ``timed`` helpers in this process, per operation."""
        return global_stats.summary()

    def node(self, device: str) -> Node:
        profile = self.inventory.get_profile(device)
        return Node(device, self.resolver, profile=profile, store_factory=self.store_factory(profile))

    def _preview_node(self, node: Node) -> Node:
        """Offline copy of ``node`` seeded with its snapshot; nothing it builds reaches the device."""
        preview = Node.abstract(node.name, self.resolver, profile=node.profile)
        preview.add_entries(node.snapshot.entries())
        return preview

    async def run(
        self,
        device: str,
        build: BuildFn,
        options: Optional[ExecuteOptions] = None,
    ) -> ExecuteResult:
        """
        Build a change-set on ``device`` and preview or apply it.

        Dry-run builds against a copy of the device's current snapshot and
        never takes the lock. Execute mode locks, builds, applies, unlocks,
        then verifies over a fresh connection.

        Args:
            device: Inventory device name
            build: Operation producing a ChangeSet from a Node
            options: Dry-run, verification and audit settings

        Returns:
            ExecuteResult with success/failure and details
        """
        options = options or ExecuteOptions()
        result = ExecuteResult(device=device, dry_run=options.dry_run)
        tracker = ChangeTracker(device, options.user or "")
        built: list[ChangeSet] = []

        def build_on(target: Node) -> ChangeSet:
            cs = build(target)
            built.append(cs)
            return cs

        node = self.node(device)
        try:
            await node.connect()
            if options.dry_run:
                logger.info(f"DRY RUN: building changes for {device}")
                build_on(self._preview_node(node))
            else:
                cs = await node.execute_op(lambda: build_on(node))
                if options.verify and verify_enabled() and not cs.is_empty:
                    await node.verify(cs)
        except ApplyError as e:
            result.error = str(e)
            result.error_context = f"{e.applied_count} changes were applied before the failure; no rollback performed"
        except SonicIntentError as e:
            result.error = str(e)
        finally:
            await node.disconnect()

        cs = built[-1] if built else None
        if cs is not None:
            result.operation = cs.operation
            result.changes = [str(c) for c in cs.changes]
            result.applied_count = cs.applied_count
            result.preview = summarize_changes(cs)
            if cs.verification is not None:
                result.verification = cs.verification.to_dict()

        verified = cs is None or cs.verification is None or cs.verification.ok
        result.success = result.error is None and verified
        if not verified:
            result.error = f"verification failed: {cs.verification.failed} changes did not converge"

        tracker.log_changeset(
            cs,
            dry_run=options.dry_run,
            success=result.success,
            error=result.error,
            context={"audit_context": options.audit_context} if options.audit_context else None,
        )
        return result

    async def deliver(
        self,
        device: str,
        composite: CompositeConfig,
        mode: Optional[CompositeMode] = None,
        verify: bool = True,
    ) -> CompositeDeliveryResult:
        """Deliver a composite under the device lock, then verify it."""
        node = self.node(device)
        await node.connect()
        try:
            await node.lock()
            try:
                result = await deliver_composite(node, composite, mode)
            finally:
                await node.unlock()
            if verify and result.success and verify_enabled():
                verification = await verify_composite(node, composite)
                if not verification.ok:
                    result.error = f"verification failed: {verification.failed} entries did not converge"
        finally:
            await node.disconnect()
        return result

    async def drift(self, device: str, composite: CompositeConfig) -> DriftReport:
        """Compare the device against ``composite`` within the tables it names."""
        node = self.node(device)
        await node.connect()
        try:
            items = diff_tables(composite.tables, node.snapshot, tables.MERGE_ONLY_TABLES)
        finally:
            await node.disconnect()
        report = DriftReport(device=device, checked_at=datetime.now(timezone.utc), items=items)
        logger.info(report.summary())
        return report
