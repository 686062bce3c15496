"""Device session: snapshot, lease lock, apply and verify.

A write episode is ``lock`` (which re-reads the device), build a change-set
from the snapshot, ``apply`` it, ``unlock``. Operations never re-read the
device in between, so every decision inside an episode sees the state as it
was when the lease was taken.

An abstract node has no device behind it. It starts from an empty snapshot,
counts as connected and locked, and folds every change-set its operations
produce back into the snapshot so later operations build on earlier ones.
"""
import getpass
import logging
import os
import socket
import threading
from typing import Callable, Iterable, Optional

from ..config_db import keys, tables
from ..config_db.binding import ServiceBinding
from ..config_db.changeset import ChangeSet, VerificationError, VerificationResult
from ..config_db.entry import ChangeType, ConfigEntry
from ..config_db.snapshot import ConfigSnapshot
from ..errors import ApplyError, NotConnectedError, SpecNotFoundError, StoreError
from ..spec.inventory import DEFAULT_LOCK_TTL, DeviceProfile
from ..spec.resolver import SpecResolver
from ..spec.schema import PlatformSpec
from ..store.base import ConfigStore, Lease
from ..utils.logging_config import timed
from ..utils.naming import normalize_interface_name
from .dependency import DependencyChecker
from .interface import Interface
from .precondition import PreconditionChecker

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], ConfigStore]


def default_holder() -> str:
    """Lease holder identity, ``user@host``."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"
    return f"{user}@{socket.gethostname()}"


def lock_ttl_from_env(default: int = DEFAULT_LOCK_TTL) -> int:
    try:
        return int(os.environ.get("SONIC_INTENT_LOCK_TTL", default))
    except ValueError:
        return default


class Node:
    """One device and its configuration session."""

    def __init__(
        self,
        name: str,
        resolver: SpecResolver,
        profile: Optional[DeviceProfile] = None,
        store_factory: Optional[StoreFactory] = None,
        holder: Optional[str] = None,
        offline: bool = False,
    ):
        self.name = name
        self.resolver = resolver
        self.profile = profile or DeviceProfile(name=name)
        self.holder = holder or default_holder()
        self._store_factory = store_factory
        self._store: Optional[ConfigStore] = None
        self._offline = offline
        self._mutex = threading.RLock()
        self._snapshot = ConfigSnapshot()
        self._connected = False
        self._locked = False
        self._lease: Optional[Lease] = None

    @classmethod
    def abstract(
        cls, name: str, resolver: SpecResolver, profile: Optional[DeviceProfile] = None
    ) -> "Node":
        """A node with no device, used to build composite configs offline."""
        return cls(name, resolver, profile=profile, offline=True)

    def __repr__(self) -> str:
        mode = "offline" if self._offline else ("locked" if self.is_locked else "online")
        return f"Node({self.name}, {mode})"

    # --- Session state ---

    @property
    def offline(self) -> bool:
        return self._offline

    @property
    def is_connected(self) -> bool:
        with self._mutex:
            return self._offline or self._connected

    @property
    def is_locked(self) -> bool:
        with self._mutex:
            return self._offline or self._locked

    @property
    def lease(self) -> Optional[Lease]:
        with self._mutex:
            return self._lease

    @property
    def snapshot(self) -> ConfigSnapshot:
        with self._mutex:
            return self._snapshot

    @property
    def store(self) -> ConfigStore:
        if self._store is None:
            raise NotConnectedError(self.name)
        return self._store

    def _new_store(self) -> ConfigStore:
        if self._store_factory is None:
            raise NotConnectedError(self.name)
        return self._store_factory()

    def precondition(self, operation: str, resource: str) -> PreconditionChecker:
        """Checker pre-loaded with the connected and locked requirements."""
        return PreconditionChecker(self, operation, resource).require_connected().require_locked()

    def dependencies(self, exclude_interface: str = "") -> DependencyChecker:
        return DependencyChecker(self, exclude_interface)

    # --- Connection ---

    @timed("connect")
    async def connect(self) -> None:
        if self._offline or self.is_connected:
            return
        store = self._new_store()
        await store.connect()
        snapshot = await store.get_all()
        with self._mutex:
            self._store = store
            self._snapshot = snapshot
            self._connected = True
        logger.info(f"Connected to {self.name} ({snapshot.entry_count} entries)")

    async def disconnect(self) -> None:
        if self._offline or not self.is_connected:
            return
        if self.is_locked:
            await self.unlock()
        await self.store.close()
        with self._mutex:
            self._store = None
            self._connected = False
        logger.info(f"Disconnected from {self.name}")

    async def refresh(self) -> None:
        """Replace the snapshot with a fresh read of the device."""
        if self._offline:
            return
        snapshot = await self.store.get_all()
        with self._mutex:
            self._snapshot = snapshot

    # --- Lock ---

    @timed("lock")
    async def lock(self, ttl: Optional[int] = None) -> None:
        """Take the device lease and re-read the device under it."""
        if self._offline:
            return
        if not self.is_connected:
            raise NotConnectedError(self.name)
        if self.is_locked:
            return

        ttl = ttl or self.profile.lock_ttl or lock_ttl_from_env()
        lease = await self.store.lock(self.name, self.holder, ttl)
        try:
            snapshot = await self.store.get_all()
        except Exception as e:
            await self._release(lease)
            raise StoreError(f"refresh config_db after lock: {e}") from e

        with self._mutex:
            self._lease = lease
            self._locked = True
            self._snapshot = snapshot
        logger.info(f"Locked {self.name} as {self.holder} (ttl={ttl}s)")

    async def unlock(self) -> None:
        if self._offline or not self.is_locked:
            return
        with self._mutex:
            lease = self._lease
            self._lease = None
            self._locked = False
        if lease is not None:
            await self._release(lease)
        logger.info(f"Unlocked {self.name}")

    async def _release(self, lease: Lease) -> None:
        try:
            await self.store.unlock(self.name, lease.holder)
        except Exception as e:
            logger.warning(f"Failed to release lock on {self.name}: {e}")

    # --- Write episode ---

    @timed("apply")
    async def apply(self, cs: ChangeSet) -> ChangeSet:
        """Write ``cs`` in order; stops at the first failure.

        Writes already made stay on the device; ``cs.applied_count`` and the
        raised ApplyError both say how far it got.
        """
        self.precondition("apply-changeset", self.name).raise_if_failed()
        cs.applied_count = 0
        if self._offline:
            return cs

        for change in cs.changes:
            try:
                if change.type == ChangeType.DELETE:
                    await self.store.delete(change.table, change.key)
                else:
                    await self.store.set(change.table, change.key, change.new_value or {})
            except Exception as e:
                logger.error(
                    f"{self.name}: apply stopped at {change.path} after "
                    f"{cs.applied_count}/{len(cs)} changes: {e}"
                )
                raise ApplyError(change.table, change.key, e, cs.applied_count) from e
            cs.applied_count += 1

        logger.info(f"{self.name}: applied {cs.applied_count} changes ({cs.operation})")
        return cs

    async def execute_op(self, fn: Callable[[], ChangeSet]) -> ChangeSet:
        """Lock, build a change-set with ``fn``, apply it, always unlock."""
        await self.lock()
        try:
            cs = fn()
            if not cs.is_empty:
                await self.apply(cs)
            return cs
        finally:
            await self.unlock()

    @timed("verify")
    async def verify(self, cs: ChangeSet) -> VerificationResult:
        """Re-read every changed key over a separate connection and compare."""
        if self._offline:
            snapshot = self.snapshot

            async def read(table: str, key: str):
                return snapshot.get(table, key)

            result = await self._verify_with(cs, read)
        else:
            store = self._new_store()
            await store.connect()
            try:
                result = await self._verify_with(cs, store.get)
            finally:
                await store.close()

        cs.verification = result
        if result.failed:
            for err in result.errors:
                logger.warning(f"{self.name}: verification mismatch: {err}")
        else:
            logger.info(f"{self.name}: verified {result.passed} changes")
        return result

    @staticmethod
    async def _verify_with(cs: ChangeSet, read) -> VerificationResult:
        # a key deleted then re-added is checked once, against its final state
        result = VerificationResult()
        for change in cs.net_changes():
            actual = await read(change.table, change.key)
            if change.type == ChangeType.DELETE:
                if actual is None:
                    result.passed += 1
                else:
                    result.failed += 1
                    result.errors.append(
                        VerificationError(change.table, change.key, "(all)", "absent", "present")
                    )
                continue

            if actual is None:
                result.failed += 1
                result.errors.append(
                    VerificationError(change.table, change.key, "(all)", "present", "")
                )
                continue

            mismatches = [
                VerificationError(change.table, change.key, name, expected, actual.get(name, ""))
                for name, expected in (change.new_value or {}).items()
                if actual.get(name) != expected
            ]
            if mismatches:
                result.failed += 1
                result.errors.extend(mismatches)
            else:
                result.passed += 1
        return result

    # --- Offline shadow ---

    def track_offline(self, cs: ChangeSet) -> ChangeSet:
        """Fold ``cs`` into the shadow snapshot of an abstract node."""
        if self._offline and cs is not None:
            with self._mutex:
                self._snapshot.apply_changes(cs.changes)
        return cs

    def register_port(self, name: str, fields: Optional[dict[str, str]] = None) -> Interface:
        """Declare a front-panel port on an abstract node."""
        with self._mutex:
            self._snapshot.apply_entries([ConfigEntry(tables.PORT, name, dict(fields or {}))])
        return Interface(self, name)

    def add_entries(self, entries: Iterable[ConfigEntry]) -> None:
        """Add raw entries to an abstract node's shadow; ignored online."""
        if not self._offline:
            return
        with self._mutex:
            self._snapshot.apply_entries(entries)

    def build_composite(self, description: str = ""):
        """Export the shadow state as an overwrite composite."""
        from ..ops.composite import CompositeBuilder, CompositeMode

        builder = CompositeBuilder(self.name, CompositeMode.OVERWRITE).set_generated_by("abstract-node")
        if description:
            builder.set_description(description)
        return builder.add_entries(self.snapshot.entries()).build()

    # --- Queries ---

    def platform(self) -> Optional[PlatformSpec]:
        if not self.profile.platform:
            return None
        try:
            return self.resolver.get_platform(self.profile.platform)
        except SpecNotFoundError:
            return None

    def interface(self, name: str) -> Interface:
        return Interface(self, normalize_interface_name(name))

    def list_interfaces(self) -> list[str]:
        snap = self.snapshot
        return sorted(snap.keys(tables.PORT)) + sorted(snap.keys(tables.PORTCHANNEL))

    def interface_exists(self, name: str) -> bool:
        snap = self.snapshot
        return any(
            snap.has(table, name)
            for table in (tables.PORT, tables.PORTCHANNEL, tables.VLAN, tables.LOOPBACK_INTERFACE)
        )

    def interface_lag(self, name: str) -> str:
        """PortChannel that ``name`` belongs to, or ""."""
        suffix = keys.SEPARATOR + name
        for key in self.snapshot.keys(tables.PORTCHANNEL_MEMBER):
            if key.endswith(suffix):
                return key[: -len(suffix)]
        return ""

    def interface_binding(self, name: str) -> Optional[ServiceBinding]:
        fields = self.snapshot.get(tables.SERVICE_BINDING, name)
        return ServiceBinding.from_fields(fields) if fields is not None else None

    def interface_has_service(self, name: str) -> bool:
        return self.snapshot.has(tables.SERVICE_BINDING, name)

    def vlan_exists(self, vlan_id: int) -> bool:
        return self.snapshot.has(tables.VLAN, keys.vlan_name(vlan_id))

    def vrf_exists(self, name: str) -> bool:
        return self.snapshot.has(tables.VRF, name)

    def vtep_exists(self) -> bool:
        return bool(self.snapshot.keys(tables.VXLAN_TUNNEL))

    def bgp_configured(self) -> bool:
        return self.snapshot.has(tables.BGP_GLOBALS, tables.DEFAULT_VRF)

    def acl_table_exists(self, name: str) -> bool:
        return self.snapshot.has(tables.ACL_TABLE, name)

    def portchannel_exists(self, name: str) -> bool:
        return self.snapshot.has(tables.PORTCHANNEL, name)
