"""In-process configuration store.

A MemoryBackend plays the role of the device; every MemoryStore opened on it
is an independent connection that sees the same data. Tests use it in place
of a switch, including the separate connection verification opens.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Optional

from ..config_db.entry import ConfigEntry
from ..config_db.snapshot import ConfigSnapshot
from ..errors import DeviceLockedError, NotConnectedError, StoreError
from .base import NULL_FIELD, ConfigStore, Lease, decode_fields, encode_fields

logger = logging.getLogger(__name__)


class MemoryBackend:
    """Shared device state: CONFIG_DB tables plus lease records."""

    def __init__(self, tables: Optional[dict[str, dict[str, dict[str, str]]]] = None):
        self._lock = threading.Lock()
        self.db: dict[str, dict[str, dict[str, str]]] = {}
        self.leases: dict[str, Lease] = {}
        # (table, key) pairs whose writes fail, for exercising partial apply
        self.fail_writes: set[tuple[str, str]] = set()
        for table, rows in (tables or {}).items():
            for key, fields in rows.items():
                self.db.setdefault(table, {})[key] = encode_fields(fields)

    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return ConfigSnapshot({
                table: {key: decode_fields(fields) for key, fields in rows.items()}
                for table, rows in self.db.items()
            })

    def set(self, table: str, key: str, fields: dict[str, str]) -> None:
        with self._lock:
            if (table, key) in self.fail_writes:
                raise StoreError(f"write rejected for {table}|{key}")
            row = self.db.setdefault(table, {}).setdefault(key, {})
            if fields:
                row.pop(NULL_FIELD, None)
                row.update(fields)
            elif not row:
                row.update(encode_fields(fields))

    def delete(self, table: str, key: str) -> None:
        with self._lock:
            if (table, key) in self.fail_writes:
                raise StoreError(f"delete rejected for {table}|{key}")
            rows = self.db.get(table)
            if rows is not None:
                rows.pop(key, None)
                if not rows:
                    del self.db[table]

    def get(self, table: str, key: str) -> Optional[dict[str, str]]:
        with self._lock:
            fields = self.db.get(table, {}).get(key)
            return decode_fields(fields) if fields is not None else None

    def acquire(self, device: str, holder: str, ttl: int) -> Lease:
        with self._lock:
            current = self.leases.get(device)
            if current and current.holder != holder and not current.expired():
                raise DeviceLockedError(device, current.holder)
            lease = Lease(holder=holder, ttl=ttl, acquired_at=datetime.now(timezone.utc))
            self.leases[device] = lease
            return lease

    def release(self, device: str, holder: str) -> None:
        with self._lock:
            current = self.leases.get(device)
            if current is None:
                return
            if current.holder != holder:
                raise DeviceLockedError(device, current.holder)
            del self.leases[device]


class MemoryStore(ConfigStore):
    """One connection to a MemoryBackend."""

    def __init__(self, backend: MemoryBackend):
        self.backend = backend
        self._connected = False

    def _require(self) -> MemoryBackend:
        if not self._connected:
            raise NotConnectedError()
        return self.backend

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    async def get(self, table: str, key: str) -> Optional[dict[str, str]]:
        return self._require().get(table, key)

    async def set(self, table: str, key: str, fields: dict[str, str]) -> None:
        self._require().set(table, key, fields)

    async def delete(self, table: str, key: str) -> None:
        self._require().delete(table, key)

    async def exists(self, table: str, key: str) -> bool:
        return self._require().get(table, key) is not None

    async def get_all(self) -> ConfigSnapshot:
        return self._require().snapshot()

    async def pipeline_set(self, entries: list[ConfigEntry]) -> None:
        backend = self._require()
        for entry in entries:
            backend.set(entry.table, entry.key, entry.fields)

    async def replace_all(self, tables, merge_only: frozenset = frozenset()) -> None:
        backend = self._require()
        current = backend.snapshot()
        for table, rows in tables.items():
            if table not in merge_only:
                for stale in set(current.keys(table)) - set(rows):
                    backend.delete(table, stale)
            for key, fields in rows.items():
                backend.set(table, key, fields)

    async def lock(self, device: str, holder: str, ttl: int) -> Lease:
        return self._require().acquire(device, holder, ttl)

    async def unlock(self, device: str, holder: str) -> None:
        self._require().release(device, holder)


def memory_store_factory(backend: MemoryBackend):
    """Build a store factory that opens fresh connections to ``backend``."""
    def factory() -> MemoryStore:
        return MemoryStore(backend)
    return factory
