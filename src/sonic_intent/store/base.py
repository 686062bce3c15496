"""Configuration store interface."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config_db.entry import ConfigEntry
from ..config_db.snapshot import ConfigSnapshot

# Written for keys with no fields; the store cannot hold an empty hash.
NULL_FIELD = "NULL"


@dataclass
class Lease:
    """Exclusive write lease on one device."""
    holder: str
    ttl: int
    acquired_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime:
        return self.acquired_at + timedelta(seconds=self.ttl)

    def expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        left = self.expires_at - (now or datetime.now(timezone.utc))
        return max(left, timedelta(0))

    def to_fields(self) -> dict[str, str]:
        return {
            "holder": self.holder,
            "acquired": self.acquired_at.isoformat(),
            "ttl": str(self.ttl),
        }

    @classmethod
    def from_fields(cls, data: dict[str, str]) -> "Lease":
        acquired = data.get("acquired")
        return cls(
            holder=data.get("holder", ""),
            ttl=int(data.get("ttl") or 0),
            acquired_at=datetime.fromisoformat(acquired) if acquired else datetime.now(timezone.utc),
        )


def encode_fields(fields: dict[str, str]) -> dict[str, str]:
    """Replace an empty field map with the NULL sentinel."""
    return dict(fields) if fields else {NULL_FIELD: NULL_FIELD}


def decode_fields(fields: dict[str, str]) -> dict[str, str]:
    """Strip the NULL sentinel from a stored field map."""
    return {k: v for k, v in fields.items() if k != NULL_FIELD}


def lock_key(device: str) -> str:
    return f"INTENT_LOCK|{device}"


class ConfigStore(ABC):
    """Async access to one device's CONFIG_DB plus its lease lock.

    ``set`` is an upsert that merges fields into an existing key.
    """

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def get(self, table: str, key: str) -> Optional[dict[str, str]]:
        """Fields of ``table|key``, or None if absent."""

    @abstractmethod
    async def set(self, table: str, key: str, fields: dict[str, str]) -> None: ...

    @abstractmethod
    async def delete(self, table: str, key: str) -> None: ...

    @abstractmethod
    async def exists(self, table: str, key: str) -> bool: ...

    @abstractmethod
    async def get_all(self) -> ConfigSnapshot:
        """Read the whole database into a snapshot."""

    @abstractmethod
    async def pipeline_set(self, entries: list[ConfigEntry]) -> None:
        """Write many entries in one round trip."""

    @abstractmethod
    async def replace_all(self, tables: dict[str, dict[str, dict[str, str]]], merge_only: frozenset = frozenset()) -> None:
        """Make each given table hold exactly the given keys.

        Keys present on the device but absent from ``tables`` are deleted,
        except in tables listed in ``merge_only``.
        """

    @abstractmethod
    async def lock(self, device: str, holder: str, ttl: int) -> Lease:
        """Acquire the device lease; raises DeviceLockedError if held by someone else."""

    @abstractmethod
    async def unlock(self, device: str, holder: str) -> None:
        """Release the lease; a missing lease counts as released."""

    async def __aenter__(self) -> "ConfigStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
