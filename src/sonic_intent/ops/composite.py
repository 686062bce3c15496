"""Composite configurations: whole CONFIG_DB images built offline and delivered in one step.

An abstract node runs ordinary operations against an empty shadow snapshot;
``Node.build_composite`` then exports the result. Delivery either overwrites
every table the composite touches or merges new entries into a device whose
target interfaces are still unbound.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, Optional, Union

import yaml

from ..config_db import tables
from ..config_db.changeset import ChangeSet, VerificationResult
from ..config_db.entry import Change, ChangeType, ConfigEntry
from ..errors import CompositeError, StoreError

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)

TableData = dict[str, dict[str, dict[str, str]]]


class CompositeMode(str, Enum):
    OVERWRITE = "overwrite"
    MERGE = "merge"


@dataclass
class CompositeMetadata:
    """Provenance of a composite config."""
    device_name: str = ""
    mode: CompositeMode = CompositeMode.OVERWRITE
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    network_name: str = ""
    generated_by: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        data = {"timestamp": self.timestamp.isoformat(), "mode": self.mode.value}
        for name in ("network_name", "device_name", "generated_by", "description"):
            if getattr(self, name):
                data[name] = getattr(self, name)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "CompositeMetadata":
        timestamp = data.get("timestamp")
        try:
            mode = CompositeMode(data.get("mode", CompositeMode.OVERWRITE.value))
        except ValueError:
            raise CompositeError(f"unknown composite mode: {data.get('mode')}")
        return cls(
            device_name=data.get("device_name", ""),
            mode=mode,
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.now(timezone.utc),
            network_name=data.get("network_name", ""),
            generated_by=data.get("generated_by", ""),
            description=data.get("description", ""),
        )


@dataclass
class CompositeConfig:
    tables: TableData = field(default_factory=dict)
    metadata: CompositeMetadata = field(default_factory=CompositeMetadata)

    @property
    def entry_count(self) -> int:
        return sum(len(rows) for rows in self.tables.values())

    def entries(self) -> Iterator[ConfigEntry]:
        for table, rows in self.tables.items():
            for key, fields in rows.items():
                yield ConfigEntry(table, key, dict(fields))

    def to_changes(self) -> list[Change]:
        """Every entry as an Add, for verification."""
        return [Change(e.table, e.key, ChangeType.ADD, new_value=e.fields) for e in self.entries()]

    def to_dict(self) -> dict:
        return {"tables": self.tables, "metadata": self.metadata.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "CompositeConfig":
        rows = data.get("tables") or {}
        return cls(
            tables={
                table: {key: {k: str(v) for k, v in (fields or {}).items()} for key, fields in keys.items()}
                for table, keys in rows.items()
            },
            metadata=CompositeMetadata.from_dict(data.get("metadata") or {}),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def write(self, path: Union[str, Path]) -> Path:
        """Save as YAML for .yaml/.yml paths, JSON otherwise."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        text = self.to_yaml() if path.suffix in (".yaml", ".yml") else self.to_json()
        path.write_text(text)
        logger.info(f"Wrote composite for {self.metadata.device_name or 'unnamed device'} "
                    f"({self.entry_count} entries) to {path}")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "CompositeConfig":
        path = Path(path)
        text = path.read_text()
        try:
            data = yaml.safe_load(text) if path.suffix in (".yaml", ".yml") else json.loads(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise CompositeError(f"cannot parse composite {path}: {e}") from e
        if not isinstance(data, dict):
            raise CompositeError(f"composite {path} is not a mapping")
        return cls.from_dict(data)


class CompositeBuilder:
    """Accumulates entries offline; fields of repeated keys are merged."""

    def __init__(self, device_name: str, mode: CompositeMode = CompositeMode.OVERWRITE):
        self._tables: TableData = {}
        self._metadata = CompositeMetadata(device_name=device_name, mode=mode)

    def set_description(self, description: str) -> "CompositeBuilder":
        self._metadata.description = description
        return self

    def set_generated_by(self, generated_by: str) -> "CompositeBuilder":
        self._metadata.generated_by = generated_by
        return self

    def set_network_name(self, network_name: str) -> "CompositeBuilder":
        self._metadata.network_name = network_name
        return self

    def add_entry(self, table: str, key: str, fields: Optional[dict[str, str]] = None) -> "CompositeBuilder":
        self._tables.setdefault(table, {}).setdefault(key, {}).update(fields or {})
        return self

    def add_entries(self, entries: Iterable[ConfigEntry]) -> "CompositeBuilder":
        for e in entries:
            self.add_entry(e.table, e.key, e.fields)
        return self

    def build(self) -> CompositeConfig:
        return CompositeConfig(
            tables={t: {k: dict(f) for k, f in rows.items()} for t, rows in self._tables.items()},
            metadata=CompositeMetadata(**vars(self._metadata)),
        )


@dataclass
class CompositeDeliveryResult:
    mode: CompositeMode
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error and self.failed == 0

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
            "error": self.error or None,
        }


def merge_conflicts(node: "Node", composite: CompositeConfig) -> list[str]:
    """Interfaces the composite would bind that already carry a service."""
    conflicts = []
    for interface in sorted(composite.tables.get(tables.SERVICE_BINDING, {})):
        existing = node.interface_binding(interface)
        if existing is not None:
            conflicts.append(
                f"interface {interface} already has service '{existing.service_name}' bound"
                f" - remove existing service before merge"
            )
    return conflicts


async def deliver_composite(
    node: "Node", composite: CompositeConfig, mode: Optional[CompositeMode] = None
) -> CompositeDeliveryResult:
    """Write ``composite`` to the device in one step.

    Overwrite deletes keys the composite does not list from every table it
    touches, except merge-only tables such as PORT. Merge refuses to run if
    any target interface already has a service bound.

    Raises:
        CompositeError: unknown mode or merge conflicts
        PreconditionError: node not connected or not locked
    """
    requested = mode or composite.metadata.mode
    node.precondition("deliver-composite", str(getattr(requested, "value", requested))).raise_if_failed()
    try:
        mode = CompositeMode(requested)
    except ValueError:
        raise CompositeError(f"unknown composite mode: {requested}")
    result = CompositeDeliveryResult(mode=mode)
    count = composite.entry_count

    if mode == CompositeMode.MERGE:
        conflicts = merge_conflicts(node, composite)
        if conflicts:
            raise CompositeError(conflicts[0], conflicts)

    if node.offline:
        node.add_entries(composite.entries())
        result.applied = count
        return result

    try:
        if mode == CompositeMode.OVERWRITE:
            await node.store.replace_all(composite.tables, tables.MERGE_ONLY_TABLES)
        else:
            await node.store.pipeline_set(list(composite.entries()))
    except StoreError as e:
        logger.error(f"{node.name}: composite delivery ({mode.value}) failed: {e}")
        result.failed = count
        result.error = str(e)
        return result

    result.applied = count
    logger.info(f"{node.name}: delivered composite ({mode.value}, {count} entries)")
    return result


async def verify_composite(node: "Node", composite: CompositeConfig) -> VerificationResult:
    cs = ChangeSet(node.name, "composite.verify", changes=composite.to_changes())
    return await node.verify(cs)
