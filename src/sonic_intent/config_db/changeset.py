"""Change-sets: the ordered unit of work written to a device."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from .entry import Change, ChangeType, ConfigEntry


# --- Verification ---

@dataclass
class VerificationError:
    """One mismatch between what was written and what the store holds."""
    table: str
    key: str
    field: str
    expected: str
    actual: str

    def __str__(self) -> str:
        return f"{self.table}|{self.key} {self.field}: expected {self.expected!r}, got {self.actual!r}"


@dataclass
class VerificationResult:
    passed: int = 0
    failed: int = 0
    errors: list[VerificationError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "passed": self.passed,
            "failed": self.failed,
            "errors": [
                {"table": e.table, "key": e.key, "field": e.field,
                 "expected": e.expected, "actual": e.actual}
                for e in self.errors
            ],
        }


# --- Change-set ---

@dataclass
class ChangeSet:
    """Ordered changes produced by one operation on one device.

    Changes are kept in emission order, which is already dependency order;
    nothing here sorts them.
    """
    device: str
    operation: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    changes: list[Change] = field(default_factory=list)
    applied_count: int = 0
    verification: Optional[VerificationResult] = None

    @classmethod
    def from_entries(
        cls,
        device: str,
        operation: str,
        entries: Iterable[ConfigEntry],
        change_type: ChangeType = ChangeType.ADD,
    ) -> "ChangeSet":
        cs = cls(device=device, operation=operation)
        if change_type == ChangeType.DELETE:
            cs.deletes(entries)
        elif change_type == ChangeType.MODIFY:
            cs.updates(entries)
        else:
            cs.adds(entries)
        return cs

    def add(self, table: str, key: str, fields: Optional[dict[str, str]] = None) -> "ChangeSet":
        self.changes.append(Change(table, key, ChangeType.ADD, new_value=dict(fields or {})))
        return self

    def update(self, table: str, key: str, fields: dict[str, str]) -> "ChangeSet":
        self.changes.append(Change(table, key, ChangeType.MODIFY, new_value=dict(fields)))
        return self

    def delete(self, table: str, key: str) -> "ChangeSet":
        self.changes.append(Change(table, key, ChangeType.DELETE))
        return self

    def adds(self, entries: Iterable[ConfigEntry]) -> "ChangeSet":
        for e in entries:
            self.add(e.table, e.key, e.fields)
        return self

    def updates(self, entries: Iterable[ConfigEntry]) -> "ChangeSet":
        for e in entries:
            self.update(e.table, e.key, e.fields)
        return self

    def deletes(self, entries: Iterable[ConfigEntry]) -> "ChangeSet":
        for e in entries:
            self.delete(e.table, e.key)
        return self

    def merge(self, other: "ChangeSet") -> "ChangeSet":
        self.changes.extend(other.changes)
        return self

    def net_changes(self) -> list[Change]:
        """One change per key: what the store holds once every change has landed.

        A later Delete wins outright. An Add or Modify after a Delete starts
        the key afresh; otherwise its fields merge over the earlier ones.
        Keys are ordered by their last change.
        """
        net: dict[str, Change] = {}
        for c in self.changes:
            prev = net.pop(c.path, None)
            if c.type == ChangeType.DELETE or prev is None or prev.type == ChangeType.DELETE:
                net[c.path] = c
                continue
            fields = dict(prev.new_value or {})
            fields.update(c.new_value or {})
            net[c.path] = Change(c.table, c.key, prev.type, new_value=fields)
        return list(net.values())

    @property
    def is_empty(self) -> bool:
        return not self.changes

    def __len__(self) -> int:
        return len(self.changes)

    def __iter__(self):
        return iter(self.changes)

    def __str__(self) -> str:
        if not self.changes:
            return "No changes"
        return "\n".join(f"  {c}" for c in self.changes)

    def preview(self) -> str:
        """Human-readable rendering used by dry-run output."""
        return "\n".join([
            f"Operation: {self.operation}",
            f"Device: {self.device}",
            f"Changes ({len(self.changes)}):",
            str(self),
        ])

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat(),
            "changes": [c.to_dict() for c in self.changes],
            "applied_count": self.applied_count,
            "verification": self.verification.to_dict() if self.verification else None,
        }
