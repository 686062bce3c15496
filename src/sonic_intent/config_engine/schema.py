"""Result and option types for the config engine."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


# --- Execution ---

@dataclass
class ExecuteOptions:
    """Options for one engine run."""
    dry_run: bool = False
    verify: bool = True
    audit_context: str = ""
    user: Optional[str] = None


@dataclass
class ExecuteResult:
    """Result of one engine run."""
    device: str = ""
    success: bool = False
    dry_run: bool = False
    operation: str = ""
    changes: list[str] = field(default_factory=list)
    applied_count: int = 0
    verification: Optional[dict] = None
    preview: str = ""
    error: Optional[str] = None
    error_context: Optional[str] = None

    @property
    def change_count(self) -> int:
        return len(self.changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "device": self.device,
            "success": self.success,
            "dry_run": self.dry_run,
            "operation": self.operation,
            "change_count": self.change_count,
            "changes": self.changes,
            "applied_count": self.applied_count,
            "verification": self.verification,
            "error": self.error,
            "error_context": self.error_context,
        }


# --- Drift ---

@dataclass
class DriftItem:
    """A single difference between expected and actual CONFIG_DB content."""
    table: str
    key: str
    drift_type: str  # 'missing', 'extra', 'modified'
    expected: Any = None
    actual: Any = None

    @property
    def path(self) -> str:
        return f"{self.table}|{self.key}"


@dataclass
class DriftReport:
    """Drift report comparing a composite against the device."""
    device: str
    checked_at: datetime
    items: list[DriftItem] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return not self.items

    @property
    def drift_count(self) -> int:
        return len(self.items)

    def summary(self) -> str:
        """Human-readable summary."""
        if self.in_sync:
            return f"{self.device}: IN SYNC"

        lines = [f"{self.device}: DRIFT ({self.drift_count} issues)"]
        for item in self.items[:5]:
            lines.append(f"  - {item.path}: {item.drift_type}")
        if self.drift_count > 5:
            lines.append(f"  ... and {self.drift_count - 5} more")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "checked_at": self.checked_at.isoformat(),
            "in_sync": self.in_sync,
            "items": [
                {"table": i.table, "key": i.key, "drift_type": i.drift_type,
                 "expected": i.expected, "actual": i.actual}
                for i in self.items
            ],
        }
