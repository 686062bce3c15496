"""Configuration entries and change records."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ChangeType(str, Enum):
    """How a change is written to the store."""
    ADD = "add"
    MODIFY = "modify"
    DELETE = "delete"


@dataclass
class ConfigEntry:
    """One row of a CONFIG_DB table."""
    table: str
    key: str
    fields: dict[str, str] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return f"{self.table}|{self.key}"


@dataclass
class Change:
    """A single entry-level change inside a ChangeSet."""
    table: str
    key: str
    type: ChangeType
    old_value: Optional[dict[str, str]] = None
    new_value: Optional[dict[str, str]] = None

    @property
    def path(self) -> str:
        return f"{self.table}|{self.key}"

    def __str__(self) -> str:
        tag = {
            ChangeType.ADD: "[ADD]",
            ChangeType.MODIFY: "[MOD]",
            ChangeType.DELETE: "[DEL]",
        }[self.type]
        line = f"{tag} {self.path}"
        if self.type != ChangeType.DELETE and self.new_value:
            fields = ", ".join(f"{k}={v}" for k, v in sorted(self.new_value.items()))
            line += f" → {{{fields}}}"
        return line

    def to_dict(self) -> dict:
        return {
            "table": self.table,
            "key": self.key,
            "type": self.type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
        }
