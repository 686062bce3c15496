"""In-memory image of a device's CONFIG_DB."""
import copy
from typing import Iterable, Iterator, Optional

from .entry import Change, ChangeType, ConfigEntry

TableData = dict[str, dict[str, str]]


class ConfigSnapshot:
    """Tables of keys of fields, as last read from the store.

    A snapshot is replaced wholesale on connect, lock and refresh. The only
    in-place mutation is ``apply_entries`` / ``apply_changes``, which the
    offline path uses to fold generated changes back into the shadow state.
    """

    def __init__(self, tables: Optional[dict[str, TableData]] = None):
        self._tables: dict[str, TableData] = {}
        for table, rows in (tables or {}).items():
            self._tables[table] = {key: dict(fields) for key, fields in rows.items()}

    # --- Reads ---

    def table(self, name: str) -> TableData:
        """Rows of ``name``; empty dict if the table is absent. Do not mutate."""
        return self._tables.get(name, {})

    def get(self, table: str, key: str) -> Optional[dict[str, str]]:
        return self._tables.get(table, {}).get(key)

    def field(self, table: str, key: str, name: str, default: str = "") -> str:
        fields = self.get(table, key)
        if fields is None:
            return default
        return fields.get(name, default)

    def has(self, table: str, key: str) -> bool:
        return key in self._tables.get(table, {})

    def keys(self, table: str) -> list[str]:
        return list(self._tables.get(table, {}))

    def keys_with_prefix(self, table: str, prefix: str) -> list[str]:
        return [k for k in self._tables.get(table, {}) if k.startswith(prefix)]

    def tables(self) -> list[str]:
        return list(self._tables)

    def entries(self) -> Iterator[ConfigEntry]:
        for table, rows in self._tables.items():
            for key, fields in rows.items():
                yield ConfigEntry(table, key, dict(fields))

    @property
    def entry_count(self) -> int:
        return sum(len(rows) for rows in self._tables.values())

    def copy(self) -> "ConfigSnapshot":
        return ConfigSnapshot(self._tables)

    def to_dict(self) -> dict[str, TableData]:
        return copy.deepcopy(self._tables)

    # --- Writes ---

    def apply_entries(self, entries: Iterable[ConfigEntry]) -> None:
        """Merge entries into the snapshot, creating tables and keys as needed."""
        for entry in entries:
            rows = self._tables.setdefault(entry.table, {})
            rows.setdefault(entry.key, {}).update(entry.fields)

    def apply_changes(self, changes: Iterable[Change]) -> None:
        """Apply Add/Modify as field merges and Delete as key removal."""
        for change in changes:
            if change.type == ChangeType.DELETE:
                self.remove(change.table, change.key)
            else:
                self.apply_entries([ConfigEntry(change.table, change.key, change.new_value or {})])

    def remove(self, table: str, key: str) -> None:
        rows = self._tables.get(table)
        if rows is None:
            return
        rows.pop(key, None)
        if not rows:
            del self._tables[table]

    def __contains__(self, table: str) -> bool:
        return table in self._tables

    def __repr__(self) -> str:
        return f"ConfigSnapshot(tables={len(self._tables)}, entries={self.entry_count})"
