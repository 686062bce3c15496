"""Change-set summaries and CONFIG_DB drift calculation."""
from collections import Counter

from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType
from ..config_db.snapshot import ConfigSnapshot
from .schema import DriftItem

MARKERS = {ChangeType.ADD: "[+]", ChangeType.MODIFY: "[~]", ChangeType.DELETE: "[-]"}


def summarize_changes(cs: ChangeSet) -> str:
    """
    Create a human-readable summary of a change-set.

    Useful for dry-run output and logging.
    """
    if cs.is_empty:
        return "No changes needed"

    counts = Counter(c.type for c in cs.changes)
    lines = [
        f"{cs.operation} on {cs.device}: {len(cs)} changes "
        f"({counts[ChangeType.ADD]} add, {counts[ChangeType.MODIFY]} modify, "
        f"{counts[ChangeType.DELETE]} delete)",
        "",
    ]
    for change in cs.changes:
        line = f"  {MARKERS[change.type]} {change.path}"
        if change.type != ChangeType.DELETE and change.new_value:
            line += "  " + ", ".join(f"{k}={v}" for k, v in sorted(change.new_value.items()))
        lines.append(line)
    return "\n".join(lines)


def diff_tables(
    expected: dict[str, dict[str, dict[str, str]]],
    actual: ConfigSnapshot,
    merge_only: frozenset = frozenset(),
) -> list[DriftItem]:
    """Differences within the tables ``expected`` names.

    Keys only the device has count as extra, except in merge-only tables.
    Fields only the device has are not drift.
    """
    items = []
    for table in sorted(expected):
        rows = expected[table]
        for key in sorted(rows):
            want = rows[key]
            have = actual.get(table, key)
            if have is None:
                items.append(DriftItem(table, key, "missing", expected=want))
                continue
            changed = {k: v for k, v in want.items() if have.get(k) != v}
            if changed:
                items.append(DriftItem(
                    table, key, "modified",
                    expected=changed, actual={k: have.get(k, "") for k in changed},
                ))
        if table in merge_only:
            continue
        for key in sorted(set(actual.keys(table)) - set(rows)):
            items.append(DriftItem(table, key, "extra", actual=actual.get(table, key)))
    return items
