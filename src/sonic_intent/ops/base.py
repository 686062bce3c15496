"""Shared scaffolding for node operations."""
import logging
from typing import TYPE_CHECKING, Callable, Iterable

from ..config_db.changeset import ChangeSet
from ..config_db.entry import ChangeType, ConfigEntry
from ..node.precondition import PreconditionChecker

if TYPE_CHECKING:
    from ..node.node import Node

logger = logging.getLogger(__name__)


def run_op(
    node: "Node",
    operation: str,
    resource: str,
    change_type: ChangeType,
    precheck: Callable[[PreconditionChecker], object],
    build: Callable[[], Iterable[ConfigEntry]],
    scope: str = "device",
) -> ChangeSet:
    """Check preconditions, build entries, wrap them in a single-type change-set.

    The change-set is named ``{scope}.{operation}`` and is folded into the
    shadow snapshot when the node is abstract.
    """
    checker = node.precondition(operation, resource)
    precheck(checker)
    checker.raise_if_failed()
    cs = ChangeSet.from_entries(node.name, f"{scope}.{operation}", build(), change_type)
    return node.track_offline(cs)


def entry(table: str, key: str, fields=None) -> ConfigEntry:
    return ConfigEntry(table, key, dict(fields or {}))
