"""CONFIG_DB data model: entries, typed keys, snapshots and change-sets."""
from . import keys, tables
from .binding import ServiceBinding
from .changeset import ChangeSet, VerificationError, VerificationResult
from .entry import Change, ChangeType, ConfigEntry
from .snapshot import ConfigSnapshot

__all__ = [
    "keys",
    "tables",
    "ConfigEntry",
    "ChangeType",
    "Change",
    "ChangeSet",
    "ConfigSnapshot",
    "ServiceBinding",
    "VerificationError",
    "VerificationResult",
]
