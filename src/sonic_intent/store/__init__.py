"""Configuration store backends."""
from .base import NULL_FIELD, ConfigStore, Lease, lock_key
from .memory import MemoryBackend, MemoryStore, memory_store_factory
from .ssh import SSHRedisStore, ssh_store_factory

__all__ = [
    "ConfigStore",
    "Lease",
    "NULL_FIELD",
    "lock_key",
    # In-process
    "MemoryBackend",
    "MemoryStore",
    "memory_store_factory",
    # Device
    "SSHRedisStore",
    "ssh_store_factory",
]
