"""sonic-intent - service intents translated into SONiC CONFIG_DB changes.

Services, VPNs, filters and QoS policies are declared once in a network
spec. Operations translate them into ordered change-sets for one device;
a Node applies those under a lease lock and verifies the device converged.
"""

from .config_db import ChangeSet, ChangeType, ConfigEntry, ConfigSnapshot, ServiceBinding
from .config_engine import Engine, ExecuteOptions, ExecuteResult
from .errors import (
    ApplyError,
    CompositeError,
    DeviceLockedError,
    NotConnectedError,
    NotLockedError,
    PreconditionError,
    SonicIntentError,
    SpecLoadError,
    SpecNotFoundError,
    StoreConnectionError,
    StoreError,
    TranslationError,
    ValidationError,
)
from .node import Interface, Node
from .spec import DeviceInventory, DeviceProfile, NetworkSpec, SpecResolver
from .store import MemoryBackend, MemoryStore, SSHRedisStore, memory_store_factory

__version__ = "0.1.0"

__all__ = [
    # Sessions
    "Node",
    "Interface",
    "Engine",
    "ExecuteOptions",
    "ExecuteResult",
    # Data model
    "ChangeSet",
    "ChangeType",
    "ConfigEntry",
    "ConfigSnapshot",
    "ServiceBinding",
    # Spec and inventory
    "SpecResolver",
    "NetworkSpec",
    "DeviceInventory",
    "DeviceProfile",
    # Stores
    "MemoryBackend",
    "MemoryStore",
    "SSHRedisStore",
    "memory_store_factory",
    # Errors
    "SonicIntentError",
    "PreconditionError",
    "ValidationError",
    "TranslationError",
    "SpecNotFoundError",
    "SpecLoadError",
    "ApplyError",
    "NotConnectedError",
    "NotLockedError",
    "DeviceLockedError",
    "StoreError",
    "StoreConnectionError",
    "CompositeError",
]
