"""Error taxonomy for sonic-intent.

Translation and precondition errors are raised before any entry reaches the
device. Apply errors stop a write episode part-way; completed writes are left
in place. Verification mismatches are returned as data, never raised.
"""
from typing import Optional


class SonicIntentError(Exception):
    """Base class for every error raised by this package."""


# --- Precondition / validation ---

class PreconditionError(SonicIntentError):
    """A single unmet precondition for an operation on a resource."""

    def __init__(self, operation: str, resource: str, precondition: str, details: str = ""):
        self.operation = operation
        self.resource = resource
        self.precondition = precondition
        self.details = details
        msg = f"precondition failed for {operation} on {resource}: {precondition}"
        if details:
            msg += f" ({details})"
        super().__init__(msg)


class ValidationError(SonicIntentError):
    """One or more validation failures collected into a single error."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        if len(self.errors) == 1:
            msg = f"validation failed: {self.errors[0]}"
        else:
            msg = "validation failed:\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(msg)


# --- Translation ---

class TranslationError(SonicIntentError):
    """An intent could not be translated into configuration entries."""

    def __init__(self, message: str, reference: str = ""):
        self.reference = reference
        super().__init__(message)


class SpecLoadError(SonicIntentError):
    """A network spec or inventory file is malformed."""


class SpecNotFoundError(TranslationError):
    """A named definition (service, VPN, filter, ...) does not exist."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' not found", reference=name)


# --- Session ---

class NotConnectedError(SonicIntentError):
    def __init__(self, device: str = ""):
        self.device = device
        super().__init__("device not connected")


class NotLockedError(SonicIntentError):
    def __init__(self, device: str = ""):
        self.device = device
        super().__init__("device not locked for changes")


class DeviceLockedError(SonicIntentError):
    """The device lease is held by another holder."""

    def __init__(self, device: str, holder: str):
        self.device = device
        self.holder = holder
        super().__init__(f"device {device} is locked by {holder}")


# --- Store / apply ---

class StoreError(SonicIntentError):
    """The configuration store rejected a command or returned garbage."""


class StoreConnectionError(StoreError, ConnectionError):
    """Transport-level failure reaching the configuration store (retryable)."""


class ApplyError(SonicIntentError):
    """Writing one change of a change-set failed; earlier writes remain."""

    def __init__(self, table: str, key: str, cause: Exception, applied_count: int = 0):
        self.table = table
        self.key = key
        self.cause = cause
        self.applied_count = applied_count
        super().__init__(f"applying change to {table}|{key}: {cause}")


class CompositeError(SonicIntentError):
    """A composite configuration could not be delivered."""

    def __init__(self, message: str, conflicts: Optional[list[str]] = None):
        self.conflicts = conflicts or []
        super().__init__(message)
