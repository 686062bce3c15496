"""Audit logging for configuration changes.

Every change-set the engine previews or applies is recorded as one JSON
line in a dedicated audit log, separate from the diagnostic log:
- Timestamped records per device and operation
- The full ordered change list, how many were applied, and verification
- Caller-supplied context (ticket, reason)
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields as dc_fields
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from ..config_db.changeset import ChangeSet

audit_logger = logging.getLogger("sonic_intent.audit")

DEFAULT_AUDIT_DIR = "~/.sonic-intent"
AUDIT_FILE = "audit.log"


def default_audit_file() -> str:
    return os.path.join(os.path.expanduser(DEFAULT_AUDIT_DIR), AUDIT_FILE)


def setup_audit_logging(log_dir: Optional[str] = None) -> str:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.sonic-intent/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser(DEFAULT_AUDIT_DIR)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = os.path.join(log_dir, AUDIT_FILE)

    audit_logger.setLevel(logging.INFO)
    for handler in list(audit_logger.handlers):
        audit_logger.removeHandler(handler)
        handler.close()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    # one JSON object per line
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False
    return audit_file


@dataclass
class ChangeRecord:
    """Record of one change-set run against a device."""
    timestamp: str
    device: str
    operation: str
    user: str
    dry_run: bool
    success: bool
    changes: list[dict] = field(default_factory=list)
    applied_count: int = 0
    verification: Optional[dict] = None
    context: dict = field(default_factory=dict)
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        data = json.loads(json_str)
        known = {f.name for f in dc_fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})


class ChangeTracker:
    """Writes audit records for one device."""

    def __init__(self, device: str, user: str = ""):
        self.device = device
        self.user = user or "system"

    def log_changeset(
        self,
        cs: Optional[ChangeSet],
        operation: str = "",
        dry_run: bool = False,
        success: bool = True,
        error: Optional[str] = None,
        context: Optional[dict] = None,
    ) -> ChangeRecord:
        """Log a change-set; ``cs`` is None when building it failed.

        Returns:
            The ChangeRecord that was logged
        """
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            device=self.device,
            operation=cs.operation if cs is not None else operation,
            user=self.user,
            dry_run=dry_run,
            success=success,
            changes=[c.to_dict() for c in cs.changes] if cs is not None else [],
            applied_count=cs.applied_count if cs is not None else 0,
            verification=cs.verification.to_dict() if cs is not None and cs.verification else None,
            context=dict(context or {}),
            error=error,
        )
        audit_logger.info(record.to_json())
        return record


def get_recent_changes(
    log_file: Optional[str] = None,
    device: Optional[str] = None,
    operation: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent changes from the audit log, most recent first.

    Args:
        log_file: Path to audit log. Defaults to ~/.sonic-intent/audit.log
        device: Filter by device name
        operation: Filter by operation, e.g. "interface.apply-service"
        limit: Maximum number of records to return
    """
    if log_file is None:
        log_file = default_audit_file()

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines
            if device and record.device != device:
                continue
            if operation and record.operation != operation:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
