"""Utility modules for logging, retry, auditing and naming helpers."""
from .audit_log import ChangeRecord, ChangeTracker, get_recent_changes, setup_audit_logging
from .connection import CommandResult, with_retry
from .logging_config import (
    setup_logging,
    timed,
    timed_section_sync,
    perf_logger,
    PerfStats,
    global_stats,
)

__all__ = [
    "CommandResult",
    "with_retry",
    "setup_logging",
    "timed",
    "timed_section_sync",
    "perf_logger",
    "PerfStats",
    "global_stats",
    "ChangeRecord",
    "ChangeTracker",
    "get_recent_changes",
    "setup_audit_logging",
]
