"""Config Engine - run operations against devices with dry-run, apply and verify.

Usage:
    from sonic_intent.config_engine import Engine, ExecuteOptions

    engine = Engine(inventory, resolver)
    result = await engine.run(
        "leaf1",
        lambda node: create_vlan(node, 100),
        ExecuteOptions(dry_run=True),
    )
    print(result.preview)
"""

from .diff import diff_tables, summarize_changes
from .engine import Engine, verify_enabled
from .schema import DriftItem, DriftReport, ExecuteOptions, ExecuteResult

__all__ = [
    # Main engine
    "Engine",
    "verify_enabled",
    # Schema classes
    "ExecuteOptions",
    "ExecuteResult",
    "DriftItem",
    "DriftReport",
    # Diff
    "summarize_changes",
    "diff_tables",
]
