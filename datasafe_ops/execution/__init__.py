"""
Execution module.

Applies or simulates decided changes against Data Safe.

ARCHITECTURE:
    ChangeExecutor (single entry point for every mutation)
        │
        ├── apply_connection   (connector reassignment, idempotency skip)
        ├── apply_credentials  (lifecycle gated, scoped credential file)
        ├── apply_action       (refresh / delete / tags)
        │
        └── run_batch          ([k/N] loop, stop-on-error, RunOutcome)

    delete_dependents  (one routine for every dependent resource kind)
    start_audit_trails (starts never-started trails per target)
"""

from datasafe_ops.execution.audit_trails import AuditTrailStart, start_audit_trails
from datasafe_ops.execution.dependents import (
    DependentCleanup,
    DependentKind,
    delete_dependents,
)
from datasafe_ops.execution.executor import (
    ChangeExecutor,
    ExecutionMode,
    ExecutionOptions,
)

__all__ = [
    "ChangeExecutor",
    "ExecutionMode",
    "ExecutionOptions",
    "DependentCleanup",
    "DependentKind",
    "delete_dependents",
    "AuditTrailStart",
    "start_audit_trails",
]
