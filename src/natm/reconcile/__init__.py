"""Reconcile - declarative static NAT management.

The reconcile package brings a router's static NAT table to a declared
state:
- Send desired entries, not individual commands
- Validation of the whole entry set before any device contact
- Minimal add/remove diff against the live table
- Post-change verification against the table the router reports

Usage:
    from natm.reconcile import ReconcileEngine

    engine = ReconcileEngine(inventory)
    result = await engine.reconcile("rtr-edge-1", dry_run=True)
"""

from .engine import ReconcileEngine
from .schema import (
    NatState,
    NatEntry,
    ReconciliationContext,
    DeviceTable,
    OperationType,
    NatOperation,
    DiffResult,
    CommandPlan,
    ValidationResult,
    VerificationResult,
    ExecuteOptions,
    ExecuteResult,
    DeviceRunResult,
    RunResult,
    normalize_vrf,
    vrf_clause,
)
from .parser import NatParser, ParseError
from .validator import NatValidator
from .diff import DiffEngine, summarize_diff
from .generator import CommandGenerator, table_command
from .executor import ConfigExecutor
from .verifier import Verifier

__all__ = [
    # Main engine
    "ReconcileEngine",
    # Schema classes
    "NatState",
    "NatEntry",
    "ReconciliationContext",
    "DeviceTable",
    "OperationType",
    "NatOperation",
    "DiffResult",
    "CommandPlan",
    "ValidationResult",
    "VerificationResult",
    "ExecuteOptions",
    "ExecuteResult",
    "DeviceRunResult",
    "RunResult",
    "normalize_vrf",
    "vrf_clause",
    # Parser
    "NatParser",
    "ParseError",
    # Components (for advanced use)
    "NatValidator",
    "DiffEngine",
    "summarize_diff",
    "CommandGenerator",
    "table_command",
    "ConfigExecutor",
    "Verifier",
]
