"""Schema definitions for NAT reconciliation.

Defines the desired state format, the device table snapshot and all
result dataclasses passed between pipeline stages.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional, Union


class NatState(str, Enum):
    """Declared state of a static NAT entry."""
    PRESENT = "present"  # Create if missing
    ABSENT = "absent"    # Remove if found


class OperationType(str, Enum):
    """Type of corrective operation."""
    ADD = "add"
    REMOVE = "remove"


MatchMode = Literal["substring", "exact"]


def normalize_vrf(vrf: Any) -> str:
    """Trim a VRF name; anything falsy means no VRF."""
    if not vrf or not isinstance(vrf, str):
        return ""
    return vrf.strip()


def vrf_clause(vrf: Any) -> str:
    """Format the VRF qualifier appended to every NAT command."""
    name = normalize_vrf(vrf)
    return f" vrf {name}" if name else ""


@dataclass(frozen=True)
class NatEntry:
    """A single desired static NAT translation.

    ``state`` is a NatState once parsed; an unrecognised input value is kept
    as-is so validation can report it.
    """
    name: Any
    state: Union[NatState, str]
    inside: str   # inside_private
    outside: str  # outside_public

    @property
    def label(self) -> str:
        return f"NAT entry {self.name}: {self.inside}->{self.outside}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value if isinstance(self.state, NatState) else self.state,
            "inside_private": self.inside,
            "outside_public": self.outside,
        }


@dataclass
class ReconciliationContext:
    """Per-device reconciliation scope."""
    device_id: str
    entries: list[NatEntry] = field(default_factory=list)
    vrf: Optional[Any] = None

    @property
    def vrf_name(self) -> str:
        return normalize_vrf(self.vrf)

    @property
    def vrf_clause(self) -> str:
        return vrf_clause(self.vrf)


# Dotted quad not preceded or followed by another digit or dot
_EXACT_TEMPLATE = r"(?<![\d.]){}(?!\d|\.\d)"


@dataclass
class DeviceTable:
    """Text snapshot of a device's NAT translation table.

    In ``substring`` mode an address is present if it occurs anywhere in the
    text. ``exact`` mode only matches whole dotted-quad tokens, so 10.0.0.1
    is not found inside 10.0.0.10.
    """
    text: str = ""
    match_mode: MatchMode = "substring"

    def contains(self, address: str) -> bool:
        """Check if an address occurs in the table."""
        if not address:
            return False
        if self.match_mode == "exact":
            pattern = _EXACT_TEMPLATE.format(re.escape(address))
            return re.search(pattern, self.text) is not None
        return address in self.text

    def has_mapping(self, inside: str, outside: str) -> bool:
        """Both addresses of a translation occur in the table."""
        return self.contains(inside) and self.contains(outside)

    def has_any(self, inside: str, outside: str) -> bool:
        """Either address of a translation occurs in the table."""
        return self.contains(inside) or self.contains(outside)


# --- Validation Results ---

@dataclass
class ValidationResult:
    """Result of desired state validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# --- Diff Results ---

@dataclass
class NatOperation:
    """A single corrective operation for one entry."""
    op_type: OperationType
    entry: NatEntry

    def __str__(self) -> str:
        return f"{self.op_type.value.capitalize()}({self.entry.name})"


@dataclass
class DiffResult:
    """Ordered operations needed to converge a device."""
    operations: list[NatOperation] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        """Check if there are any changes."""
        return len(self.operations) == 0

    @property
    def total_changes(self) -> int:
        return len(self.operations)

    @property
    def adds(self) -> list[NatOperation]:
        return [op for op in self.operations if op.op_type == OperationType.ADD]

    @property
    def removes(self) -> list[NatOperation]:
        return [op for op in self.operations if op.op_type == OperationType.REMOVE]


# --- Command Plan ---

@dataclass
class CommandPlan:
    """Plan of commands to execute."""
    main_commands: list[str] = field(default_factory=list)
    post_commands: list[str] = field(default_factory=list)


# --- Verification Results ---

@dataclass
class VerificationResult:
    """Result of checking the after-table against the declared state."""
    verified: bool
    errors: list[str] = field(default_factory=list)
    failed_entries: list[str] = field(default_factory=list)


# --- Execution ---

@dataclass
class ExecuteOptions:
    """Options for plan execution."""
    dry_run: bool = False


@dataclass
class ExecuteResult:
    """Result of plan execution."""
    success: bool = False
    dry_run: bool = False
    commands_executed: list[str] = field(default_factory=list)
    output: str = ""
    warnings: list[str] = field(default_factory=list)


# --- Run Results ---

@dataclass
class DeviceRunResult:
    """Reconciliation outcome for a single device."""
    device_id: str
    success: bool = False
    dry_run: bool = False
    stage: Optional[str] = None
    vrf: str = ""
    operations: list[str] = field(default_factory=list)
    commands: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    log_file: Optional[str] = None
    duration_ms: float = 0

    @property
    def changed(self) -> bool:
        return bool(self.commands) and not self.dry_run

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "device_id": self.device_id,
            "success": self.success,
            "dry_run": self.dry_run,
            "changed": self.changed,
            "stage": self.stage,
            "vrf": self.vrf,
            "operations": self.operations,
            "commands": self.commands,
            "errors": self.errors,
            "warnings": self.warnings,
            "log_file": self.log_file,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class RunResult:
    """Overall outcome across devices."""
    timestamp: str
    devices: list[DeviceRunResult] = field(default_factory=list)
    log_dir: Optional[str] = None

    @property
    def success(self) -> bool:
        return all(d.success for d in self.devices)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "success": self.success,
            "log_dir": self.log_dir,
            "summary": {
                "total_devices": len(self.devices),
                "passed": sum(1 for d in self.devices if d.success),
                "failed": sum(1 for d in self.devices if not d.success),
                "changed": sum(1 for d in self.devices if d.changed),
            },
            "devices": [d.to_dict() for d in self.devices],
        }
