"""Diff engine for calculating NAT changes between desired and current state.

Computes the minimal set of add/remove operations needed to reach the
desired state. Running it against an already converged table yields no
operations.
"""
from typing import Optional, Sequence

from .schema import (
    DeviceTable,
    DiffResult,
    NatEntry,
    NatOperation,
    NatState,
    OperationType,
)


class DiffEngine:
    """Calculate differences between desired entries and a device table."""

    def calculate(
        self,
        entries: Sequence[NatEntry],
        table: DeviceTable,
    ) -> DiffResult:
        """
        Calculate diff between desired entries and the "before" table.

        An entry is considered found when both its inside and outside
        addresses occur in the table.

        Args:
            entries: Validated desired NAT entries
            table: Table snapshot fetched before any change

        Returns:
            DiffResult with operations in entry order
        """
        result = DiffResult()

        for entry in entries:
            operation = self._diff_entry(entry, table)
            if operation:
                result.operations.append(operation)

        return result

    def _diff_entry(
        self,
        entry: NatEntry,
        table: DeviceTable,
    ) -> Optional[NatOperation]:
        """
        Calculate the operation needed for a single entry.

        Returns None if the entry has already converged.
        """
        found = table.has_mapping(entry.inside, entry.outside)

        if entry.state == NatState.PRESENT and not found:
            return NatOperation(OperationType.ADD, entry)

        if entry.state == NatState.ABSENT and found:
            return NatOperation(OperationType.REMOVE, entry)

        return None


def summarize_diff(diff: DiffResult, vrf: str = "") -> str:
    """
    Create a human-readable summary of a diff.

    Useful for dry-run output and logging.
    """
    if diff.no_change:
        return "No changes needed - current NAT table matches desired state"

    scope = f" in VRF {vrf}" if vrf else ""
    lines = [f"Changes to apply{scope} ({diff.total_changes} total):", ""]

    for op in diff.operations:
        entry = op.entry
        if op.op_type == OperationType.ADD:
            lines.append(f"  [+] Add {entry.name}: {entry.inside} -> {entry.outside}")
        else:
            lines.append(f"  [-] Remove {entry.name}: {entry.inside} -> {entry.outside}")

    return "\n".join(lines)
