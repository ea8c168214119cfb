"""Post-change verification of the device NAT table.

Trusts neither the executor's reported success nor the diff plan: the
declared state of every entry is re-checked against the table the device
reports after the change.
"""
from typing import Sequence

from .schema import (
    DeviceTable,
    NatEntry,
    NatState,
    VerificationResult,
)


class Verifier:
    """Assert that every entry's declared state holds on the device."""

    def verify(
        self,
        entries: Sequence[NatEntry],
        table: DeviceTable,
    ) -> VerificationResult:
        """
        Verify entries against the "after" table.

        Present entries need both addresses in the table; absent entries
        must have neither. All entries are checked before returning.

        Args:
            entries: Desired NAT entries
            table: Table snapshot fetched after applying changes

        Returns:
            VerificationResult naming every offending entry
        """
        errors: list[str] = []
        failed: list[str] = []

        for entry in entries:
            if entry.state == NatState.PRESENT:
                ok = table.has_mapping(entry.inside, entry.outside)
                outcome = "not found"
            elif entry.state == NatState.ABSENT:
                ok = not table.has_any(entry.inside, entry.outside)
                outcome = "found"
            else:
                continue

            if not ok:
                errors.append(
                    f"NAT entry {entry.inside},{entry.outside} with name "
                    f"{entry.name} {outcome} when state was '{entry.state.value}'"
                )
                failed.append(entry.name)

        return VerificationResult(
            verified=len(errors) == 0,
            errors=errors,
            failed_entries=failed,
        )
