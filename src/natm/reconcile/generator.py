"""Command generator for Cisco IOS static NAT statements.

Every command of a run carries the same VRF qualifier, computed once when
the generator is created.
"""
from typing import Any, Optional

from .schema import (
    CommandPlan,
    DiffResult,
    NatOperation,
    OperationType,
    vrf_clause,
)

STATIC_NAT_COMMAND = "ip nat inside source static {inside} {outside}"
SHOW_TABLE_COMMAND = "show ip nat translations"
SAVE_COMMAND = "write memory"


def table_command(vrf: Optional[Any] = None) -> str:
    """Command that displays the NAT table, scoped to the VRF if given."""
    return f"{SHOW_TABLE_COMMAND}{vrf_clause(vrf)}"


class CommandGenerator:
    """Generate device commands from diff results."""

    def __init__(self, vrf: Optional[Any] = None):
        """
        Initialize generator.

        Args:
            vrf: Optional VRF name applied to every generated command
        """
        self.vrf_clause = vrf_clause(vrf)

    def generate(
        self,
        diff: DiffResult,
        save_config: bool = False,
    ) -> CommandPlan:
        """
        Generate command plan from diff.

        Args:
            diff: Diff result with operations to apply
            save_config: Whether to include a write memory command

        Returns:
            CommandPlan with all commands
        """
        plan = CommandPlan()

        for operation in diff.operations:
            plan.main_commands.append(self.command_for(operation))

        if save_config and plan.main_commands:
            plan.post_commands.append(SAVE_COMMAND)

        return plan

    def command_for(self, operation: NatOperation) -> str:
        """Render a single operation as a VRF-qualified command."""
        command = STATIC_NAT_COMMAND.format(
            inside=operation.entry.inside,
            outside=operation.entry.outside,
        )
        if operation.op_type == OperationType.REMOVE:
            command = f"no {command}"
        return f"{command}{self.vrf_clause}"
