"""Executor for applying command plans to routers.

Sends the main NAT commands as one configuration-mode batch. A rejected
command aborts the run for the device; nothing is retried or rolled back.
"""
import logging

from ..devices.base import NatDevice
from ..errors import TransportError
from .schema import (
    CommandPlan,
    ExecuteOptions,
    ExecuteResult,
)

logger = logging.getLogger(__name__)


class ConfigExecutor:
    """Execute command plans on a connected device."""

    async def execute(
        self,
        device: NatDevice,
        plan: CommandPlan,
        options: ExecuteOptions,
    ) -> ExecuteResult:
        """
        Execute a command plan on a device.

        Args:
            device: Connected NAT device
            plan: Command plan to execute
            options: Execution options (dry_run, etc.)

        Returns:
            ExecuteResult with the commands sent

        Raises:
            TransportError: If the device rejects a main command
        """
        result = ExecuteResult(dry_run=options.dry_run)

        if options.dry_run:
            return self._dry_run(plan, result)

        if plan.main_commands:
            logger.info(
                f"Executing {len(plan.main_commands)} NAT commands on {device.device_id}"
            )
            success, output = await device.execute_config_mode(plan.main_commands)
            result.output = output
            if not success:
                raise TransportError(
                    [f"Configuration batch failed on {device.device_id}", output],
                    device_id=device.device_id,
                )
            result.commands_executed.extend(plan.main_commands)

        for cmd in plan.post_commands:
            success, output = await device.execute(cmd)
            result.commands_executed.append(cmd)
            if not success:
                # Post-command failure does not undo the NAT change
                message = f"Post-command '{cmd}' failed: {output}"
                logger.warning(message)
                result.warnings.append(message)

        result.success = True
        return result

    def _dry_run(self, plan: CommandPlan, result: ExecuteResult) -> ExecuteResult:
        """Handle dry-run mode - preview without executing."""
        result.success = True
        result.dry_run = True
        result.commands_executed = [
            f"[DRY-RUN] {cmd}"
            for cmd in plan.main_commands + plan.post_commands
        ]
        return result
