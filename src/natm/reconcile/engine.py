"""Main reconcile engine - orchestrates the per-device NAT workflow.

Provides a single entry point for:
1. Parsing and validating desired state (no device contact on failure)
2. Fetching the "before" NAT table
3. Calculating the diff
4. Generating VRF-qualified commands
5. Executing them (only if there are operations)
6. Refetching the "after" table and verifying convergence

Devices are reconciled concurrently; each device's pipeline is strictly
sequential and a failure on one device never affects another.
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Iterable, Optional

from ..config.inventory import NatInventory, RunSettings
from ..devices.base import NatDevice
from ..errors import (
    ConfigError,
    ReconcileError,
    ValidationError,
    VerificationError,
)
from ..utils.logging_config import timed_section
from ..utils.run_log import RunContext
from .diff import DiffEngine, summarize_diff
from .executor import ConfigExecutor
from .generator import CommandGenerator, table_command
from .parser import NatParser
from .schema import (
    DeviceRunResult,
    DeviceTable,
    ExecuteOptions,
    ReconciliationContext,
    RunResult,
    ValidationResult,
)
from .validator import NatValidator
from .verifier import Verifier

logger = logging.getLogger(__name__)


class ReconcileEngine:
    """
    Reconcile static NAT tables of inventory devices.

    Usage:
        engine = ReconcileEngine(inventory)
        result = await engine.reconcile_all()
    """

    def __init__(
        self,
        inventory: NatInventory,
        run_context: Optional[RunContext] = None,
        settings: Optional[RunSettings] = None,
    ):
        """
        Initialize the engine.

        Args:
            inventory: Device inventory holding desired state per device
            run_context: Run-scoped timestamp and log directory
            settings: Run settings (defaults to the inventory's settings)
        """
        self.inventory = inventory
        self.settings = settings or inventory.settings
        self.run_context = run_context or RunContext.create(
            Path(self.settings.log_dir), enabled=self.settings.log
        )
        self.parser = NatParser()
        self.validator = NatValidator()
        self.diff_engine = DiffEngine()
        self.executor = ConfigExecutor()
        self.verifier = Verifier()

    # === Pure stages ===

    def load_context(self, device_id: str) -> ReconciliationContext:
        """Parse a device's desired state from the inventory."""
        return self.parser.parse(device_id, self.inventory.get_desired_state(device_id))

    def validate(self, context: ReconciliationContext) -> ValidationResult:
        """Validate a context (for external use)."""
        return self.validator.validate(context.entries, context.vrf)

    def check_valid(self, context: ReconciliationContext) -> ValidationResult:
        """Validate a context, raising ValidationError on any violation."""
        validation = self.validate(context)
        for warning in validation.warnings:
            logger.warning(f"{context.device_id}: {warning}")
        if not validation.valid:
            raise ValidationError(validation.errors, device_id=context.device_id)
        return validation

    def make_table(self, text: str) -> DeviceTable:
        return DeviceTable(text=text, match_mode=self.settings.match_mode)

    async def fetch_table(
        self,
        device: NatDevice,
        context: ReconciliationContext,
    ) -> DeviceTable:
        """Fetch a fresh NAT table snapshot from a connected device."""
        text = await device.get_nat_table(table_command(context.vrf))
        logger.debug(f"{context.device_id} NAT table:\n{text}")
        return self.make_table(text)

    # === Pipelines ===

    async def reconcile(self, device_id: str, dry_run: bool = False) -> DeviceRunResult:
        """
        Reconcile one device.

        Never raises for device-level problems; failures are recorded in the
        returned result with the stage they occurred in.
        """
        result = DeviceRunResult(device_id=device_id, dry_run=dry_run)
        start = time.perf_counter()
        stage = "load"

        try:
            async with timed_section("reconcile", device_id=device_id, dry_run=dry_run):
                context = self.load_context(device_id)
                result.vrf = context.vrf_name

                stage = "validate"
                validation = self.check_valid(context)
                result.warnings.extend(validation.warnings)

                stage = "connect"
                device = self.inventory.get_device(device_id)
                async with device:
                    stage = "fetch"
                    before = await self.fetch_table(device, context)

                    stage = "diff"
                    diff = self.diff_engine.calculate(context.entries, before)
                    result.operations = [str(op) for op in diff.operations]
                    logger.info(f"{device_id}: {summarize_diff(diff, context.vrf_name)}")

                    stage = "generate"
                    generator = CommandGenerator(context.vrf)
                    plan = generator.generate(diff, save_config=self.settings.save_config)
                    result.commands = list(plan.main_commands)

                    if dry_run or diff.no_change:
                        result.success = True
                        result.stage = "done"
                        return result

                    stage = "execute"
                    try:
                        execution = await self.executor.execute(
                            device, plan, ExecuteOptions(dry_run=False)
                        )
                        result.warnings.extend(execution.warnings)
                    finally:
                        log_file = self.run_context.write_device_log(
                            device_id, plan.main_commands
                        )
                        result.log_file = str(log_file) if log_file else None

                    stage = "refetch"
                    after = await self.fetch_table(device, context)

                stage = "verify"
                self._check_verified(context, after)

            result.success = True
            result.stage = "done"
            logger.info(f"{device_id}: converged")

        except ReconcileError as e:
            if isinstance(e, ValidationError):
                stage = "validate"
            result.success = False
            result.stage = stage
            result.errors = e.errors
            logger.error(f"{device_id}: {stage} failed: {e}")
        except ConfigError as e:
            result.success = False
            result.stage = stage
            result.errors = [str(e)]
            logger.error(f"{device_id}: {e}")
        except Exception as e:
            # Connectivity and authentication failures from the device layer
            logger.exception(f"{device_id}: {stage} failed")
            result.success = False
            result.stage = stage
            result.errors = [f"Transport failure: {type(e).__name__}: {e}"]

        finally:
            result.duration_ms = (time.perf_counter() - start) * 1000
            # Audit only runs that produced commands
            if result.commands and not dry_run:
                self.run_context.record_change(
                    device_id,
                    result.vrf,
                    result.commands,
                    success=result.success,
                    errors=result.errors,
                )

        return result

    def _check_verified(self, context: ReconciliationContext, after: DeviceTable) -> None:
        verification = self.verifier.verify(context.entries, after)
        if not verification.verified:
            raise VerificationError(verification.errors, device_id=context.device_id)

    async def preview(self, device_id: str) -> DeviceRunResult:
        """Validate, diff and generate without changing the device."""
        return await self.reconcile(device_id, dry_run=True)

    async def check(self, device_id: str) -> DeviceRunResult:
        """
        Verify a device's current table against its desired state.

        Reports drift without generating or applying any change.
        """
        result = DeviceRunResult(device_id=device_id, dry_run=True)
        start = time.perf_counter()
        stage = "load"

        try:
            context = self.load_context(device_id)
            result.vrf = context.vrf_name

            stage = "validate"
            self.check_valid(context)

            stage = "connect"
            device = self.inventory.get_device(device_id)
            async with device:
                stage = "fetch"
                table = await self.fetch_table(device, context)

            stage = "verify"
            self._check_verified(context, table)
            result.success = True
            result.stage = "done"

        except (ReconcileError, ConfigError) as e:
            result.success = False
            result.stage = "validate" if isinstance(e, ValidationError) else stage
            result.errors = e.errors if isinstance(e, ReconcileError) else [str(e)]
        except Exception as e:
            logger.exception(f"{device_id}: {stage} failed")
            result.success = False
            result.stage = stage
            result.errors = [f"{type(e).__name__}: {e}"]

        finally:
            result.duration_ms = (time.perf_counter() - start) * 1000

        return result

    async def reconcile_all(
        self,
        device_ids: Optional[Iterable[str]] = None,
        dry_run: bool = False,
        check: bool = False,
    ) -> RunResult:
        """
        Reconcile many devices in parallel.

        Args:
            device_ids: Devices to process (default: whole inventory)
            dry_run: Preview changes only
            check: Only verify current state, never change anything
        """
        ids = list(device_ids) if device_ids is not None else self.inventory.get_device_ids()
        run = RunResult(
            timestamp=self.run_context.dtg,
            log_dir=str(self.run_context.log_dir) if self.run_context.log_dir else None,
        )

        if check:
            jobs = [self.check(device_id) for device_id in ids]
        else:
            jobs = [self.reconcile(device_id, dry_run=dry_run) for device_id in ids]

        logger.info(f"Processing {len(ids)} device(s)")
        run.devices = list(await asyncio.gather(*jobs))

        for device_result in run.devices:
            if device_result.success:
                logger.info(f"{device_result.device_id}: OK")
            else:
                logger.error(
                    f"{device_result.device_id}: FAILED at {device_result.stage}"
                )

        return run
