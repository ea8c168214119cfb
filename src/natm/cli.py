#!/usr/bin/env python3
"""natm command line runner.

Usage:
    natm [--config PATH] [--device ID ...] [--group NAME] [--dry-run | --check]

Environment variables:
    NATM_CONFIG         Inventory file (default search: ./configs/natm.yaml)
    NATM_PASSWORD       Device credentials
    NATM_CI_TEST=1      Use mock tables instead of contacting devices
    NATM_LOG=0          Do not write per-run command logs
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from .config.inventory import NatInventory
from .errors import ConfigError
from .reconcile import ReconcileEngine
from .reconcile.schema import RunResult
from .utils.logging_config import setup_logging
from .utils.run_log import setup_audit_logging

logger = logging.getLogger("natm.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="natm",
        description="Reconcile static NAT entries on routers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Apply desired state to every device in the inventory
    natm --config configs/natm.yaml

    # Preview changes for one group
    natm --group nat_routers --dry-run

    # Report drift without changing anything
    natm --device rtr-edge-1 --check

    # Exercise the pipeline against mock tables
    natm --ci-test
""",
    )
    parser.add_argument(
        "--config",
        help="Inventory file (default: $NATM_CONFIG or ./configs/natm.yaml)",
    )
    parser.add_argument(
        "--device",
        action="append",
        default=[],
        help="Limit to a device (repeatable)",
    )
    parser.add_argument(
        "--group",
        help="Limit to the members of a device group",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the commands that would be sent, change nothing",
    )
    mode.add_argument(
        "--check",
        action="store_true",
        help="Verify current tables against desired state, change nothing",
    )
    parser.add_argument(
        "--ci-test",
        action="store_true",
        help="Substitute mock tables for real devices",
    )
    parser.add_argument(
        "--no-log",
        action="store_true",
        help="Do not write per-run command logs",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def select_devices(
    inventory: NatInventory,
    devices: list[str],
    group: Optional[str],
) -> list[str]:
    """Resolve --device/--group options to device IDs, keeping order."""
    selected: list[str] = []
    if group:
        selected.extend(inventory.get_group_members(group))
    for device_id in devices:
        inventory.get_device_config(device_id)  # Raises on unknown device
        if device_id not in selected:
            selected.append(device_id)
    return selected or inventory.get_device_ids()


def print_summary(result: RunResult) -> None:
    """Log per-device outcome and every error."""
    logger.info("=" * 60)
    logger.info("NAT RECONCILIATION RESULTS")
    logger.info("=" * 60)

    for device in result.devices:
        status = "OK" if device.success else "FAIL"
        changed = " (changed)" if device.changed else ""
        logger.info(f"  {device.device_id}: {status}{changed} [{device.duration_ms:.0f}ms]")
        for operation in device.operations:
            logger.info(f"    {operation}")
        if device.dry_run:
            for cmd in device.commands:
                logger.info(f"    [DRY-RUN] {cmd}")
        for warning in device.warnings:
            logger.warning(f"    Warning: {warning}")
        for error in device.errors:
            logger.error(f"    {device.stage}: {error}")

    summary = result.to_dict()["summary"]
    logger.info("")
    logger.info(f"Total: {summary['total_devices']} devices")
    logger.info(f"Passed: {summary['passed']}")
    logger.info(f"Failed: {summary['failed']}")
    logger.info(f"Changed: {summary['changed']}")
    if result.log_dir:
        logger.info(f"Logs: {result.log_dir}")
    logger.info("=" * 60)


async def run(args: argparse.Namespace) -> int:
    inventory = NatInventory(args.config)
    if args.ci_test:
        inventory.settings.ci_test = True
    if args.no_log:
        inventory.settings.log = False

    device_ids = select_devices(inventory, args.device, args.group)
    engine = ReconcileEngine(inventory)

    try:
        result = await engine.reconcile_all(
            device_ids, dry_run=args.dry_run, check=args.check
        )
    finally:
        await inventory.close_all()

    print_summary(result)
    return 0 if result.success else 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the natm CLI."""
    args = build_parser().parse_args(argv)

    setup_logging(verbose=args.verbose)
    setup_audit_logging()

    try:
        return asyncio.run(run(args))
    except ConfigError as e:
        logger.error(str(e))
        return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
