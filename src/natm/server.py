"""MCP Server for static NAT reconciliation.

Exposes the reconcile engine to MCP clients so routers' static NAT tables
can be inspected, previewed and converged on request.

Tools exposed:
- list_devices: List configured routers with their VRF and entry counts
- get_nat_table: Fetch the live NAT translation table of a router
- validate_nats: Validate a router's desired entries without device contact
- preview_nats: Show the add/remove operations and commands (dry run)
- apply_nats: Reconcile one router, a group, or the whole inventory
- check_nats: Report drift between desired and live state
- get_change_log: Read recent change records from the audit log
"""
import asyncio
import json
import logging
import os
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config.inventory import NatInventory
from .reconcile import ReconcileEngine, table_command
from .utils.logging_config import setup_logging, timed_section
from .utils.run_log import read_change_records, setup_audit_logging

setup_audit_logging()

setup_logging()
logger = logging.getLogger(__name__)

# Global inventory (initialized on first tool call)
inventory: Optional[NatInventory] = None


def get_inventory() -> NatInventory:
    """Get or create the router inventory."""
    global inventory
    if inventory is None:
        inventory = NatInventory(os.environ.get("NATM_CONFIG"))
    return inventory


server = Server("natm")


def _device_id_schema(description: str = "Device ID (e.g., 'rtr-edge-1')") -> dict:
    return {
        "type": "object",
        "properties": {
            "device_id": {
                "type": "string",
                "description": description,
            }
        },
        "required": ["device_id"],
    }


def _json(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_devices",
            description="List all configured routers with their VRF, groups and desired entry count",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="get_nat_table",
            description="Get the live NAT translation table of a router (VRF-qualified when configured)",
            inputSchema=_device_id_schema(),
        ),
        Tool(
            name="validate_nats",
            description="Validate a router's desired static NAT entries without contacting it",
            inputSchema=_device_id_schema(),
        ),
        Tool(
            name="preview_nats",
            description="Preview the add/remove operations and commands needed to converge a router",
            inputSchema=_device_id_schema(),
        ),
        Tool(
            name="apply_nats",
            description=(
                "Reconcile static NAT entries to the desired state. "
                "Targets one device, a group, or the whole inventory when neither is given."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": {
                        "type": "string",
                        "description": "Single device to reconcile"
                    },
                    "group": {
                        "type": "string",
                        "description": "Device group to reconcile"
                    },
                    "dry_run": {
                        "type": "boolean",
                        "description": "Preview only, change nothing",
                        "default": False
                    }
                },
                "required": []
            }
        ),
        Tool(
            name="check_nats",
            description="Verify live NAT tables against desired state without changing anything",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": {
                        "type": "string",
                        "description": "Single device to check (default: all devices)"
                    }
                },
                "required": []
            }
        ),
        Tool(
            name="get_change_log",
            description="Get recent NAT change records from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": {
                        "type": "string",
                        "description": "Filter by device ID"
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Maximum records to return",
                        "default": 20
                    }
                },
                "required": []
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    device_id = arguments.get("device_id", "N/A")

    async with timed_section(f"tool:{name}", device_id=device_id):
        try:
            inv = get_inventory()

            if name == "list_devices":
                return await handle_list_devices(inv)

            elif name == "get_nat_table":
                return await handle_get_nat_table(inv, arguments["device_id"])

            elif name == "validate_nats":
                return await handle_validate_nats(inv, arguments["device_id"])

            elif name == "preview_nats":
                return await handle_preview_nats(inv, arguments["device_id"])

            elif name == "apply_nats":
                return await handle_apply_nats(
                    inv,
                    arguments.get("device_id"),
                    arguments.get("group"),
                    arguments.get("dry_run", False)
                )

            elif name == "check_nats":
                return await handle_check_nats(inv, arguments.get("device_id"))

            elif name == "get_change_log":
                return await handle_get_change_log(
                    arguments.get("device_id"),
                    arguments.get("limit", 20)
                )

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

async def handle_list_devices(inv: NatInventory) -> list[TextContent]:
    """List all configured devices."""
    devices = []
    for device_id in inv.get_device_ids():
        config = inv.get_device_config(device_id)
        devices.append({
            "id": device_id,
            "name": config.get("name", device_id),
            "type": config.get("type", "ios"),
            "host": config.get("host"),
            "vrf": config.get("vrf"),
            "groups": inv.get_device_groups(device_id),
            "static_nats": len(config.get("static_nats") or []),
        })

    return _json({"devices": devices})


async def handle_get_nat_table(inv: NatInventory, device_id: str) -> list[TextContent]:
    """Fetch the live NAT table of a device."""
    vrf = inv.get_desired_state(device_id).get("vrf")
    command = table_command(vrf)
    device = inv.get_device(device_id)

    async with device:
        table = await device.get_nat_table(command)

    return _json({
        "device_id": device_id,
        "command": command,
        "table": table,
    })


async def handle_validate_nats(inv: NatInventory, device_id: str) -> list[TextContent]:
    """Validate desired state without touching the device."""
    engine = ReconcileEngine(inv)
    context = engine.load_context(device_id)
    validation = engine.validate(context)

    return _json({
        "device_id": device_id,
        "vrf": context.vrf_name,
        "entries": [entry.to_dict() for entry in context.entries],
        "valid": validation.valid,
        "errors": validation.errors,
        "warnings": validation.warnings,
    })


async def handle_preview_nats(inv: NatInventory, device_id: str) -> list[TextContent]:
    """Preview the changes needed to converge a device."""
    engine = ReconcileEngine(inv)
    result = await engine.preview(device_id)
    return _json(result.to_dict())


async def handle_apply_nats(
    inv: NatInventory,
    device_id: Optional[str] = None,
    group: Optional[str] = None,
    dry_run: bool = False,
) -> list[TextContent]:
    """Reconcile a device, a group, or every device."""
    if device_id:
        inv.get_device_config(device_id)
        device_ids = [device_id]
    elif group:
        device_ids = inv.get_group_members(group)
    else:
        device_ids = inv.get_device_ids()

    engine = ReconcileEngine(inv)
    result = await engine.reconcile_all(device_ids, dry_run=dry_run)
    return _json(result.to_dict())


async def handle_check_nats(
    inv: NatInventory,
    device_id: Optional[str] = None,
) -> list[TextContent]:
    """Report drift for one or all devices."""
    device_ids = [device_id] if device_id else None
    engine = ReconcileEngine(inv)
    result = await engine.reconcile_all(device_ids, check=True)

    payload = result.to_dict()
    payload["in_sync"] = result.success
    return _json(payload)


async def handle_get_change_log(
    device_id: Optional[str] = None,
    limit: int = 20,
) -> list[TextContent]:
    """Get recent change records from the audit log."""
    records = read_change_records(device_id=device_id, limit=limit)

    return _json({
        "total_records": len(records),
        "filters": {
            "device_id": device_id,
            "limit": limit,
        },
        "records": [
            {
                "timestamp": r.timestamp,
                "device_id": r.device_id,
                "vrf": r.vrf,
                "success": r.success,
                "commands": r.commands,
                "errors": r.errors,
            }
            for r in records
        ],
    })


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    inv = get_inventory()
    resources = []

    for device_id in inv.get_device_ids():
        config = inv.get_device_config(device_id)
        resources.append(Resource(
            uri=AnyUrl(f"nat://{device_id}/table"),
            name=f"{config.get('name', device_id)} NAT Table",
            description=f"Live NAT translation table for {device_id}",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: nat://device_id/table
    uri_str = str(uri)
    if uri_str.startswith("nat://"):
        parts = uri_str[6:].split("/")
        if len(parts) >= 2 and parts[1] == "table":
            result = await handle_get_nat_table(get_inventory(), parts[0])
            return result[0].text

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    finally:
        if inventory:
            asyncio.run(inventory.close_all())


if __name__ == "__main__":
    main()
