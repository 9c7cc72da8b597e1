"""MCP Server for Junos configuration reconciliation.

Drives the reconcile engine one resource operation at a time. Every call
opens its own NETCONF session; edits are serialized per device by the
engine's lock manager.

Tools exposed:
- list_devices: List all configured Junos devices
- list_resource_types: Resource types and their attributes
- read_resource: Read one object from the live configuration
- plan_resource: Statements needed to converge an object (drift)
- apply_resource: Create or update an object (dry_run supported)
- delete_resource: Delete an object (dry_run supported)
- get_audit_log: Recent configuration transactions

Resources:
- junos://<device>/facts: model, version and serial number
"""
import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config.inventory import DeviceInventory
from .config_engine.engine import ReconcileEngine
from .errors import ReconcileError
from .resources import RESOURCE_TYPES
from .utils.audit_log import get_recent_transactions, setup_audit_logging
from .utils.logging_config import setup_logging, timed_section

logger = logging.getLogger(__name__)

# Initialized on first use
inventory: Optional[DeviceInventory] = None
engine: Optional[ReconcileEngine] = None


def get_inventory() -> DeviceInventory:
    """Get or create the device inventory."""
    global inventory
    if inventory is None:
        inventory = DeviceInventory()
    return inventory


def get_engine() -> ReconcileEngine:
    """Get or create the reconcile engine (one lock manager per process)."""
    global engine
    if engine is None:
        engine = ReconcileEngine(get_inventory())
    return engine


server = Server("junoscraft")


def _text(payload: Any) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


_DEVICE = {"type": "string", "description": "Device ID from the inventory (e.g., 'srx-edge')"}
_TYPE = {
    "type": "string",
    "description": "Resource type tag",
    "enum": sorted(RESOURCE_TYPES),
}
_ATTRIBUTES = {
    "type": "object",
    "description": "Desired attributes, including the key attributes (usually 'name')",
}


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_devices",
            description="List all configured Junos devices with their connection info",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="list_resource_types",
            description="List the resource types that can be managed and their attributes",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        Tool(
            name="read_resource",
            description="Read one configuration object from the device's committed configuration",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": _DEVICE,
                    "type": _TYPE,
                    "identifier": {
                        "type": ["string", "object"],
                        "description": "Name, or an object with the key attributes",
                    },
                },
                "required": ["device_id", "type", "identifier"],
            },
        ),
        Tool(
            name="plan_resource",
            description="Show the set/delete statements needed to bring an object to the desired state",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": _DEVICE,
                    "type": _TYPE,
                    "attributes": _ATTRIBUTES,
                },
                "required": ["device_id", "type", "attributes"],
            },
        ),
        Tool(
            name="apply_resource",
            description=(
                "Create or update a configuration object. Runs lock, load, commit check, "
                "commit and unlock; any failure discards the candidate."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": _DEVICE,
                    "type": _TYPE,
                    "attributes": _ATTRIBUTES,
                    "dry_run": {
                        "type": "boolean",
                        "description": "Only compute the statements",
                        "default": False,
                    },
                },
                "required": ["device_id", "type", "attributes"],
            },
        ),
        Tool(
            name="delete_resource",
            description="Delete a configuration object and the membership entries it owns",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": _DEVICE,
                    "type": _TYPE,
                    "identifier": {
                        "type": ["string", "object"],
                        "description": "Name, or an object with the key attributes",
                    },
                    "dry_run": {"type": "boolean", "default": False},
                },
                "required": ["device_id", "type", "identifier"],
            },
        ),
        Tool(
            name="get_audit_log",
            description="Recent configuration transactions from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "device_id": {"type": "string", "description": "Filter by device"},
                    "limit": {"type": "integer", "default": 20},
                },
                "required": [],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    device_id = arguments.get("device_id", "N/A")

    async with timed_section(f"tool:{name}", device_id=device_id):
        try:
            if name == "list_devices":
                return await handle_list_devices(get_inventory())

            elif name == "list_resource_types":
                return await handle_list_resource_types()

            elif name == "read_resource":
                return await handle_read_resource(
                    get_engine(),
                    arguments["device_id"],
                    arguments["type"],
                    arguments["identifier"],
                )

            elif name == "plan_resource":
                return await handle_plan_resource(
                    get_engine(),
                    arguments["device_id"],
                    arguments["type"],
                    arguments["attributes"],
                )

            elif name == "apply_resource":
                return await handle_apply_resource(
                    get_engine(),
                    arguments["device_id"],
                    arguments["type"],
                    arguments["attributes"],
                    arguments.get("dry_run", False),
                )

            elif name == "delete_resource":
                return await handle_delete_resource(
                    get_engine(),
                    arguments["device_id"],
                    arguments["type"],
                    arguments["identifier"],
                    arguments.get("dry_run", False),
                )

            elif name == "get_audit_log":
                return await handle_get_audit_log(
                    arguments.get("device_id"),
                    arguments.get("limit", 20),
                )

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except ReconcileError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return _text({"success": False, "error": e.to_dict()})
        except KeyError as e:
            return _text({"success": False, "error": {"kind": "bad_request", "message": str(e)}})
        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

async def handle_list_devices(inv: DeviceInventory) -> list[TextContent]:
    """List all configured devices."""
    devices = [inv.describe_device(device_id) for device_id in inv.get_device_ids()]
    return _text({"devices": devices, "groups": inv.get_groups()})


async def handle_list_resource_types() -> list[TextContent]:
    """Describe every resource type."""
    return _text({"resource_types": [rtype.describe() for rtype in RESOURCE_TYPES.values()]})


async def handle_read_resource(
    eng: ReconcileEngine, device_id: str, type_tag: str, identifier: Any,
) -> list[TextContent]:
    state = await eng.read(device_id, type_tag, identifier)
    return _text({
        "device_id": device_id,
        "found": state is not None,
        "state": state.to_dict() if state else None,
    })


async def handle_plan_resource(
    eng: ReconcileEngine, device_id: str, type_tag: str, attributes: dict,
) -> list[TextContent]:
    changes = await eng.plan(device_id, type_tag, attributes)
    return _text({
        "device_id": device_id,
        "in_sync": changes.empty,
        "changes": changes.to_dict(),
    })


async def handle_apply_resource(
    eng: ReconcileEngine, device_id: str, type_tag: str, attributes: dict, dry_run: bool,
) -> list[TextContent]:
    """Create or update an object and return the refreshed state."""
    result = await eng.apply(device_id, type_tag, attributes, dry_run=dry_run)
    return _text({"success": True, "device_id": device_id, **result.to_dict()})


async def handle_delete_resource(
    eng: ReconcileEngine, device_id: str, type_tag: str, identifier: Any, dry_run: bool,
) -> list[TextContent]:
    result = await eng.delete(device_id, type_tag, identifier, dry_run=dry_run)
    return _text({"success": True, "device_id": device_id, **result.to_dict()})


async def handle_get_audit_log(device_id: Optional[str] = None, limit: int = 20) -> list[TextContent]:
    """Get recent transactions from the audit log."""
    records = get_recent_transactions(device_id=device_id, limit=limit)
    return _text({
        "total_records": len(records),
        "filters": {"device_id": device_id, "limit": limit},
        "records": [
            {
                "timestamp": r.timestamp,
                "device_id": r.device_id,
                "operation": r.operation,
                "resource": r.resource,
                "success": r.success,
                "final_state": r.final_state,
                "attempts": r.attempts,
                "statements": r.statements,
                "error_kind": r.error_kind,
                "error": r.error,
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
            uri=AnyUrl(f"junos://{device_id}/facts"),
            name=f"{config.get('name', device_id)} Facts",
            description=f"Model, Junos version and serial number of {device_id}",
            mimeType="application/json",
        ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: junos://device_id/facts
    uri_str = str(uri)
    if uri_str.startswith("junos://"):
        parts = uri_str[len("junos://"):].split("/")
        if len(parts) >= 2 and parts[1] == "facts":
            try:
                facts = await get_engine().facts(parts[0])
            except ReconcileError as e:
                return json.dumps({"error": e.to_dict()})
            return json.dumps(facts, indent=2)

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""
    setup_logging()
    setup_audit_logging()

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


if __name__ == "__main__":
    main()
