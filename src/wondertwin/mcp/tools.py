"""
Tool definitions and handlers for the WonderTwin agent bridge.

Tools are functions that coding agents call to drive the twin fleet. Every
handler returns plain text; errors are reported in the text rather than as
JSON-RPC errors so the agent can read them.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mcp.types import Tool

from wondertwin.errors import WonderTwinError
from wondertwin.fleet import operations
from wondertwin.fleet.client import AdminClient
from wondertwin.fleet.manifest import Manifest
from wondertwin.fleet.supervisor import PID_FILE


@dataclass
class ToolContext:
    """Everything a handler needs: the manifest, an admin client, and where PIDs live."""

    manifest: Manifest
    client: AdminClient = field(default_factory=AdminClient)
    pid_file: Path = PID_FILE
    settle: float = operations.SETTLE_DELAY


ToolHandler = Callable[[ToolContext, dict[str, Any]], str]

_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}, "required": []}


def create_tools() -> list[Tool]:
    """
    Create the tools exposed by the bridge.

    Returns:
        Tool definitions with name, description, and input schema
    """
    return [
        Tool(
            name="wt_up",
            description="Start all twins defined in wondertwin.yaml. Launches each twin binary as a background process and waits for health checks.",
            inputSchema=_NO_ARGS,
        ),
        Tool(
            name="wt_down",
            description="Stop all running twins. Sends SIGTERM with graceful shutdown, falling back to SIGKILL after 5 seconds.",
            inputSchema=_NO_ARGS,
        ),
        Tool(
            name="wt_status",
            description="Health check all twins and return their status including PID, port, and health state.",
            inputSchema=_NO_ARGS,
        ),
        Tool(
            name="wt_reset",
            description="Reset state on all twins or a specific twin. When a twin name is provided, only that twin is reset.",
            inputSchema={
                "type": "object",
                "properties": {
                    "twin": {
                        "type": "string",
                        "description": "Name of a specific twin to reset (optional; omit to reset all)",
                    }
                },
                "required": [],
            },
        ),
        Tool(
            name="wt_seed",
            description="Seed a twin with fixture data by POSTing a JSON file to its /admin/state endpoint.",
            inputSchema={
                "type": "object",
                "properties": {
                    "twin": {"type": "string", "description": "Name of the twin to seed"},
                    "file": {"type": "string", "description": "Path to the JSON seed file"},
                },
                "required": ["twin", "file"],
            },
        ),
        Tool(
            name="wt_inspect",
            description="Get the current internal state of a twin by querying its /admin/state endpoint.",
            inputSchema={
                "type": "object",
                "properties": {
                    "twin": {"type": "string", "description": "Name of the twin to inspect"}
                },
                "required": ["twin"],
            },
        ),
        Tool(
            name="wt_config",
            description="Get or update the runtime configuration of a twin. Without 'updates', returns current config. With 'updates' (a JSON object), applies config changes.",
            inputSchema={
                "type": "object",
                "properties": {
                    "twin": {"type": "string", "description": "Name of the twin"},
                    "updates": {
                        "type": "object",
                        "description": "Key-value pairs to update (optional; omit to just read config)",
                    },
                },
                "required": ["twin"],
            },
        ),
        Tool(
            name="wt_quirks",
            description="List all quirks for a twin, or enable/disable a specific quirk. Without 'action', lists all quirks. With action='enable' or 'disable' and a quirk_id, toggles that quirk.",
            inputSchema={
                "type": "object",
                "properties": {
                    "twin": {"type": "string", "description": "Name of the twin"},
                    "action": {
                        "type": "string",
                        "enum": ["enable", "disable"],
                        "description": "Action to perform (optional; omit to list quirks)",
                    },
                    "quirk_id": {
                        "type": "string",
                        "description": "ID of the quirk to toggle (required when action is set)",
                    },
                },
                "required": ["twin"],
            },
        ),
    ]


# =============================================================================
# Handlers
# =============================================================================


def handle_up(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    lines = []
    try:
        outcomes = operations.start_fleet(ctx.manifest, ctx.pid_file)
    except WonderTwinError as e:
        return f"Error: {e.message}"

    for o in outcomes:
        if o.status == "running":
            lines.append(f"{o.name:<20} already running (pid {o.pid})")
        elif o.failed:
            lines.append(f"{o.name:<20} FAILED - {o.detail}")
        else:
            lines.append(f"{o.name:<20} started (pid {o.pid}, port {o.port})")

    lines.append("")
    lines.append("Health:")
    for s in operations.wait_for_health(ctx.manifest, ctx.client, ctx.settle):
        lines.append(f"{s.name:<20} {s.health}  {s.url}")
    return "\n".join(lines) + "\n"


def handle_down(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    try:
        outcomes = operations.stop_fleet(ctx.pid_file)
    except WonderTwinError as e:
        return f"Error loading pid state: {e.message}"
    if not outcomes:
        return "No twins running."

    lines = []
    for o in outcomes:
        if o.status == "already-stopped":
            lines.append(f"{o.name:<20} already stopped")
        elif o.failed:
            lines.append(f"{o.name:<20} FAILED - {o.detail}")
        else:
            lines.append(f"{o.name:<20} stopped (was pid {o.pid})")
    lines.append("")
    lines.append("All twins stopped.")
    return "\n".join(lines)


def handle_status(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    try:
        statuses = operations.fleet_status(ctx.manifest, ctx.client, ctx.pid_file)
    except WonderTwinError as e:
        return f"Error: {e.message}"

    lines = [
        f"{'TWIN':<20} {'PID':<8} {'PORT':<7} {'HEALTH':<11} URL",
        f"{'----':<20} {'---':<8} {'----':<7} {'------':<11} ---",
    ]
    for s in statuses:
        pid = str(s.pid) if s.pid is not None else "-"
        lines.append(f"{s.name:<20} {pid:<8} {s.port:<7} {s.health:<11} {s.url}")
    return "\n".join(lines) + "\n"


def handle_reset(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    twin = arguments.get("twin") or ""
    try:
        outcomes = operations.reset_fleet(
            ctx.manifest, ctx.client, [twin] if twin else None, ctx.pid_file
        )
    except WonderTwinError as e:
        return f"Error: {e.message}"

    lines = []
    for o in outcomes:
        if o.status == "skipped":
            lines.append(f"{o.name:<20} skipped (not running)")
        elif o.failed:
            lines.append(f"{o.name:<20} FAILED - {o.detail}")
        else:
            lines.append(f"{o.name:<20} reset   {o.detail}")
    return "\n".join(lines) + "\n"


def _twin_port(ctx: ToolContext, arguments: dict[str, Any]) -> tuple[str, int]:
    name = arguments.get("twin") or ""
    if not name:
        raise WonderTwinError("'twin' argument is required")
    return name, ctx.manifest.twin(name).admin_port


def handle_seed(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    if not arguments.get("twin") or not arguments.get("file"):
        return "Error: both 'twin' and 'file' arguments are required"
    try:
        name, port = _twin_port(ctx, arguments)
    except WonderTwinError as e:
        return f"Error: {e.message}"
    try:
        response = ctx.client.seed(port, arguments["file"])
    except WonderTwinError as e:
        return f"Error seeding {name}: {e.message}"
    return f"Seeded {name}: {response}"


def handle_inspect(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    try:
        name, port = _twin_port(ctx, arguments)
    except WonderTwinError as e:
        return f"Error: {e.message}"
    try:
        response = ctx.client.get(port, "/state")
    except WonderTwinError as e:
        return f"Error inspecting {name}: {e.message}"
    if response.status_code != 200:
        return f"Error inspecting {name}: status {response.status_code}: {response.text}"
    return response.text


def handle_config(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    try:
        name, port = _twin_port(ctx, arguments)
    except WonderTwinError as e:
        return f"Error: {e.message}"

    updates = arguments.get("updates")
    if updates:
        if not isinstance(updates, dict):
            return "Error: 'updates' must be a JSON object"
        try:
            return ctx.client.update_config(port, updates)
        except WonderTwinError as e:
            return f"Error updating config for {name}: {e.message}"
    try:
        return ctx.client.get_config(port)
    except WonderTwinError as e:
        return f"Error fetching config for {name}: {e.message}"


def handle_quirks(ctx: ToolContext, arguments: dict[str, Any]) -> str:
    try:
        name, port = _twin_port(ctx, arguments)
    except WonderTwinError as e:
        return f"Error: {e.message}"

    action = arguments.get("action") or ""
    if not action:
        try:
            return ctx.client.list_quirks(port)
        except WonderTwinError as e:
            return f"Error fetching quirks for {name}: {e.message}"

    quirk_id = arguments.get("quirk_id") or ""
    if not quirk_id:
        return "Error: 'quirk_id' is required when 'action' is specified"
    if action not in ("enable", "disable"):
        return f"Error: unknown action {json.dumps(action)} (use 'enable' or 'disable')"
    try:
        return ctx.client.set_quirk(port, quirk_id, action == "enable")
    except WonderTwinError as e:
        return f"Error toggling quirk for {name}: {e.message}"


HANDLERS: dict[str, ToolHandler] = {
    "wt_up": handle_up,
    "wt_down": handle_down,
    "wt_status": handle_status,
    "wt_reset": handle_reset,
    "wt_seed": handle_seed,
    "wt_inspect": handle_inspect,
    "wt_config": handle_config,
    "wt_quirks": handle_quirks,
}
