"""
Agent bridge: a JSON-RPC 2.0 server over stdio.

One request per line on stdin, one response per line on stdout. Standard
output carries nothing but protocol messages, so logging goes to stderr.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import IO, Any

from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    CallToolResult,
    TextContent,
)

from wondertwin.errors import WonderTwinError
from wondertwin.fleet.manifest import Manifest
from wondertwin.mcp.tools import HANDLERS, ToolContext, create_tools

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "wondertwin-mcp"
SERVER_VERSION = "0.1.0"
MAX_LINE = 1024 * 1024

MARSHAL_FALLBACK = (
    '{"jsonrpc":"2.0","id":null,"error":{"code":-32603,"message":"internal marshal error"}}'
)


def setup_logging(level: int = logging.INFO) -> None:
    """Send all log records to stderr; stdout belongs to the protocol."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _result(msg_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": msg_id, "result": result}


def _error(msg_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": msg_id, "error": {"code": code, "message": message}}


class BridgeServer:
    """Serves the ``wt_*`` tools to a coding agent.

    Args:
        context: Manifest, admin client, and PID file the tool handlers use.
        stdin: Line-oriented input stream (defaults to ``sys.stdin``).
        stdout: Output stream (defaults to ``sys.stdout``).
    """

    def __init__(
        self,
        context: ToolContext,
        stdin: IO[str] | None = None,
        stdout: IO[str] | None = None,
    ) -> None:
        self.context = context
        self.tools = create_tools()
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout

    @classmethod
    def for_manifest(cls, manifest: Manifest, **kwargs: Any) -> BridgeServer:
        return cls(ToolContext(manifest=manifest), **kwargs)

    def serve(self) -> None:
        """Handle requests until stdin is closed.

        Raises:
            WonderTwinError: If an input line exceeds 1 MiB.
        """
        logger.info("Agent bridge ready (%d tools)", len(self.tools))
        while True:
            line = self.stdin.readline(MAX_LINE + 1)
            if not line:
                break
            if len(line) > MAX_LINE and not line.endswith("\n"):
                raise WonderTwinError("reading stdin: line exceeds 1 MiB")
            line = line.strip()
            if not line:
                continue

            response = self.handle_line(line)
            if response is not None:
                self.write(response)
        logger.info("Agent bridge input closed")

    def handle_line(self, line: str) -> dict[str, Any] | None:
        """Decode and dispatch one line; None means no reply (a notification)."""
        try:
            message = json.loads(line)
        except ValueError as e:
            return _error(None, PARSE_ERROR, f"parse error: {e}")

        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            msg_id = message.get("id") if isinstance(message, dict) else None
            return _error(msg_id, INVALID_REQUEST, "invalid request")

        return self.dispatch(message)

    def dispatch(self, message: dict[str, Any]) -> dict[str, Any] | None:
        method = message["method"]
        is_notification = "id" not in message
        msg_id = message.get("id")

        if method == "initialize":
            return _result(msg_id, self._initialize())
        if method == "notifications/initialized":
            return None
        if method == "tools/list":
            return _result(msg_id, self._tools_list())
        if method == "tools/call":
            return self._tools_call(msg_id, message.get("params"))

        if is_notification:
            return None
        return _error(msg_id, METHOD_NOT_FOUND, f"method not found: {method}")

    def _initialize(self) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    def _tools_list(self) -> dict[str, Any]:
        return {
            "tools": [t.model_dump(by_alias=True, exclude_none=True) for t in self.tools]
        }

    def _tools_call(self, msg_id: Any, params: Any) -> dict[str, Any]:
        if not isinstance(params, dict) or not isinstance(params.get("name"), str):
            return _error(msg_id, INVALID_PARAMS, "invalid params: expected {name, arguments}")

        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            return _error(msg_id, INVALID_PARAMS, "invalid params: arguments must be an object")

        name = params["name"]
        handler = HANDLERS.get(name)
        if handler is None:
            return _error(msg_id, METHOD_NOT_FOUND, f"unknown tool: {name}")

        logger.debug("Calling tool %s", name)
        try:
            text = handler(self.context, arguments)
        except Exception as e:
            logger.exception("Tool %s failed", name)
            return _error(msg_id, INTERNAL_ERROR, f"tool {name} failed: {e}")

        result = CallToolResult(content=[TextContent(type="text", text=text)])
        return _result(msg_id, result.model_dump(by_alias=True, exclude_none=True))

    def write(self, response: dict[str, Any]) -> None:
        try:
            data = json.dumps(response, separators=(",", ":"))
        except (TypeError, ValueError):
            logger.exception("Failed to encode response")
            data = MARSHAL_FALLBACK
        self.stdout.write(data + "\n")
        self.stdout.flush()


def run(manifest: Manifest, verbose: bool = False) -> None:
    """Entry point for ``wt mcp``."""
    setup_logging(logging.DEBUG if verbose else logging.INFO)
    BridgeServer.for_manifest(manifest).serve()
