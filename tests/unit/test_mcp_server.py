"""Tests for the agent bridge JSON-RPC server and its tool handlers."""

from __future__ import annotations

import io
import json
from pathlib import Path

import httpx
import pytest

from wondertwin.errors import WonderTwinError
from wondertwin.fleet import supervisor
from wondertwin.fleet.client import AdminClient
from wondertwin.fleet.manifest import Manifest
from wondertwin.mcp.server import MAX_LINE, BridgeServer
from wondertwin.mcp.tools import HANDLERS, ToolContext, create_tools


def fake_admin(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/admin/state":
        if request.method == "POST":
            return httpx.Response(200, json={"status": "loaded"})
        return httpx.Response(200, json={"customers": {"cus_1": {"id": "cus_1"}}})
    if path == "/admin/config":
        if request.method == "PUT":
            return httpx.Response(200, content=request.content)
        return httpx.Response(200, json={"latency": "0s", "fail_rate": 0})
    if path == "/admin/quirks":
        return httpx.Response(200, json=[{"id": "strict_ids", "enabled": False}])
    if path == "/admin/quirks/strict_ids":
        return httpx.Response(200, json={"id": "strict_ids", "enabled": request.method == "PUT"})
    if path == "/admin/health":
        return httpx.Response(200, json={"status": "ok"})
    return httpx.Response(404, text="not found")


@pytest.fixture
def context(manifest: Manifest, tmp_path: Path) -> ToolContext:
    return ToolContext(
        manifest=manifest,
        client=AdminClient(transport=httpx.MockTransport(fake_admin)),
        pid_file=tmp_path / ".wt" / "pids.json",
        settle=0,
    )


@pytest.fixture
def server(context: ToolContext) -> BridgeServer:
    return BridgeServer(context, stdin=io.StringIO(), stdout=io.StringIO())


def call(server: BridgeServer, name: str, arguments: dict | None = None) -> dict:
    message = {"jsonrpc": "2.0", "id": 7, "method": "tools/call", "params": {"name": name}}
    if arguments is not None:
        message["params"]["arguments"] = arguments
    return server.handle_line(json.dumps(message))


def text_of(response: dict) -> str:
    return response["result"]["content"][0]["text"]


# =============================================================================
# Protocol
# =============================================================================


class TestProtocol:
    def test_initialize(self, server: BridgeServer) -> None:
        response = server.handle_line('{"jsonrpc": "2.0", "id": 1, "method": "initialize"}')
        assert response["id"] == 1
        assert response["result"]["protocolVersion"] == "2024-11-05"
        assert response["result"]["serverInfo"]["name"] == "wondertwin-mcp"
        assert response["result"]["capabilities"] == {"tools": {}}

    def test_tools_list(self, server: BridgeServer) -> None:
        response = server.handle_line('{"jsonrpc": "2.0", "id": 2, "method": "tools/list"}')
        tools = response["result"]["tools"]
        assert [t["name"] for t in tools] == list(HANDLERS)
        assert all("inputSchema" in t for t in tools)
        seed = next(t for t in tools if t["name"] == "wt_seed")
        assert seed["inputSchema"]["required"] == ["twin", "file"]

    def test_every_tool_has_a_handler(self) -> None:
        assert {t.name for t in create_tools()} == set(HANDLERS)

    def test_initialized_notification_has_no_reply(self, server: BridgeServer) -> None:
        line = '{"jsonrpc": "2.0", "method": "notifications/initialized"}'
        assert server.handle_line(line) is None

    def test_unknown_notification_has_no_reply(self, server: BridgeServer) -> None:
        assert server.handle_line('{"jsonrpc": "2.0", "method": "notifications/other"}') is None

    def test_unknown_method(self, server: BridgeServer) -> None:
        response = server.handle_line('{"jsonrpc": "2.0", "id": 3, "method": "resources/list"}')
        assert response["error"]["code"] == -32601
        assert response["error"]["message"] == "method not found: resources/list"

    def test_parse_error(self, server: BridgeServer) -> None:
        response = server.handle_line("{not json")
        assert response["id"] is None
        assert response["error"]["code"] == -32700

    @pytest.mark.parametrize("line", ['{"id": 4}', '{"id": 4, "method": 12}', "[1, 2]"])
    def test_invalid_request(self, server: BridgeServer, line: str) -> None:
        assert server.handle_line(line)["error"]["code"] == -32600

    def test_serve_handles_each_line(self, context: ToolContext) -> None:
        stdin = io.StringIO(
            '{"jsonrpc": "2.0", "id": 1, "method": "initialize"}\n'
            "\n"
            '{"jsonrpc": "2.0", "method": "notifications/initialized"}\n'
            '{"jsonrpc": "2.0", "id": 2, "method": "tools/list"}\n'
        )
        stdout = io.StringIO()
        BridgeServer(context, stdin=stdin, stdout=stdout).serve()

        replies = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [r["id"] for r in replies] == [1, 2]

    def test_serve_rejects_oversized_line(self, context: ToolContext) -> None:
        stdin = io.StringIO("x" * (MAX_LINE + 10))
        with pytest.raises(WonderTwinError, match="exceeds 1 MiB"):
            BridgeServer(context, stdin=stdin, stdout=io.StringIO()).serve()


# =============================================================================
# tools/call
# =============================================================================


class TestToolsCall:
    def test_unknown_tool(self, server: BridgeServer) -> None:
        response = call(server, "wt_explode")
        assert response["error"] == {"code": -32601, "message": "unknown tool: wt_explode"}

    def test_invalid_params(self, server: BridgeServer) -> None:
        line = '{"jsonrpc": "2.0", "id": 5, "method": "tools/call", "params": []}'
        assert server.handle_line(line)["error"]["code"] == -32602

    def test_handler_exception_is_internal_error(
        self, server: BridgeServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def boom(ctx: ToolContext, arguments: dict) -> str:
            raise RuntimeError("kaboom")

        monkeypatch.setitem(HANDLERS, "wt_status", boom)
        response = call(server, "wt_status")
        assert response["error"]["code"] == -32603
        assert "kaboom" in response["error"]["message"]

    def test_status_table(self, server: BridgeServer) -> None:
        text = text_of(call(server, "wt_status"))
        lines = text.splitlines()
        assert lines[0].split() == ["TWIN", "PID", "PORT", "HEALTH", "URL"]
        assert lines[2].split() == ["acme", "-", "4100", "stopped", "http://localhost:4100"]

    def test_down_with_nothing_running(self, server: BridgeServer) -> None:
        assert text_of(call(server, "wt_down")) == "No twins running."

    def test_reset_skips_stopped(self, server: BridgeServer) -> None:
        text = text_of(call(server, "wt_reset", {"twin": "acme"}))
        assert "acme" in text and "skipped (not running)" in text

    def test_reset_unknown_twin(self, server: BridgeServer) -> None:
        text = text_of(call(server, "wt_reset", {"twin": "ghost"}))
        assert text == 'Error: twin "ghost" not found in manifest'

    def test_up_reports_failures_in_text(
        self, server: BridgeServer, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def missing(name, twin, log_dir, verbose=False):
            raise WonderTwinError(f"binary not found: {twin.binary}")

        monkeypatch.setattr(supervisor, "start", missing)
        text = text_of(call(server, "wt_up"))
        assert f"{'acme':<20} FAILED - binary not found: /opt/twins/twin-acme" in text
        assert "Health:" in text

    def test_inspect(self, server: BridgeServer) -> None:
        text = text_of(call(server, "wt_inspect", {"twin": "acme"}))
        assert json.loads(text) == {"customers": {"cus_1": {"id": "cus_1"}}}

    def test_inspect_requires_twin(self, server: BridgeServer) -> None:
        assert text_of(call(server, "wt_inspect", {})) == "Error: 'twin' argument is required"

    def test_seed(self, server: BridgeServer, tmp_path: Path) -> None:
        seed = tmp_path / "seed.json"
        seed.write_text("{}")
        text = text_of(call(server, "wt_seed", {"twin": "acme", "file": str(seed)}))
        assert text.startswith("Seeded acme: ")

    def test_seed_requires_both_arguments(self, server: BridgeServer) -> None:
        text = text_of(call(server, "wt_seed", {"twin": "acme"}))
        assert text == "Error: both 'twin' and 'file' arguments are required"

    def test_config_read_and_update(self, server: BridgeServer) -> None:
        current = json.loads(text_of(call(server, "wt_config", {"twin": "acme"})))
        assert current["latency"] == "0s"
        updated = text_of(call(server, "wt_config", {"twin": "acme", "updates": {"fail_rate": 1}}))
        assert json.loads(updated) == {"fail_rate": 1}

    def test_quirks(self, server: BridgeServer) -> None:
        listed = json.loads(text_of(call(server, "wt_quirks", {"twin": "acme"})))
        assert listed[0]["id"] == "strict_ids"
        arguments = {"twin": "acme", "action": "enable", "quirk_id": "strict_ids"}
        enabled = text_of(call(server, "wt_quirks", arguments))
        assert json.loads(enabled)["enabled"] is True

    @pytest.mark.parametrize(
        ("arguments", "message"),
        [
            ({"twin": "acme", "action": "enable"}, "'quirk_id' is required"),
            ({"twin": "acme", "action": "flip", "quirk_id": "q"}, 'unknown action "flip"'),
        ],
    )
    def test_quirks_errors(self, server: BridgeServer, arguments: dict, message: str) -> None:
        assert message in text_of(call(server, "wt_quirks", arguments))
