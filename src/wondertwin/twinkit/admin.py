"""
Admin control plane mounted on every twin under ``/admin``.

Lets tests reset a twin, seed and inspect its state, inject faults, read the
request log, flush webhooks, and move the simulated clock. A twin plugs in
whatever capabilities it has: a state contract is required; a clock, a
webhook flusher, a runtime config provider and a quirk store are optional.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from fastapi import APIRouter, Request
from fastapi.responses import Response

from wondertwin.errors import NotFoundError, StateParseError
from wondertwin.twinkit.durations import format_duration, parse_duration
from wondertwin.twinkit.pipeline import FaultConfig, Pipeline
from wondertwin.twinkit.responses import error_response, json_response
from wondertwin.twinkit.store import SimulatedClock

logger = logging.getLogger(__name__)


@runtime_checkable
class StateContract(Protocol):
    """What a twin must provide for the admin plane to manage its state."""

    def snapshot(self) -> Any: ...

    def load_state(self, data: bytes) -> None:
        """Replace all state. Raises StateParseError on an ill-formed body."""
        ...

    def reset(self) -> None: ...


@runtime_checkable
class WebhookFlusher(Protocol):
    def flush_webhooks(self) -> None: ...


@runtime_checkable
class ConfigProvider(Protocol):
    def get_config(self) -> dict[str, Any]: ...

    def update_config(self, updates: dict[str, Any]) -> None: ...


@dataclass
class QuirkStatus:
    """A vendor behavioural quirk a twin can toggle."""

    id: str
    summary: str = ""
    enabled: bool = False
    type: str = ""
    severity: str = ""


@runtime_checkable
class QuirkStore(Protocol):
    def list_quirks(self) -> list[QuirkStatus]: ...

    def enable_quirk(self, quirk_id: str) -> None:
        """Raises NotFoundError for an unknown quirk."""
        ...

    def disable_quirk(self, quirk_id: str) -> None: ...


class QuirkSet:
    """Default :class:`QuirkStore`: a fixed catalogue of quirks with on/off flags.

    Quirk flags survive ``/admin/reset``; they describe how the twin behaves,
    not what it holds.
    """

    def __init__(self, quirks: list[QuirkStatus]) -> None:
        self._lock = threading.Lock()
        self._quirks = {q.id: q for q in quirks}

    def list_quirks(self) -> list[QuirkStatus]:
        with self._lock:
            return [replace(q) for q in self._quirks.values()]

    def enable_quirk(self, quirk_id: str) -> None:
        self._set(quirk_id, True)

    def disable_quirk(self, quirk_id: str) -> None:
        self._set(quirk_id, False)

    def is_enabled(self, quirk_id: str) -> bool:
        with self._lock:
            quirk = self._quirks.get(quirk_id)
            return quirk is not None and quirk.enabled

    def _set(self, quirk_id: str, enabled: bool) -> None:
        with self._lock:
            quirk = self._quirks.get(quirk_id)
            if quirk is None:
                raise NotFoundError(f"unknown quirk: {quirk_id}")
            quirk.enabled = enabled


def _rfc3339(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


class AdminHandler:
    """Binds a twin's state and pipeline to the ``/admin/*`` endpoints.

    Args:
        state: The twin's state contract.
        pipeline: The twin's request pipeline (log, faults, idempotency).
        clock: Optional simulated clock.
    """

    def __init__(
        self,
        state: StateContract,
        pipeline: Pipeline,
        clock: SimulatedClock | None = None,
    ) -> None:
        self.state = state
        self.pipeline = pipeline
        self.clock = clock
        self.flusher: WebhookFlusher | None = None
        self.config: ConfigProvider | None = None
        self.quirks: QuirkStore | None = None

    def set_flusher(self, flusher: WebhookFlusher) -> None:
        self.flusher = flusher

    def set_config_provider(self, provider: ConfigProvider) -> None:
        self.config = provider

    def set_quirk_store(self, quirks: QuirkStore) -> None:
        self.quirks = quirks

    def routes(self) -> APIRouter:
        router = APIRouter(prefix="/admin")
        router.add_api_route("/health", self.health, methods=["GET"])
        router.add_api_route("/reset", self.reset, methods=["POST"])
        router.add_api_route("/state", self.get_state, methods=["GET"])
        router.add_api_route("/state", self.load_state, methods=["POST"])
        router.add_api_route("/faults", self.list_faults, methods=["GET"])
        router.add_api_route("/fault/{endpoint:path}", self.inject_fault, methods=["POST"])
        router.add_api_route("/fault/{endpoint:path}", self.remove_fault, methods=["DELETE"])
        router.add_api_route("/requests", self.get_requests, methods=["GET"])
        router.add_api_route("/webhooks/flush", self.flush_webhooks, methods=["POST"])
        router.add_api_route("/time/advance", self.advance_time, methods=["POST"])
        router.add_api_route("/time", self.get_time, methods=["GET"])
        router.add_api_route("/config", self.get_config, methods=["GET"])
        router.add_api_route("/config", self.update_config, methods=["PUT"])
        router.add_api_route("/quirks", self.list_quirks, methods=["GET"])
        router.add_api_route("/quirks/{quirk_id}", self.enable_quirk, methods=["PUT"])
        router.add_api_route("/quirks/{quirk_id}", self.disable_quirk, methods=["DELETE"])
        return router

    # -- lifecycle -----------------------------------------------------------

    async def health(self) -> Response:
        return json_response(200, {"status": "ok"})

    async def reset(self) -> Response:
        self.state.reset()
        self.pipeline.reset()
        if self.clock is not None:
            self.clock.reset()
        logger.info("Twin state reset")
        return json_response(200, {"status": "reset"})

    # -- state ---------------------------------------------------------------

    async def get_state(self) -> Response:
        return json_response(200, self.state.snapshot())

    async def load_state(self, request: Request) -> Response:
        body = await request.body()
        try:
            self.state.load_state(body)
        except (StateParseError, ValueError) as e:
            return error_response(400, f"failed to load state: {e}")
        return json_response(200, {"status": "loaded"})

    # -- faults --------------------------------------------------------------

    async def inject_fault(self, endpoint: str, request: Request) -> Response:
        path = "/" + endpoint
        try:
            fault = FaultConfig.from_dict(json.loads(await request.body()))
        except ValueError as e:
            return error_response(400, f"invalid fault config: {e}")
        self.pipeline.faults.set(path, fault)
        logger.info("Injected fault %d at %s (rate %.2f)", fault.status_code, path, fault.rate)
        return json_response(
            200, {"status": "injected", "endpoint": path, "fault": fault.to_dict()}
        )

    async def remove_fault(self, endpoint: str) -> Response:
        path = "/" + endpoint
        if not self.pipeline.faults.remove(path):
            return error_response(404, f"no fault registered for {path}")
        return json_response(200, {"status": "removed", "endpoint": path})

    async def list_faults(self) -> Response:
        faults = {path: f.to_dict() for path, f in self.pipeline.faults.all().items()}
        return json_response(200, faults)

    async def get_requests(self) -> Response:
        return json_response(200, [e.to_dict() for e in self.pipeline.request_log.entries()])

    # -- webhooks ------------------------------------------------------------

    async def flush_webhooks(self) -> Response:
        if self.flusher is None:
            return json_response(200, {"status": "no webhooks configured"})
        try:
            await asyncio.to_thread(self.flusher.flush_webhooks)
        except Exception as e:
            logger.warning("Webhook flush failed: %s", e)
            return error_response(500, f"flush failed: {e}")
        return json_response(200, {"status": "flushed"})

    # -- time ----------------------------------------------------------------

    async def advance_time(self, request: Request) -> Response:
        if self.clock is None:
            return error_response(400, "simulated clock not configured")

        try:
            payload = json.loads(await request.body())
        except ValueError as e:
            return error_response(400, f"invalid request: {e}")
        if not isinstance(payload, dict):
            return error_response(400, "invalid request: body must be a JSON object")

        try:
            if "seconds" in payload and "duration" not in payload:
                seconds = payload["seconds"]
                if isinstance(seconds, bool) or not isinstance(seconds, int | float):
                    raise ValueError("seconds must be a number")
                delta = timedelta(seconds=seconds)
            else:
                delta = parse_duration(str(payload.get("duration", "")))
        except ValueError as e:
            return error_response(400, f"invalid duration: {e}")

        self.clock.advance(delta)
        return json_response(
            200,
            {
                "status": "advanced",
                "duration": format_duration(delta),
                "offset": format_duration(self.clock.offset),
                "simulated": _rfc3339(self.clock.now()),
            },
        )

    async def get_time(self) -> Response:
        result: dict[str, Any] = {"real": _rfc3339(datetime.now(UTC))}
        if self.clock is not None:
            result["simulated"] = _rfc3339(self.clock.now())
            result["offset"] = format_duration(self.clock.offset)
        return json_response(200, result)

    # -- runtime config ------------------------------------------------------

    async def get_config(self) -> Response:
        if self.config is None:
            return error_response(404, "runtime config not available")
        return json_response(200, self.config.get_config())

    async def update_config(self, request: Request) -> Response:
        if self.config is None:
            return error_response(404, "runtime config not available")
        try:
            updates = json.loads(await request.body())
        except ValueError as e:
            return error_response(400, f"invalid request: {e}")
        if not isinstance(updates, dict):
            return error_response(400, "invalid request: body must be a JSON object")
        try:
            self.config.update_config(updates)
        except ValueError as e:
            return error_response(400, str(e))
        return json_response(200, self.config.get_config())

    # -- quirks --------------------------------------------------------------

    async def list_quirks(self) -> Response:
        if self.quirks is None:
            return json_response(200, [])
        return json_response(200, [asdict(q) for q in self.quirks.list_quirks()])

    async def enable_quirk(self, quirk_id: str) -> Response:
        return self._toggle_quirk(quirk_id, enable=True)

    async def disable_quirk(self, quirk_id: str) -> Response:
        return self._toggle_quirk(quirk_id, enable=False)

    def _toggle_quirk(self, quirk_id: str, *, enable: bool) -> Response:
        if self.quirks is None:
            return error_response(404, "quirks not supported by this twin")
        try:
            if enable:
                self.quirks.enable_quirk(quirk_id)
            else:
                self.quirks.disable_quirk(quirk_id)
        except NotFoundError as e:
            return error_response(404, str(e))
        status = "enabled" if enable else "disabled"
        return json_response(200, {"status": status, "quirk_id": quirk_id})
