"""
Request pipeline shared by every twin.

Wraps a twin's FastAPI app in a fixed middleware chain (request id, real IP,
CORS, request logging, latency injection, random failure) and provides a
route class for vendor routes that adds per-path fault injection and
``Idempotency-Key`` replay. Admin routes use the plain route class so the
control plane stays reachable while faults are active.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import threading
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import Response
from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware

from wondertwin.twinkit.config import TwinConfig
from wondertwin.twinkit.durations import parse_duration
from wondertwin.twinkit.responses import error_response

logger = logging.getLogger(__name__)

DEFAULT_LOG_SIZE = 1000

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": (
        "Accept, Authorization, Content-Type, Idempotency-Key, Stripe-Account, X-Api-Key"
    ),
    "Access-Control-Max-Age": "3600",
}

CallNext = Callable[[Request], Awaitable[Response]]


def generic_fault_body(status: int) -> str:
    return json.dumps(
        {"error": {"message": "injected fault", "type": "api_error", "code": status}},
        separators=(",", ":"),
    )


# ---------------------------------------------------------------------------
# Request log
# ---------------------------------------------------------------------------


@dataclass
class RequestLogEntry:
    """One request seen by the twin."""

    timestamp: datetime
    method: str
    path: str
    status_code: int = 200
    duration_ms: float = 0.0
    request_id: str = ""
    remote_addr: str = ""
    headers: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "path": self.path,
            "status_code": self.status_code,
            "duration_ms": self.duration_ms,
        }
        if self.headers:
            result["headers"] = self.headers
        if self.request_id:
            result["request_id"] = self.request_id
        if self.remote_addr:
            result["remote_addr"] = self.remote_addr
        return result


class RequestLog:
    """Bounded ring of recent requests; the oldest entry is evicted first."""

    def __init__(self, max_size: int = DEFAULT_LOG_SIZE) -> None:
        self._lock = threading.Lock()
        self._entries: deque[RequestLogEntry] = deque(maxlen=max_size)

    def add(self, entry: RequestLogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> list[RequestLogEntry]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# ---------------------------------------------------------------------------
# Faults
# ---------------------------------------------------------------------------


@dataclass
class FaultConfig:
    """A synthetic response for one exact request path.

    Attributes:
        status_code: HTTP status to return.
        body: Raw response body; empty means the generic injected-fault body.
        delay: Sleep before responding.
        rate: Probability the fault fires; 0.0 is stored as 1.0.
    """

    status_code: int = 500
    body: str = ""
    delay: timedelta = timedelta(0)
    rate: float = 0.0

    @classmethod
    def from_dict(cls, data: Any) -> FaultConfig:
        """Build from a wire body ``{status_code, body?, delay?|delay_ms?, rate?}``.

        ``status`` is accepted as an alias of ``status_code``, and a non-string
        ``body`` is re-encoded as JSON.

        Raises:
            ValueError: If a field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError("fault config must be a JSON object")

        status = data.get("status_code", data.get("status", 500))
        if isinstance(status, bool) or not isinstance(status, int):
            raise ValueError("status_code must be an integer")

        body = data.get("body", "")
        if body is None:
            body = ""
        elif not isinstance(body, str):
            body = json.dumps(body)

        delay = timedelta(0)
        if isinstance(data.get("delay"), str):
            delay = parse_duration(data["delay"])
        elif "delay_ms" in data:
            delay_ms = data["delay_ms"]
            if isinstance(delay_ms, bool) or not isinstance(delay_ms, int | float):
                raise ValueError("delay_ms must be a number")
            delay = timedelta(milliseconds=delay_ms)

        rate = data.get("rate", 0.0)
        if isinstance(rate, bool) or not isinstance(rate, int | float):
            raise ValueError("rate must be a number")
        if not 0.0 <= rate <= 1.0:
            raise ValueError("rate must be between 0.0 and 1.0")

        return cls(status_code=status, body=body, delay=delay, rate=float(rate))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status_code": self.status_code}
        if self.body:
            result["body"] = self.body
        if self.delay:
            result["delay_ms"] = int(self.delay / timedelta(milliseconds=1))
        result["rate"] = self.rate
        return result


class FaultRegistry:
    """Faults keyed by exact request path."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._lock = threading.Lock()
        self._faults: dict[str, FaultConfig] = {}
        self._random = rng or random.Random()

    def set(self, path: str, fault: FaultConfig) -> FaultConfig:
        if fault.rate == 0:
            fault.rate = 1.0
        with self._lock:
            self._faults[path] = fault
        return fault

    def remove(self, path: str) -> bool:
        with self._lock:
            return self._faults.pop(path, None) is not None

    def check(self, path: str) -> FaultConfig | None:
        """Return the fault for ``path`` if one is registered and its rate roll fires."""
        with self._lock:
            fault = self._faults.get(path)
            if fault is None:
                return None
            if fault.rate >= 1.0 or self._random.random() < fault.rate:
                return fault
            return None

    def all(self) -> dict[str, FaultConfig]:
        with self._lock:
            return dict(self._faults)

    def reset(self) -> None:
        with self._lock:
            self._faults.clear()


# ---------------------------------------------------------------------------
# Idempotency
# ---------------------------------------------------------------------------


@dataclass
class IdempotencyEntry:
    status: int
    body: bytes
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class IdempotencyTracker:
    """Stored responses keyed by ``Idempotency-Key``; cleared only by reset."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, IdempotencyEntry] = {}

    def check(self, key: str) -> IdempotencyEntry | None:
        with self._lock:
            return self._entries.get(key)

    def store(self, key: str, status: int, body: bytes) -> None:
        with self._lock:
            self._entries[key] = IdempotencyEntry(status=status, body=body)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class Pipeline:
    """Middleware chain plus the per-twin registries it consults.

    Args:
        config: The twin's runtime config (latency, fail rate, verbosity).
        log_size: Capacity of the request-log ring.
        rng: Random source for jitter, failure and fault-rate rolls.
    """

    def __init__(
        self,
        config: TwinConfig,
        *,
        log_size: int = DEFAULT_LOG_SIZE,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config
        self._random = rng or random.Random()
        self.request_log = RequestLog(log_size)
        self.faults = FaultRegistry(self._random)
        self.idempotency = IdempotencyTracker()

    def install(self, app: FastAPI) -> None:
        """Attach the global middleware chain to ``app``.

        Starlette runs the last-added middleware first, so layers are added
        innermost first.
        """
        for dispatch in (
            self.random_failure,
            self.latency_injection,
            self.request_logging,
            self.cors,
            self.real_ip,
            self.request_id,
        ):
            app.add_middleware(BaseHTTPMiddleware, dispatch=dispatch)

    # -- global layers -------------------------------------------------------

    async def request_id(self, request: Request, call_next: CallNext) -> Response:
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = rid
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response

    async def real_ip(self, request: Request, call_next: CallNext) -> Response:
        ip = request.headers.get("X-Real-IP")
        if not ip:
            forwarded = request.headers.get("X-Forwarded-For", "")
            ip = forwarded.split(",")[0].strip()
        if not ip and request.client is not None:
            ip = request.client.host
        request.state.real_ip = ip
        return await call_next(request)

    async def cors(self, request: Request, call_next: CallNext) -> Response:
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    async def request_logging(self, request: Request, call_next: CallNext) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        _, _, verbose = self.config.snapshot()
        self.request_log.add(
            RequestLogEntry(
                timestamp=datetime.now(UTC),
                method=request.method,
                path=request.url.path,
                status_code=response.status_code or 200,
                duration_ms=round((time.perf_counter() - start) * 1000, 3),
                request_id=getattr(request.state, "request_id", ""),
                remote_addr=getattr(request.state, "real_ip", ""),
                headers=dict(request.headers.items()) if verbose else None,
            )
        )
        return response

    async def latency_injection(self, request: Request, call_next: CallNext) -> Response:
        latency, _, _ = self.config.snapshot()
        if latency > timedelta(0):
            jitter = 0.8 + self._random.random() * 0.4
            await asyncio.sleep(latency.total_seconds() * jitter)
        return await call_next(request)

    async def random_failure(self, request: Request, call_next: CallNext) -> Response:
        _, fail_rate, _ = self.config.snapshot()
        if fail_rate > 0 and self._random.random() < fail_rate:
            logger.debug("Random failure for %s %s", request.method, request.url.path)
            return error_response(500, "simulated random failure")
        return await call_next(request)

    # -- per-route layers ----------------------------------------------------

    async def fault_response(self, fault: FaultConfig) -> Response:
        if fault.delay > timedelta(0):
            await asyncio.sleep(fault.delay.total_seconds())
        body = fault.body or generic_fault_body(fault.status_code)
        return Response(content=body, status_code=fault.status_code, media_type="application/json")

    async def replay_or_record(
        self,
        key: str,
        request: Request,
        handler: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        cached = self.idempotency.check(key)
        if cached is not None:
            return Response(
                content=cached.body,
                status_code=cached.status,
                media_type="application/json",
                headers={"Idempotent-Replayed": "true"},
            )
        response = await handler(request)
        self.idempotency.store(key, response.status_code, bytes(getattr(response, "body", b"")))
        return response

    def route_class(self, *, idempotent: bool = False) -> type[APIRoute]:
        """Route class for vendor routers: ``APIRouter(route_class=...)``.

        Args:
            idempotent: Also replay POST responses by ``Idempotency-Key``.
        """
        pipeline = self

        class TwinRoute(APIRoute):
            def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
                handler = super().get_route_handler()

                async def route_handler(request: Request) -> Response:
                    fault = pipeline.faults.check(request.url.path)
                    if fault is not None:
                        return await pipeline.fault_response(fault)
                    if idempotent and request.method == "POST":
                        key = request.headers.get("Idempotency-Key")
                        if key:
                            return await pipeline.replay_or_record(key, request, handler)
                    return await handler(request)

                return route_handler

        return TwinRoute

    def reset(self) -> None:
        """Clear the request log, faults and idempotency cache."""
        self.request_log.clear()
        self.faults.reset()
        self.idempotency.reset()
