"""
Twin process configuration.

Every twin binary accepts the same flags (``--port``, ``--latency``,
``--fail-rate``, ``--webhook-url``, ``--seed-file``, ``--verbose``). Some of
them can be changed at runtime through ``PUT /admin/config``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from wondertwin.twinkit.durations import format_duration, parse_duration


@dataclass
class TwinConfig:
    """Runtime settings of one twin process.

    Attributes:
        name: Twin name, used in logs (e.g. "twin-stripe").
        port: HTTP listen port.
        latency: Base simulated latency added to every request.
        fail_rate: Probability (0.0-1.0) of a random 500 on every request.
        webhook_url: Where webhook events are delivered.
        seed_file: JSON fixture loaded into the state contract at start-up.
        verbose: Capture request headers in the request log.
    """

    name: str = ""
    port: int = 0
    latency: timedelta = timedelta(0)
    fail_rate: float = 0.0
    webhook_url: str = ""
    seed_file: str = ""
    verbose: bool = False
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def get_config(self) -> dict[str, Any]:
        """Current runtime config, as served by ``GET /admin/config``."""
        with self._lock:
            return {
                "name": self.name,
                "port": self.port,
                "latency": format_duration(self.latency),
                "fail_rate": self.fail_rate,
                "webhook_url": self.webhook_url,
                "verbose": self.verbose,
            }

    def update_config(self, updates: dict[str, Any]) -> None:
        """Validate every key, then apply all of them together.

        Raises:
            ValueError: On the first invalid or read-only key; nothing is applied.
        """
        staged: dict[str, Any] = {}
        for key, value in updates.items():
            if key == "latency":
                if not isinstance(value, str):
                    raise ValueError("latency must be a duration string")
                try:
                    latency = parse_duration(value)
                except ValueError as e:
                    raise ValueError(f"invalid latency duration: {e}") from e
                if latency < timedelta(0):
                    raise ValueError("latency must not be negative")
                staged["latency"] = latency
            elif key == "fail_rate":
                if isinstance(value, bool) or not isinstance(value, int | float):
                    raise ValueError("fail_rate must be a number")
                if not 0.0 <= value <= 1.0:
                    raise ValueError("fail_rate must be between 0.0 and 1.0")
                staged["fail_rate"] = float(value)
            elif key == "verbose":
                if not isinstance(value, bool):
                    raise ValueError("verbose must be a boolean")
                staged["verbose"] = value
            elif key == "webhook_url":
                if not isinstance(value, str):
                    raise ValueError("webhook_url must be a string")
                staged["webhook_url"] = value
            elif key in ("name", "port"):
                raise ValueError(f"{key} cannot be changed at runtime")
            else:
                raise ValueError(f"unknown config key: {key}")

        with self._lock:
            for key, value in staged.items():
                setattr(self, key, value)

    def snapshot(self) -> tuple[timedelta, float, bool]:
        """Latency, fail rate and verbosity read under one lock."""
        with self._lock:
            return self.latency, self.fail_rate, self.verbose
