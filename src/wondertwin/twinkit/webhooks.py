"""
Webhook dispatcher for twins.

Queues vendor events, delivers them to the configured URL on flush (or
immediately when auto-delivery is on), signs payloads the way the target
vendor does, and keeps a record of every delivery attempt.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0


class Signer(Protocol):
    """Produces the signature headers for a webhook payload."""

    def sign(self, payload: bytes, secret: str) -> dict[str, str]: ...


class HmacSigner:
    """Stripe-style ``t=<unix>,v1=<hex hmac-sha256>`` signature header.

    Args:
        header: Header name carrying the signature.
    """

    def __init__(self, header: str = "Webhook-Signature") -> None:
        self.header = header

    def sign(self, payload: bytes, secret: str) -> dict[str, str]:
        timestamp = str(int(time.time()))
        signed = f"{timestamp}.".encode() + payload
        digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return {self.header: f"t={timestamp},v1={digest}"}


@dataclass
class Event:
    id: str
    type: str
    data: dict[str, Any]
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "data": self.data,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class Delivery:
    """Record of one delivery attempt."""

    event_id: str
    url: str
    attempt: int
    status_code: int = 0
    error: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class WebhookDispatcher:
    """Queues and delivers webhook events for one twin.

    Args:
        url: Target URL, or a callable returning the current one (e.g. bound to
            the twin's runtime config). Delivery is skipped while it is empty.
        secret: Signing secret; no signature headers are sent without one.
        signer: Vendor signing scheme.
        max_retries: Attempts per event before giving up.
        retry_delay: Seconds between attempts.
        event_prefix: Prefix for event IDs (``evt_000001``).
        auto_deliver: Deliver each event in a background thread as it is queued.
        client: Optional httpx client (tests pass one with a mock transport).
    """

    def __init__(
        self,
        url: str | Callable[[], str] = "",
        *,
        secret: str = "",
        signer: Signer | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        event_prefix: str = "evt",
        auto_deliver: bool = False,
        client: httpx.Client | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._url = url
        self._secret = secret
        self._signer = signer
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._prefix = event_prefix
        self._auto_deliver = auto_deliver
        self._client = client or httpx.Client(timeout=30.0)
        self._queue: list[Event] = []
        self._deliveries: list[Delivery] = []
        self._counter = 0

    def set_url(self, url: str | Callable[[], str]) -> None:
        with self._lock:
            self._url = url

    def set_secret(self, secret: str) -> None:
        with self._lock:
            self._secret = secret

    def enqueue(self, event_type: str, data: dict[str, Any]) -> Event:
        with self._lock:
            self._counter += 1
            event = Event(id=f"{self._prefix}_{self._counter:06d}", type=event_type, data=data)
            self._queue.append(event)
            auto = self._auto_deliver

        if auto:
            threading.Thread(target=self._deliver_quietly, args=(event,), daemon=True).start()
        return event

    def flush(self) -> None:
        """Deliver every queued event in order, then clear the queue.

        Raises:
            RuntimeError: If any event could not be delivered (the last failure).
        """
        with self._lock:
            events = list(self._queue)

        last_error: Exception | None = None
        for event in events:
            try:
                self._deliver(event)
            except RuntimeError as e:
                last_error = e

        with self._lock:
            self._queue.clear()

        if last_error is not None:
            raise last_error

    def flush_webhooks(self) -> None:
        self.flush()

    def _deliver_quietly(self, event: Event) -> None:
        try:
            self._deliver(event)
        except RuntimeError as e:
            logger.warning("Auto-delivery of %s failed: %s", event.id, e)

    def _deliver(self, event: Event) -> None:
        with self._lock:
            source, secret, signer = self._url, self._secret, self._signer
        url = source() if callable(source) else source

        if not url:
            logger.debug("No webhook URL configured, skipping delivery of %s", event.id)
            return

        payload = json.dumps(event.to_dict()).encode()
        headers = {"Content-Type": "application/json"}
        if signer is not None and secret:
            headers.update(signer.sign(payload, secret))

        last_error = ""
        for attempt in range(1, self._max_retries + 1):
            delivery = Delivery(event_id=event.id, url=url, attempt=attempt)
            try:
                response = self._client.post(url, content=payload, headers=headers)
                delivery.status_code = response.status_code
                if 200 <= response.status_code < 300:
                    self._record(delivery)
                    logger.debug("Delivered %s to %s", event.id, url)
                    return
                last_error = f"webhook delivery failed: status {response.status_code}"
            except httpx.HTTPError as e:
                delivery.error = str(e)
                last_error = str(e)

            self._record(delivery)
            if attempt < self._max_retries:
                time.sleep(self._retry_delay)

        raise RuntimeError(last_error)

    def _record(self, delivery: Delivery) -> None:
        with self._lock:
            self._deliveries.append(delivery)

    def deliveries(self) -> list[Delivery]:
        with self._lock:
            return list(self._deliveries)

    def queued_events(self) -> list[Event]:
        with self._lock:
            return list(self._queue)

    def reset(self) -> None:
        with self._lock:
            self._queue.clear()
            self._deliveries.clear()
            self._counter = 0
