"""
Twin kit: the building blocks every twin process is made of.

This package provides:
- KeyedStore / SimulatedClock: thread-safe in-memory state and time
- Pipeline: request log, fault injection, idempotency replay
- AdminHandler: the /admin/* control plane
- TwinServer: FastAPI app, uvicorn serving, and the twin command line
- WebhookDispatcher: outbound event delivery
"""

from wondertwin.twinkit.admin import AdminHandler, QuirkSet, QuirkStatus, StateContract
from wondertwin.twinkit.config import TwinConfig
from wondertwin.twinkit.pipeline import FaultConfig, Pipeline
from wondertwin.twinkit.server import TwinServer, twin_cli
from wondertwin.twinkit.store import KeyedStore, Page, SimulatedClock
from wondertwin.twinkit.webhooks import HmacSigner, WebhookDispatcher

__all__ = [
    "AdminHandler",
    "FaultConfig",
    "HmacSigner",
    "KeyedStore",
    "Page",
    "Pipeline",
    "QuirkSet",
    "QuirkStatus",
    "SimulatedClock",
    "StateContract",
    "TwinConfig",
    "TwinServer",
    "WebhookDispatcher",
    "twin_cli",
]
