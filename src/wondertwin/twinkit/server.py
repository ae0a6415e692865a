"""
Twin server: FastAPI app, pipeline, admin plane and uvicorn serving.

A twin module builds its vendor routes on a :class:`TwinServer` and exposes a
command line through :func:`twin_cli`::

    def build(server: TwinServer) -> StateContract:
        state = MyState()
        router = server.router(prefix="/v1", idempotent=True)
        ...
        server.include(router)
        server.mount_admin(state, clock=state.clock)
        return state

    app = twin_cli("twin-acme", build, default_port=4200)
"""

from __future__ import annotations

import logging
import random
import sys
from collections.abc import Callable
from pathlib import Path

import typer
from fastapi import APIRouter, FastAPI

from wondertwin.errors import StateParseError
from wondertwin.twinkit.admin import AdminHandler, QuirkStore, StateContract, WebhookFlusher
from wondertwin.twinkit.config import TwinConfig
from wondertwin.twinkit.durations import parse_duration
from wondertwin.twinkit.pipeline import Pipeline
from wondertwin.twinkit.store import SimulatedClock

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 10


class TwinServer:
    """One twin process: the app, its pipeline and its runtime config.

    Args:
        config: Twin configuration (usually parsed from flags).
        rng: Random source for the pipeline (tests pass a seeded one).
    """

    def __init__(self, config: TwinConfig, *, rng: random.Random | None = None) -> None:
        self.config = config
        self.pipeline = Pipeline(config, rng=rng)
        self.app = FastAPI(
            title=config.name or "twin",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )
        self.app.state.twin = self
        self.pipeline.install(self.app)
        self.admin: AdminHandler | None = None

    def router(self, *, prefix: str = "", idempotent: bool = False) -> APIRouter:
        """A router whose routes honour fault injection (and optionally idempotency)."""
        route_class = self.pipeline.route_class(idempotent=idempotent)
        return APIRouter(prefix=prefix, route_class=route_class)

    def include(self, router: APIRouter) -> None:
        self.app.include_router(router)

    def mount_admin(
        self,
        state: StateContract,
        *,
        clock: SimulatedClock | None = None,
        flusher: WebhookFlusher | None = None,
        quirks: QuirkStore | None = None,
    ) -> AdminHandler:
        """Mount ``/admin/*`` bound to ``state``; runtime config is always exposed."""
        handler = AdminHandler(state, self.pipeline, clock)
        handler.set_config_provider(self.config)
        if flusher is not None:
            handler.set_flusher(flusher)
        if quirks is not None:
            handler.set_quirk_store(quirks)
        self.app.include_router(handler.routes())
        self.admin = handler
        return handler

    def load_seed(self, state: StateContract) -> None:
        """Load ``config.seed_file`` into ``state`` if one is configured.

        Raises:
            OSError: If the file cannot be read.
            StateParseError: If the state contract rejects it.
        """
        if not self.config.seed_file:
            return
        data = Path(self.config.seed_file).read_bytes()
        state.load_state(data)
        logger.info("Loaded seed data from %s", self.config.seed_file)

    def serve(self) -> None:
        """Serve on 127.0.0.1 until SIGINT/SIGTERM, then drain for up to 10 s."""
        import uvicorn

        _, _, verbose = self.config.snapshot()
        config = uvicorn.Config(
            self.app,
            host="127.0.0.1",
            port=self.config.port,
            log_level="debug" if verbose else "info",
            access_log=False,
            timeout_graceful_shutdown=SHUTDOWN_TIMEOUT,
        )
        logger.info("Starting twin %s on port %d", self.config.name, self.config.port)
        uvicorn.Server(config).run()
        logger.info("Twin %s stopped", self.config.name)


def twin_cli(
    name: str,
    build: Callable[[TwinServer], StateContract],
    *,
    default_port: int = 0,
) -> typer.Typer:
    """Build the standard command line for a twin.

    Args:
        name: Twin name (e.g. "twin-stripe").
        build: Registers routes on the server and returns the state contract.
        default_port: Port used when neither ``--port`` nor ``PORT`` is set.
    """
    app = typer.Typer(add_completion=False, help=f"{name} behavioral twin")

    @app.command()
    def run(
        port: int = typer.Option(0, "--port", envvar="PORT", help="HTTP listen port"),
        latency: str = typer.Option("0s", "--latency", help="Base simulated latency"),
        fail_rate: float = typer.Option(0.0, "--fail-rate", help="Random failure rate 0.0-1.0"),
        webhook_url: str = typer.Option("", "--webhook-url", help="URL to send webhooks to"),
        seed_file: str = typer.Option(
            "", "--seed-file", help="Path to JSON fixture for initial state"
        ),
        verbose: bool = typer.Option(False, "--verbose", help="Enable request/response logging"),
    ) -> None:
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        try:
            latency_value = parse_duration(latency)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=2)

        config = TwinConfig(
            name=name,
            port=port or default_port,
            latency=latency_value,
            fail_rate=fail_rate,
            webhook_url=webhook_url,
            seed_file=seed_file,
            verbose=verbose,
        )
        server = TwinServer(config)
        state = build(server)
        try:
            server.load_seed(state)
        except (OSError, StateParseError, ValueError) as e:
            typer.echo(f"Error: failed to load seed data: {e}", err=True)
            raise typer.Exit(code=1)

        server.serve()

    return app
