"""
Reference twin: a generic ``/v1/resources`` API.

Starting point for new twins and the twin the conformance harness and
integration tests run against. Replace the resource model and handlers with
the target vendor's; keep the wiring in :func:`build`.

Run it with::

    python -m wondertwin.twins.template --port 4200
"""

from __future__ import annotations

import json
import logging
from typing import Any

import pydantic
from fastapi import Depends, FastAPI, Request
from fastapi.responses import Response
from pydantic import BaseModel, ConfigDict

from wondertwin.errors import StateParseError
from wondertwin.twinkit.admin import QuirkSet, QuirkStatus, StateContract
from wondertwin.twinkit.responses import json_response, vendor_error
from wondertwin.twinkit.server import TwinServer, twin_cli
from wondertwin.twinkit.store import KeyedStore, SimulatedClock
from wondertwin.twinkit.webhooks import HmacSigner, WebhookDispatcher

logger = logging.getLogger(__name__)

TWIN_NAME = "twin-template"
DEFAULT_PORT = 4200

QUIRK_MISSING_NAME_400 = "missing_name_400"


class Resource(BaseModel):
    """A resource as the vendor API returns it."""

    model_config = ConfigDict(extra="ignore")

    id: str
    object: str = "resource"
    name: str
    description: str | None = None
    metadata: dict[str, str] | None = None
    created_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class CreateResource(BaseModel):
    name: str = ""
    description: str | None = None
    metadata: dict[str, str] | None = None


class UpdateResource(BaseModel):
    name: str | None = None
    description: str | None = None
    metadata: dict[str, str] | None = None


class ApiError(Exception):
    """Vendor-shaped error raised from handlers and auth."""

    def __init__(
        self,
        status: int,
        message: str,
        error_type: str = "invalid_request_error",
        code: str = "",
    ):
        self.status = status
        self.message = message
        self.error_type = error_type
        self.code = code
        super().__init__(message)

    def to_response(self) -> Response:
        return vendor_error(self.status, self.error_type, self.code, self.message)


class TemplateState:
    """All in-memory state of the twin; satisfies the admin state contract."""

    def __init__(self, webhooks: WebhookDispatcher | None = None) -> None:
        self.resources: KeyedStore[Resource] = KeyedStore("res")
        self.clock = SimulatedClock()
        self.webhooks = webhooks

    def snapshot(self) -> dict[str, Any]:
        return {"resources": {k: v.to_dict() for k, v in self.resources.snapshot().items()}}

    def load_state(self, data: bytes) -> None:
        try:
            raw = json.loads(data)
        except ValueError as e:
            raise StateParseError(str(e)) from e
        if not isinstance(raw, dict):
            raise StateParseError("state must be a JSON object")

        try:
            resources = {
                key: Resource.model_validate(value)
                for key, value in (raw.get("resources") or {}).items()
            }
        except (AttributeError, pydantic.ValidationError) as e:
            raise StateParseError(f"invalid resources: {e}") from e
        self.resources.load_snapshot(resources)

    def reset(self) -> None:
        self.resources.reset()
        self.clock.reset()
        if self.webhooks is not None:
            self.webhooks.reset()


def require_api_key(request: Request) -> str:
    """Accept any non-empty Bearer token, the way a sandbox key would be."""
    auth = request.headers.get("Authorization", "")
    if not auth:
        raise ApiError(401, "Missing API key.", "authentication_error", "missing_api_key")
    token = auth.removeprefix("Bearer ")
    if token == auth or not token:
        raise ApiError(401, "Invalid API key format.", "authentication_error", "invalid_api_key")
    return token


async def _parse_body(request: Request, model: type[BaseModel]) -> Any:
    try:
        return model.model_validate(json.loads(await request.body()))
    except (ValueError, pydantic.ValidationError) as e:
        raise ApiError(400, f"Invalid request body: {e}") from e


def build(server: TwinServer) -> StateContract:
    """Wire the resources API, webhooks, quirks and the admin plane onto ``server``."""
    webhooks = WebhookDispatcher(
        lambda: server.config.get_config()["webhook_url"],
        secret="whsec_template",
        signer=HmacSigner(),
    )
    state = TemplateState(webhooks)
    quirks = QuirkSet(
        [
            QuirkStatus(
                id=QUIRK_MISSING_NAME_400,
                summary="Report a missing name as 400 instead of 422",
                type="status_code",
                severity="low",
            )
        ]
    )

    router = server.router(prefix="/v1/resources", idempotent=True)
    auth = [Depends(require_api_key)]

    def missing(resource_id: str) -> ApiError:
        return ApiError(404, f"No such resource: {resource_id}", code="resource_missing")

    @router.post("", dependencies=auth)
    async def create_resource(request: Request) -> Response:
        req = await _parse_body(request, CreateResource)
        if not req.name:
            status = 400 if quirks.is_enabled(QUIRK_MISSING_NAME_400) else 422
            raise ApiError(status, "The 'name' field is required.", code="parameter_missing")

        resource = Resource(
            id=state.resources.next_id(),
            name=req.name,
            description=req.description or None,
            metadata=req.metadata or None,
            created_at=int(state.clock.now().timestamp()),
        )
        state.resources.set(resource.id, resource)
        webhooks.enqueue("resource.created", resource.to_dict())
        return json_response(201, resource.to_dict())

    @router.get("", dependencies=auth)
    async def list_resources(starting_after: str = "", limit: int = 0) -> Response:
        page = state.resources.paginate(starting_after, limit)
        return json_response(
            200,
            {
                "object": "list",
                "url": "/v1/resources",
                "has_more": page.has_more,
                "data": [r.to_dict() for r in page.data],
            },
        )

    @router.get("/{resource_id}", dependencies=auth)
    async def get_resource(resource_id: str) -> Response:
        resource = state.resources.get(resource_id)
        if resource is None:
            raise missing(resource_id)
        return json_response(200, resource.to_dict())

    @router.patch("/{resource_id}", dependencies=auth)
    async def update_resource(resource_id: str, request: Request) -> Response:
        resource = state.resources.get(resource_id)
        if resource is None:
            raise missing(resource_id)
        req = await _parse_body(request, UpdateResource)
        updated = resource.model_copy(update=req.model_dump(exclude_none=True))
        state.resources.set(resource_id, updated)
        webhooks.enqueue("resource.updated", updated.to_dict())
        return json_response(200, updated.to_dict())

    @router.delete("/{resource_id}", dependencies=auth)
    async def delete_resource(resource_id: str) -> Response:
        if not state.resources.delete(resource_id):
            raise missing(resource_id)
        webhooks.enqueue("resource.deleted", {"id": resource_id})
        return json_response(200, {"id": resource_id, "object": "resource", "deleted": True})

    server.include(router)
    server.app.add_exception_handler(ApiError, _api_error_handler)
    server.mount_admin(state, clock=state.clock, flusher=webhooks, quirks=quirks)
    server.app.state.webhooks = webhooks
    return state


async def _api_error_handler(request: Request, exc: ApiError) -> Response:
    return exc.to_response()


def create_app(server: TwinServer) -> FastAPI:
    """Build the twin on ``server`` and return its app (for in-process tests)."""
    build(server)
    return server.app


app = twin_cli(TWIN_NAME, build, default_port=DEFAULT_PORT)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
