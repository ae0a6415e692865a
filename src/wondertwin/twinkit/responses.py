"""JSON response helpers shared by twin handlers and the admin plane."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from fastapi.responses import JSONResponse, Response

from wondertwin.twinkit.store import to_jsonable


def json_response(status: int, value: Any = None) -> Response:
    """Write ``value`` as JSON with ``status``. ``None`` produces an empty body."""
    if value is None:
        return Response(status_code=status, media_type="application/json")
    return JSONResponse(to_jsonable(value), status_code=status)


def status_text(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


def error_response(status: int, message: str) -> Response:
    """Generic error body: ``{"error": {"message", "type", "code"}}``."""
    return json_response(
        status,
        {"error": {"message": message, "type": status_text(status), "code": status}},
    )


def vendor_error(status: int, error_type: str, code: str, message: str) -> Response:
    """Vendor-shaped error body: ``{"error": {"type", "code", "message"}}``.

    Matches the layout Stripe-style APIs use, for twins whose target vendor
    reports errors that way.
    """
    return json_response(
        status,
        {"error": {"type": error_type, "code": code, "message": message}},
    )
