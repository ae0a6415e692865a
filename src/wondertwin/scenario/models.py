"""Scenario document models (v2, JSON)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Setup(BaseModel):
    """Fleet preamble run before the first step."""

    model_config = ConfigDict(extra="ignore")

    reset: list[str] = Field(default_factory=list)
    seed_files: dict[str, str] = Field(default_factory=dict)


class Request(BaseModel):
    model_config = ConfigDict(extra="ignore")

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class Assert(BaseModel):
    """Expectations for one step.

    Attributes:
        status: Exact status code; 0 skips the check.
        body_contains: Substring the raw body must contain (template-expanded).
        headers: Exact header values.
        body: JSONPath -> literal or operator object
            (``exists``, ``eq``, ``gte``, ``lte``, ``contains``, ``regex``).
    """

    model_config = ConfigDict(extra="ignore")

    status: int = 0
    body_contains: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] = Field(default_factory=dict)


class Step(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    request: Request
    capture: dict[str, str] = Field(default_factory=dict)
    assert_: Assert | None = Field(default=None, alias="assert")


class Scenario(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    description: str = ""
    workflow: str = ""
    variables: dict[str, str] = Field(default_factory=dict)
    setup: Setup | None = None
    steps: list[Step] = Field(default_factory=list)
