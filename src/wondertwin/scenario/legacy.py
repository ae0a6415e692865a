"""
Legacy (v1) YAML scenarios.

The v1 format predates captures and JSONPath. Bodies are plain strings, the
only templates are ``{{twins.<name>.port}}`` and ``{{twins.<name>.admin_port}}``,
and ``body_json`` compares top-level keys by their string form.
"""

from __future__ import annotations

import json
import time
from pathlib import Path

import httpx
import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from wondertwin.errors import SetupError, ValidationError, WonderTwinError
from wondertwin.fleet.manifest import Manifest
from wondertwin.scenario.models import Setup
from wondertwin.scenario.runner import REQUEST_TIMEOUT, Runner, ScenarioResult, StepResult
from wondertwin.scenario.template import format_value, resolve_twin

LEGACY_EXTENSIONS = (".yaml", ".yml")


# =============================================================================
# Models
# =============================================================================


class LegacySetup(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reset: list[str] = Field(default_factory=list)
    seed: dict[str, str] = Field(default_factory=dict)


class LegacyRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    method: str = "GET"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""


class LegacyAssert(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: int = 0
    body_contains: str = ""
    body_json: dict[str, str] = Field(default_factory=dict)


class LegacyStep(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = ""
    request: LegacyRequest
    assert_: LegacyAssert = Field(default_factory=LegacyAssert, alias="assert")


class LegacyScenario(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = ""
    description: str = ""
    setup: LegacySetup = Field(default_factory=LegacySetup)
    steps: list[LegacyStep] = Field(default_factory=list)


# =============================================================================
# Loading
# =============================================================================


def is_legacy(path: str | Path) -> bool:
    return Path(path).suffix.lower() in LEGACY_EXTENSIONS


def load_legacy(path: str | Path) -> LegacyScenario:
    """Parse one v1 YAML scenario.

    Raises:
        ValidationError: Unreadable file, bad YAML, missing name, or no steps.
    """
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValidationError(f"reading scenario {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ValidationError(f"parsing scenario {path}: {e}") from e

    try:
        scenario = LegacyScenario.model_validate(raw or {})
    except PydanticValidationError as e:
        raise ValidationError(f"parsing scenario {path}: {e}") from e

    if not scenario.name:
        raise ValidationError(f"scenario {path}: name is required")
    if not scenario.steps:
        raise ValidationError(f"scenario {path}: at least one step is required")
    return scenario


def expand_twins(text: str, manifest: Manifest | None) -> str:
    """Replace ``{{twins.*}}`` expressions; other braces pass through untouched."""
    out: list[str] = []
    pos = 0
    while True:
        start = text.find("{{twins.", pos)
        if start == -1:
            out.append(text[pos:])
            return "".join(out)
        end = text.find("}}", start)
        if end == -1:
            raise WonderTwinError(f"unterminated template expression at position {start}")
        out.append(text[pos:start])
        out.append(resolve_twin(text[start + 2 : end].strip(), manifest))
        pos = end + 2


# =============================================================================
# Running
# =============================================================================


class LegacyRunner(Runner):
    """Runs v1 scenarios with the v2 runner's setup and HTTP plumbing."""

    def run(self, scenario: LegacyScenario) -> ScenarioResult:  # type: ignore[override]
        start = time.perf_counter()
        result = ScenarioResult(name=scenario.name)

        setup = Setup(reset=scenario.setup.reset, seed_files=scenario.setup.seed)
        try:
            self._run_setup(setup)
        except WonderTwinError as e:
            raise SetupError(f"setup failed: {e.message}") from e

        for step in scenario.steps:
            step_result = self._run_legacy_step(step)
            result.steps.append(step_result)
            if not step_result.passed:
                result.passed = False

        result.duration = time.perf_counter() - start
        return result

    def _run_legacy_step(self, step: LegacyStep) -> StepResult:
        start = time.perf_counter()
        result = StepResult(name=step.name)
        try:
            self._legacy_step(step)
        except WonderTwinError as e:
            result.error = e.message
        else:
            result.passed = True
        result.duration = time.perf_counter() - start
        return result

    def _legacy_step(self, step: LegacyStep) -> None:
        try:
            url = expand_twins(step.request.url, self.manifest)
        except WonderTwinError as e:
            raise WonderTwinError(f"template expansion: {e.message}") from e

        body = step.request.body
        if body:
            try:
                body = expand_twins(body, self.manifest)
            except WonderTwinError as e:
                raise WonderTwinError(f"template expansion in body: {e.message}") from e

        try:
            response = self.client.request(
                step.request.method.upper() or "GET",
                url,
                content=body or None,
                headers=step.request.headers,
                timeout=REQUEST_TIMEOUT,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise WonderTwinError(f"request failed: {e}") from e

        expect = step.assert_
        if expect.status and response.status_code != expect.status:
            raise WonderTwinError(
                f"expected status {expect.status}, got {response.status_code}"
            )

        if expect.body_contains and expect.body_contains not in response.text:
            raise WonderTwinError(f'body does not contain "{expect.body_contains}"')

        if expect.body_json:
            try:
                parsed = json.loads(response.content)
            except ValueError as e:
                raise WonderTwinError(f"body is not valid JSON: {e}") from e
            if not isinstance(parsed, dict):
                raise WonderTwinError("body is not valid JSON: expected an object")
            for key, expected in expect.body_json.items():
                if key not in parsed:
                    raise WonderTwinError(f'body_json: key "{key}" not found in response')
                actual = format_value(parsed[key])
                if actual != expected:
                    raise WonderTwinError(
                        f'body_json: key "{key}" expected "{expected}", got "{actual}"'
                    )
