"""
Scenario runner (v2).

Runs a scenario's setup preamble against the fleet, then its steps in order.
Each step expands templates, sends one HTTP request, captures values from the
response, and checks assertions. A failing step that captures variables
skips every later step, since they would run with missing values.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from wondertwin.errors import CaptureError, NotFoundError, SetupError, WonderTwinError
from wondertwin.fleet.manifest import Manifest
from wondertwin.scenario import assertions
from wondertwin.scenario.jsonpath import extract
from wondertwin.scenario.models import Assert, Scenario, Setup, Step
from wondertwin.scenario.template import expand, format_value

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10.0
MAX_RESPONSE_BODY = 10 * 1024 * 1024
SKIPPED = "skipped: previous step failed"


@dataclass
class StepResult:
    name: str
    passed: bool = False
    duration: float = 0.0
    error: str = ""

    @property
    def skipped(self) -> bool:
        return self.error == SKIPPED


@dataclass
class ScenarioResult:
    name: str
    passed: bool = True
    steps: list[StepResult] = field(default_factory=list)
    duration: float = 0.0


@dataclass
class _Response:
    status_code: int
    headers: httpx.Headers
    body: bytes


class Runner:
    """Executes scenarios against the twins of one manifest.

    Args:
        manifest: Fleet manifest used for ``twins.*`` templates and setup.
        client: Optional httpx client (tests pass one with a mock transport).
    """

    def __init__(self, manifest: Manifest | None, client: httpx.Client | None = None) -> None:
        self.manifest = manifest
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=REQUEST_TIMEOUT)

    def close(self) -> None:
        """Close the HTTP client if this runner created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> Runner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def run(self, scenario: Scenario) -> ScenarioResult:
        """Run one scenario with a fresh variable scope.

        Raises:
            SetupError: If a reset or seed in the preamble fails; no step runs.
        """
        start = time.perf_counter()
        result = ScenarioResult(name=scenario.name)
        variables = dict(scenario.variables)

        if scenario.setup is not None:
            try:
                self._run_setup(scenario.setup)
            except WonderTwinError as e:
                raise SetupError(f"setup failed: {e.message}") from e

        stop = False
        for step in scenario.steps:
            if stop:
                result.steps.append(StepResult(name=step.name, error=SKIPPED))
                continue

            step_result = self._run_step(step, variables)
            result.steps.append(step_result)
            if not step_result.passed:
                result.passed = False
                if step.capture:
                    stop = True

        result.duration = time.perf_counter() - start
        return result

    # -- setup ---------------------------------------------------------------

    def _admin_url(self, name: str, path: str) -> str:
        if self.manifest is None:
            raise NotFoundError(f'twin "{name}" not found in manifest')
        return f"{self.manifest.twin(name).admin_url}/admin{path}"

    def _run_setup(self, setup: Setup) -> None:
        for name in setup.reset:
            try:
                response = self.client.post(self._admin_url(name, "/reset"))
            except (httpx.HTTPError, httpx.InvalidURL, WonderTwinError) as e:
                raise WonderTwinError(f"reset {name}: {e}") from e
            if response.status_code != 200:
                raise WonderTwinError(f"reset {name}: status {response.status_code}")

        for name, file_path in setup.seed_files.items():
            try:
                url = self._admin_url(name, "/state")
            except WonderTwinError as e:
                raise WonderTwinError(f"seed {name}: {e}") from e
            try:
                data = Path(file_path).read_bytes()
            except OSError as e:
                raise WonderTwinError(f"seed {name}: reading {file_path}: {e}") from e
            try:
                response = self.client.post(
                    url, content=data, headers={"Content-Type": "application/json"}
                )
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise WonderTwinError(f"seed {name}: {e}") from e
            if response.status_code != 200:
                raise WonderTwinError(f"seed {name}: status {response.status_code}")

    # -- steps ---------------------------------------------------------------

    def _run_step(self, step: Step, variables: dict[str, str]) -> StepResult:
        start = time.perf_counter()
        result = StepResult(name=step.name)
        try:
            response = self._send(step, variables)
            self._capture(step, response, variables)
            if step.assert_ is not None:
                self._check(step.assert_, response, variables)
        except WonderTwinError as e:
            result.error = e.message
        else:
            result.passed = True
        result.duration = time.perf_counter() - start
        return result

    def _expand(self, text: str, variables: dict[str, str], where: str) -> str:
        try:
            return expand(text, self.manifest, variables)
        except WonderTwinError as e:
            raise WonderTwinError(f"template expansion in {where}: {e.message}") from e

    def _send(self, step: Step, variables: dict[str, str]) -> _Response:
        request = step.request
        url = self._expand(request.url, variables, "url")

        content: str | None = None
        if request.body is not None:
            raw = request.body if isinstance(request.body, str) else json.dumps(request.body)
            try:
                content = expand(raw, self.manifest, variables)
            except WonderTwinError as e:
                raise WonderTwinError(f"building request body: {e.message}") from e

        headers = httpx.Headers()
        for key, value in request.headers.items():
            headers[key] = self._expand(value, variables, f'header "{key}"')
        if content is not None and "content-type" not in headers:
            headers["Content-Type"] = "application/json"

        try:
            with self.client.stream(
                request.method.upper(),
                url,
                content=content,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
            ) as response:
                body = _read_limited(response)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise WonderTwinError(f"request failed: {e}") from e

        return _Response(response.status_code, response.headers, body)

    def _capture(self, step: Step, response: _Response, variables: dict[str, str]) -> None:
        for name, path in step.capture.items():
            try:
                value = extract(response.body, path)
            except WonderTwinError as e:
                raise CaptureError(f'capture "{name}": {e.message}') from e
            variables[name] = format_value(value)

    def _check(self, expect: Assert, response: _Response, variables: dict[str, str]) -> None:
        if expect.status and response.status_code != expect.status:
            snippet = response.body.decode("utf-8", errors="replace")
            if len(snippet) > 200:
                snippet = snippet[:200] + "..."
            raise WonderTwinError(
                f"expected status {expect.status}, got {response.status_code}; body: {snippet}"
            )

        if expect.body_contains:
            needle = self._expand(expect.body_contains, variables, "body_contains")
            if needle not in response.body.decode("utf-8", errors="replace"):
                raise WonderTwinError(f'body does not contain "{needle}"')

        for key, expected in expect.headers.items():
            actual = response.headers.get(key, "")
            if actual != expected:
                raise WonderTwinError(f'header "{key}": expected "{expected}", got "{actual}"')

        if expect.body:
            expanded = {
                path: self._expand(value, variables, f'assertion "{path}"')
                if isinstance(value, str)
                else value
                for path, value in expect.body.items()
            }
            assertions.evaluate_body(response.body, expanded)


def _read_limited(response: httpx.Response) -> bytes:
    """Read at most ``MAX_RESPONSE_BODY`` bytes; the rest is dropped."""
    chunks: list[bytes] = []
    size = 0
    for chunk in response.iter_bytes():
        remaining = MAX_RESPONSE_BODY - size
        if remaining <= 0:
            break
        chunks.append(chunk[:remaining])
        size += min(len(chunk), remaining)
    return b"".join(chunks)
