"""Run documented requests as steps of a scenario.

Each step is parse -> resolve placeholders -> execute -> compare. A step
that reads a stored value (``[name]``) waits for the step whose ``outputs``
capture that value; independent steps run concurrently, bounded by the
transport's semaphore.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from api_doc_check.config import ValidationConfig, read_yaml
from api_doc_check.errors import (
    ApiDocCheckError,
    ConfigurationError,
    PlaceholderValueNotFoundError,
)
from api_doc_check.http.models import MIME_TYPE_JSON, Request, Response
from api_doc_check.http.parser import try_parse_request, try_parse_response
from api_doc_check.http.transport import FAILURE_STATUS_PREFIX, HttpTransport
from api_doc_check.issues import IssueCode, IssueLogger
from api_doc_check.params.evaluator import ExpressionEvaluator, default_evaluator
from api_doc_check.params.placeholders import (
    PlaceholderLocation,
    location_for_key,
    rewrite_request,
    to_placeholder_values,
    value_for_keyed_identifier,
)
from api_doc_check.validator.response import compare_responses
from api_doc_check.validator.schema import SchemaRegistry, validate_body

logger = logging.getLogger(__name__)


class ValidationStep(BaseModel):
    """One documented request plus what to check and capture."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    request: str
    expected_response: str | None = Field(None, alias="expectedResponse")
    parameters: dict[str, str | None] = {}
    # stored key ("[item-id]") -> capture key ("$.id", "Location:" or "!body")
    outputs: dict[str, str] = {}
    resource: str | None = None
    is_collection: bool = Field(False, alias="isCollection")
    allowed_status_codes: list[int] = Field([], alias="allowedStatusCodes")

    @property
    def consumes(self) -> set[str]:
        """Stored keys this step's parameters read."""
        return {v for v in self.parameters.values() if location_for_key(v) is PlaceholderLocation.STORED_VALUE}


class StepResult(BaseModel):
    name: str
    request: Request | None = None
    response: Response | None = None
    captured: dict[str, str] = {}
    passed: bool = False


def load_scenario(path: Path) -> list[ValidationStep]:
    """Read steps from a YAML file holding either a list or a ``steps:`` mapping."""
    data = read_yaml(path)
    if isinstance(data, dict):
        data = data.get("steps")
    if not isinstance(data, list):
        raise ConfigurationError(f"Scenario file {path} must contain a list of steps")
    try:
        return [ValidationStep.model_validate(item) for item in data]
    except ValidationError as e:
        raise ConfigurationError(f"Invalid scenario in {path}: {e}") from e


def order_steps(
    steps: list[ValidationStep],
    available: Iterable[str] = (),
) -> tuple[dict[str, list[str]], dict[str, str]]:
    """Work out which steps each step waits for.

    Returns ``(dependencies, failures)``: step name -> producer step names,
    and step name -> reason for steps that can never run (a stored key no
    step produces, or a dependency cycle).
    """
    available = set(available)
    producers: dict[str, str] = {}
    for step in steps:
        for key in step.outputs:
            producers.setdefault(key, step.name)

    dependencies: dict[str, list[str]] = {}
    failures: dict[str, str] = {}
    for step in steps:
        needed = []
        for key in sorted(step.consumes):
            if key in producers and producers[key] != step.name:
                needed.append(producers[key])
            elif key not in available:
                failures[step.name] = f"No step captures the stored value {key}."
        dependencies[step.name] = sorted(set(needed))

    visiting: set[str] = set()
    done: set[str] = set()

    def visit(name: str, trail: list[str]) -> None:
        if name in done:
            return
        if name in visiting:
            cycle = trail[trail.index(name):]
            for member in cycle:
                failures.setdefault(member, f"Stored values form a dependency cycle: {' -> '.join(cycle + [name])}")
            return
        visiting.add(name)
        for dependency in dependencies.get(name, []):
            visit(dependency, trail + [name])
        visiting.discard(name)
        done.add(name)

    for step in steps:
        visit(step.name, [])
    return dependencies, failures


class ScenarioRunner:
    def __init__(
        self,
        transport: HttpTransport,
        issues: IssueLogger,
        config: ValidationConfig | None = None,
        registry: SchemaRegistry | None = None,
        evaluator: ExpressionEvaluator = default_evaluator,
    ):
        self.transport = transport
        self.issues = issues
        self.config = config or ValidationConfig()
        self.registry = registry if registry is not None else SchemaRegistry()
        self.evaluator = evaluator

    async def run(self, steps: list[ValidationStep], stored_values: Mapping[str, str] | None = None) -> list[StepResult]:
        """Run every step, each after the steps it depends on have finished."""
        names = [s.name for s in steps]
        if len(set(names)) != len(names):
            raise ConfigurationError("Scenario step names must be unique")
        initial = dict(stored_values or {})
        dependencies, failures = order_steps(steps, initial)
        tasks: dict[str, asyncio.Task] = {}

        async def run_after(step: ValidationStep) -> StepResult:
            scope = self.issues.for_scope(step.name)
            if step.name in failures:
                scope.error(IssueCode.PLACEHOLDER_NOT_FOUND, failures[step.name])
                return StepResult(name=step.name)
            results = [await tasks[d] for d in dependencies[step.name]]
            stored = dict(initial)
            for result in results:
                stored.update(result.captured)
            return await self.run_step(step, stored, scope)

        for step in steps:
            tasks[step.name] = asyncio.ensure_future(run_after(step))
        results = await asyncio.gather(*tasks.values())
        logger.info("Scenario finished: %d/%d steps passed", sum(r.passed for r in results), len(results))
        return list(results)

    async def run_step(self, step: ValidationStep, stored_values: Mapping[str, str], scope: IssueLogger) -> StepResult:
        result = StepResult(name=step.name)

        ok, template = try_parse_request(step.request, scope)
        if not ok:
            return result

        try:
            placeholders = to_placeholder_values(step.parameters, stored_values, self.evaluator)
            request = rewrite_request(template, placeholders)
        except PlaceholderValueNotFoundError as e:
            scope.error(IssueCode.PLACEHOLDER_NOT_FOUND, str(e))
            return result
        except ApiDocCheckError as e:
            scope.error(IssueCode.INVALID_PLACEHOLDER, f"Unable to build request: {e}")
            return result
        result.request = request

        try:
            actual = await self.transport.execute(request)
        except ValueError as e:
            scope.error(IssueCode.REQUEST_EXECUTION_FAILED, f"Unable to translate request body: {e}")
            return result
        result.response = actual
        if actual.status_message.startswith(FAILURE_STATUS_PREFIX):
            scope.error(IssueCode.REQUEST_EXECUTION_FAILED, f"{request.method} {request.url} failed: {actual.status_message}")
            return result

        if step.expected_response:
            ok, expected = try_parse_response(step.expected_response, scope)
            if ok:
                allowed = step.allowed_status_codes or self.config.allowed_status_codes
                compare_responses(expected, actual, allowed).report(scope)

        if step.resource:
            self._validate_schema(step, actual, scope)

        result.captured = self._capture(step, actual, scope)
        result.passed = not scope.has_errors
        return result

    def _validate_schema(self, step: ValidationStep, actual: Response, scope: IssueLogger) -> None:
        schema = self.registry.get(step.resource)
        if schema is None:
            scope.error(IssueCode.RESOURCE_TYPE_NOT_FOUND, f"Missing resource: resource {step.resource} was not found.")
            return
        if not actual.body or not actual.is_matching_content_type(MIME_TYPE_JSON):
            return
        scope.record_all(validate_body(
            actual.body,
            schema,
            is_collection=step.is_collection,
            registry=self.registry,
            collection_property_name=self.config.collection_property_name,
            ignorable_properties=self.config.ignorable_properties,
        ))

    def _capture(self, step: ValidationStep, actual: Response, scope: IssueLogger) -> dict[str, str]:
        captured = {}
        for key, source in step.outputs.items():
            try:
                value = value_for_keyed_identifier(actual, source)
            except ApiDocCheckError as e:
                scope.error(IssueCode.INVALID_PLACEHOLDER, f"Unable to capture {key} from {source}: {e}")
                continue
            if value is None:
                scope.warning(IssueCode.PLACEHOLDER_NOT_FOUND, f"Response had no value for {source}; {key} was not stored.")
                continue
            captured[key] = value
        return captured
