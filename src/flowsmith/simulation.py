"""Simulation trace model for dry-running a blueprint against a sample payload."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from loguru import logger

from flowsmith.blueprint import Blueprint, Platform, Step, StepKind
from flowsmith.contract import SchemaDescriptor, parse_structured
from flowsmith.errors import ConfigurationError, TraceMismatchError

DEFAULT_SAMPLE_PAYLOAD: dict[str, Any] = {
    "event": "new_payment",
    "customer": {"id": "cust_99", "email": "jane@example.com", "status": "active"},
    "amount": 1500,
    "currency": "USD",
}


class StepStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class OverallStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class StepResult:
    step_id: int
    status: StepStatus
    output: str
    reasoning: str


@dataclass(frozen=True)
class SimulationTrace:
    overall_status: OverallStatus
    summary: str
    step_results: tuple[StepResult, ...]

    @property
    def failed_steps(self) -> tuple[StepResult, ...]:
        return tuple(result for result in self.step_results if result.status is StepStatus.FAILURE)

    def to_payload(self) -> dict[str, Any]:
        return {
            "overallStatus": self.overall_status.value,
            "summary": self.summary,
            "stepResults": [
                {
                    "stepId": result.step_id,
                    "status": result.status.value,
                    "output": result.output,
                    "reasoning": result.reasoning,
                }
                for result in self.step_results
            ],
        }


TRACE_SCHEMA = SchemaDescriptor.object(
    {
        "overallStatus": SchemaDescriptor.enum(tuple(status.value for status in OverallStatus)),
        "summary": SchemaDescriptor.string(),
        "stepResults": SchemaDescriptor.array(
            SchemaDescriptor.object(
                {
                    "stepId": SchemaDescriptor.integer(description="Id of the simulated blueprint step"),
                    "status": SchemaDescriptor.enum(tuple(status.value for status in StepStatus)),
                    "output": SchemaDescriptor.string(),
                    "reasoning": SchemaDescriptor.string(),
                },
                required=("stepId", "status", "output", "reasoning"),
            ),
            description="Exactly one entry per blueprint step, in declaration order",
        ),
    },
    required=("overallStatus", "summary", "stepResults"),
)


def sandbox_blueprint() -> Blueprint:
    """Three-step blueprint used when no generated blueprint is supplied."""
    return Blueprint(
        platform=Platform.ZAPIER,
        explanation="Simulated from sandbox input",
        steps=(
            Step(1, "Trigger Event", "Analyze incoming webhook payload", StepKind.TRIGGER),
            Step(2, "Logic Filter", "Determine path based on data properties", StepKind.LOGIC),
            Step(3, "Final Action", "Execute external API call", StepKind.ACTION),
        ),
    )


def parse_sample_payload(text: str) -> Any:
    """Check the mock event is syntactically valid JSON."""
    if not text or not text.strip():
        raise ConfigurationError("The sample payload is empty; provide a JSON-encoded mock event.")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"The sample payload is not valid JSON (line {exc.lineno}, column {exc.colno}).",
            line=exc.lineno,
            column=exc.colno,
        ) from exc


def _check_step_ids(blueprint: Blueprint, results: tuple[StepResult, ...]) -> None:
    expected = blueprint.step_ids
    actual = tuple(result.step_id for result in results)
    if actual == expected:
        return

    known = set(expected)
    unknown = sorted({step_id for step_id in actual if step_id not in known})
    missing = sorted(known - set(actual))
    duplicated = sorted(step_id for step_id, count in Counter(actual).items() if count > 1)
    if unknown or missing or duplicated:
        raise TraceMismatchError(
            f"Trace step ids {list(actual)} do not match blueprint step ids {list(expected)}",
            unknown=unknown,
            missing=missing,
            duplicated=duplicated,
        )
    raise TraceMismatchError(
        f"Trace step ids {list(actual)} are not in blueprint declaration order {list(expected)}",
        expected_order=list(expected),
    )


def build_trace(blueprint: Blueprint, raw_model_trace: str | None) -> SimulationTrace:
    """Parse a provider trace and enforce its consistency with ``blueprint``."""
    payload = parse_structured(raw_model_trace, TRACE_SCHEMA)
    results = tuple(
        StepResult(
            step_id=item["stepId"],
            status=StepStatus(item["status"]),
            output=item["output"],
            reasoning=item["reasoning"],
        )
        for item in payload["stepResults"]
    )
    _check_step_ids(blueprint, results)

    overall = OverallStatus(payload["overallStatus"])
    any_failed = any(result.status is StepStatus.FAILURE for result in results)
    if (overall is OverallStatus.FAILURE) != any_failed:
        logger.error("simulation.status.inconsistent overall={} failed_steps={}", overall, any_failed)
        raise TraceMismatchError(
            f"overallStatus is {overall.value} but {'some' if any_failed else 'no'} step failed",
            overall_status=overall.value,
        )
    return SimulationTrace(overall_status=overall, summary=payload["summary"], step_results=results)


def render_simulation_prompt(blueprint: Blueprint, payload: Any) -> str:
    steps = "\n".join(
        f"- id={step.id} [{step.kind.value}] {step.title}: {step.description}" for step in blueprint.steps
    )
    return (
        f"Dry-run this {blueprint.platform.value} automation against the mock event below.\n"
        f"Workflow purpose: {blueprint.explanation}\n"
        f"Steps (in order):\n{steps}\n\n"
        f"Mock event:\n{json.dumps(payload, indent=2, ensure_ascii=False)}\n\n"
        "Report one stepResults entry per step using the same ids in the same order. "
        "Look for null values, type mismatches and timeout scenarios. "
        "overallStatus is failure exactly when at least one step fails."
    )
