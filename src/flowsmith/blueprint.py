"""Automation blueprint data model."""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from flowsmith.contract import SchemaDescriptor, parse_structured
from flowsmith.errors import ConfigurationError, MalformedOutputError


class Platform(StrEnum):
    ZAPIER = "zapier"
    N8N = "n8n"
    LANGCHAIN = "langchain"
    MAKE = "make"
    PIPEDREAM = "pipedream"


class StepKind(StrEnum):
    TRIGGER = "trigger"
    ACTION = "action"
    LOGIC = "logic"


@dataclass(frozen=True)
class Step:
    id: int
    title: str
    description: str
    kind: StepKind

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "description": self.description, "type": self.kind.value}


@dataclass(frozen=True)
class Source:
    """A grounding reference returned alongside a generated answer."""

    title: str
    uri: str


@dataclass(frozen=True)
class Blueprint:
    """A validated automation workflow."""

    platform: Platform
    explanation: str
    steps: tuple[Step, ...]
    code_snippet: str | None = None
    sources: tuple[Source, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError("a blueprint needs at least one step")

    @property
    def step_ids(self) -> tuple[int, ...]:
        return tuple(step.id for step in self.steps)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "platform": self.platform.value,
            "explanation": self.explanation,
            "steps": [step.to_payload() for step in self.steps],
        }
        if self.code_snippet is not None:
            payload["codeSnippet"] = self.code_snippet
        if self.sources:
            payload["sources"] = [{"title": source.title, "uri": source.uri} for source in self.sources]
        return payload


STEP_SCHEMA = SchemaDescriptor.object(
    {
        "id": SchemaDescriptor.integer(description="Positive identifier, unique within the workflow"),
        "title": SchemaDescriptor.string(),
        "description": SchemaDescriptor.string(),
        "type": SchemaDescriptor.enum(tuple(kind.value for kind in StepKind), description="One of: trigger, action, logic"),
    },
    required=("id", "title", "description", "type"),
)

BLUEPRINT_SCHEMA = SchemaDescriptor.object(
    {
        "platform": SchemaDescriptor.enum(tuple(platform.value for platform in Platform)),
        "explanation": SchemaDescriptor.string(),
        "codeSnippet": SchemaDescriptor.string(),
        "steps": SchemaDescriptor.array(STEP_SCHEMA),
    },
    required=("platform", "explanation", "steps"),
)


def _source_from(item: Any) -> Source | None:
    if not isinstance(item, Mapping):
        return None
    uri = str(item.get("uri") or "").strip()
    if not uri:
        return None
    return Source(title=str(item.get("title") or uri), uri=uri)


def blueprint_from_payload(payload: Mapping[str, Any]) -> Blueprint:
    """Build a ``Blueprint`` from an already shape-validated payload.

    Applies the invariants the structural check leaves out: at least one
    step, positive ids, and ids unique within the blueprint.
    """
    raw_steps = payload["steps"]
    if not raw_steps:
        raise MalformedOutputError("steps: a blueprint needs at least one step", path="steps")

    steps = tuple(
        Step(id=item["id"], title=item["title"], description=item["description"], kind=StepKind(item["type"]))
        for item in raw_steps
    )
    for index, step in enumerate(steps):
        if step.id < 1:
            raise MalformedOutputError(f"steps[{index}].id: {step.id} is not a positive integer", path=f"steps[{index}].id")
    duplicates = sorted(step_id for step_id, count in Counter(step.id for step in steps).items() if count > 1)
    if duplicates:
        raise MalformedOutputError(f"steps: duplicated step ids {duplicates}", path="steps")

    sources = tuple(source for source in map(_source_from, payload.get("sources") or ()) if source is not None)
    return Blueprint(
        platform=Platform(payload["platform"]),
        explanation=payload["explanation"],
        steps=steps,
        code_snippet=payload.get("codeSnippet"),
        sources=sources,
    )


def parse_blueprint(raw_text: str | None) -> Blueprint:
    """Parse provider output into a validated ``Blueprint``."""
    payload = parse_structured(raw_text, BLUEPRINT_SCHEMA)
    try:
        return blueprint_from_payload(payload)
    except MalformedOutputError as exc:
        exc.raw_text = raw_text
        raise


def load_blueprint(text: str) -> Blueprint:
    """Load a blueprint saved by the command line as local input."""
    try:
        return parse_blueprint(text)
    except MalformedOutputError as exc:
        raise ConfigurationError(f"The blueprint file is not a valid blueprint: {exc}") from exc
