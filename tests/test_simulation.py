import json

import pytest

from flowsmith.errors import ConfigurationError, MalformedOutputError, TraceMismatchError
from flowsmith.simulation import (
    DEFAULT_SAMPLE_PAYLOAD,
    OverallStatus,
    StepStatus,
    build_trace,
    parse_sample_payload,
    render_simulation_prompt,
    sandbox_blueprint,
)


def _trace(*results: tuple[int, str], overall: str = "success") -> str:
    return json.dumps(
        {
            "overallStatus": overall,
            "summary": "Dry run finished.",
            "stepResults": [
                {"stepId": step_id, "status": status, "output": f"out {step_id}", "reasoning": "checked"}
                for step_id, status in results
            ],
        }
    )


def test_build_trace_maps_results_onto_steps() -> None:
    trace = build_trace(sandbox_blueprint(), _trace((1, "success"), (2, "success"), (3, "skipped")))

    assert trace.overall_status is OverallStatus.SUCCESS
    assert [result.step_id for result in trace.step_results] == [1, 2, 3]
    assert trace.step_results[2].status is StepStatus.SKIPPED
    assert trace.failed_steps == ()


def test_failure_status_follows_failed_step() -> None:
    raw = "```json\n" + _trace((1, "success"), (2, "failure"), (3, "skipped"), overall="failure") + "\n```"

    trace = build_trace(sandbox_blueprint(), raw)

    assert trace.overall_status is OverallStatus.FAILURE
    assert [result.step_id for result in trace.failed_steps] == [2]


def test_unknown_step_id_is_a_mismatch() -> None:
    with pytest.raises(TraceMismatchError) as exc_info:
        build_trace(sandbox_blueprint(), _trace((1, "success"), (2, "success"), (99, "success")))

    assert exc_info.value.context["unknown"] == [99]
    assert exc_info.value.context["missing"] == [3]


def test_missing_step_is_a_mismatch() -> None:
    with pytest.raises(TraceMismatchError) as exc_info:
        build_trace(sandbox_blueprint(), _trace((1, "success"), (2, "success")))

    assert exc_info.value.context["missing"] == [3]


def test_duplicated_step_is_a_mismatch() -> None:
    with pytest.raises(TraceMismatchError) as exc_info:
        build_trace(sandbox_blueprint(), _trace((1, "success"), (2, "success"), (3, "success"), (3, "success")))

    assert exc_info.value.context["duplicated"] == [3]


def test_out_of_order_steps_are_a_mismatch() -> None:
    with pytest.raises(TraceMismatchError, match="declaration order"):
        build_trace(sandbox_blueprint(), _trace((2, "success"), (1, "success"), (3, "success")))


@pytest.mark.parametrize(
    ("results", "overall"),
    [
        (((1, "success"), (2, "failure"), (3, "skipped")), "success"),
        (((1, "success"), (2, "success"), (3, "skipped")), "failure"),
    ],
)
def test_inconsistent_overall_status_is_a_mismatch(results: tuple, overall: str) -> None:
    with pytest.raises(TraceMismatchError, match="overallStatus"):
        build_trace(sandbox_blueprint(), _trace(*results, overall=overall))


def test_malformed_trace_is_not_a_mismatch() -> None:
    with pytest.raises(MalformedOutputError):
        build_trace(sandbox_blueprint(), '{"overallStatus": "success"}')


def test_parse_sample_payload() -> None:
    assert parse_sample_payload(json.dumps(DEFAULT_SAMPLE_PAYLOAD)) == DEFAULT_SAMPLE_PAYLOAD
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        parse_sample_payload('{"event": ')
    with pytest.raises(ConfigurationError, match="empty"):
        parse_sample_payload("  ")


def test_simulation_prompt_lists_steps_and_event() -> None:
    prompt = render_simulation_prompt(sandbox_blueprint(), DEFAULT_SAMPLE_PAYLOAD)

    assert "id=1 [trigger] Trigger Event" in prompt
    assert "id=3 [action] Final Action" in prompt
    assert '"currency": "USD"' in prompt


def test_trace_payload_uses_wire_names() -> None:
    trace = build_trace(sandbox_blueprint(), _trace((1, "success"), (2, "success"), (3, "success")))

    assert trace.to_payload()["stepResults"][0] == {
        "stepId": 1,
        "status": "success",
        "output": "out 1",
        "reasoning": "checked",
    }
