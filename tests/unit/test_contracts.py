"""Tests for step parsing, wire names and the append-only result map."""

import pytest
from pydantic import ValidationError

from pilotflow.context import ResultMap
from pilotflow.contracts import (
    AgentStep,
    ConditionStep,
    ParallelStep,
    StepOutcome,
    WorkflowDefinition,
    collect_agents,
    walk_steps,
)


def test_steps_parse_into_their_kind():
    definition = WorkflowDefinition.model_validate(
        {
            "name": "wf",
            "steps": [
                {"id": "a", "type": "agent", "agent": "TestWeaver", "operation": "generate",
                 "outputKey": "tw"},
                {
                    "id": "c",
                    "type": "condition",
                    "condition": "${steps.a.output}",
                    "then": [{"id": "p", "type": "parallel", "branches": [
                        {"id": "b1", "type": "agent", "agent": "ScriptSmith", "operation": "generate"},
                    ]}],
                    "else": [{"id": "t", "type": "transform", "transform": {"x": "${input.x}"}}],
                },
            ],
        }
    )
    first, condition = definition.steps
    assert isinstance(first, AgentStep)
    assert first.output_key == "tw"
    assert isinstance(condition, ConditionStep)
    assert isinstance(condition.then[0], ParallelStep)
    assert condition.else_[0].transform == {"x": "${input.x}"}
    assert [s.id for s in walk_steps(definition.steps)] == ["a", "c", "p", "b1", "t"]
    assert collect_agents(definition.steps) == ["TestWeaver", "ScriptSmith"]


def test_wire_dump_uses_camel_case_and_else():
    step = ConditionStep(id="c", condition="${input.x}", else_=[])
    wire = step.to_wire()
    assert "else" in wire
    assert "else_" not in wire

    agent = AgentStep(id="a", agent="A", operation="op", output_key="out")
    assert agent.to_wire()["outputKey"] == "out"


def test_unknown_step_type_is_rejected():
    with pytest.raises(ValidationError):
        WorkflowDefinition.model_validate(
            {"name": "wf", "steps": [{"id": "x", "type": "loop"}]}
        )


def test_result_map_first_write_wins():
    results = ResultMap()
    results.publish("s1", StepOutcome.completed(1), "alias")
    results.publish("s1", StepOutcome.completed(2), "alias")

    assert results["s1"].output == 1
    assert results.named_outputs() == {"alias": 1}


def test_forked_results_stay_local_until_merged():
    parent = ResultMap()
    parent.publish("root", StepOutcome.completed("r"))
    child = parent.fork()
    child.publish("branch", StepOutcome.completed("b"), "branchKey")

    assert child["root"].output == "r"
    assert "branch" not in parent

    parent.merge_child(child)
    assert parent["branch"].output == "b"
    assert parent.named_outputs() == {"branchKey": "b"}
