"""Tests for workflow cost estimation."""

import json

import pytest

from pilotflow.config import CostConfig
from pilotflow.contracts import WorkflowDefinition
from pilotflow.cost import CostEstimator, serialized_size, size_multiplier
from pilotflow.workflows import get_builtin_workflow


def _single_agent(agent: str = "TestWeaver") -> WorkflowDefinition:
    return WorkflowDefinition.model_validate(
        {
            "id": "single",
            "name": "single",
            "steps": [{"id": "s1", "type": "agent", "agent": agent, "operation": "generate"}],
        }
    )


def _input_of_size(size: int) -> dict:
    base = json.dumps({"projectId": "p1", "blob": ""}, separators=(",", ":"))
    return {"projectId": "p1", "blob": "x" * (size - len(base))}


def test_two_thousand_characters_scale_tokens_by_one_point_two():
    payload = _input_of_size(2000)
    assert serialized_size(payload) == 2000
    assert size_multiplier(2000) == pytest.approx(1.2)

    estimate = CostEstimator().estimate(_single_agent(), payload)

    assert estimate.estimated_tokens == 2400
    assert estimate.estimated_cost_usd == pytest.approx(0.0072)
    assert estimate.breakdown[0].step_id == "s1"
    assert estimate.breakdown[0].agent == "TestWeaver"


def test_unknown_agent_uses_default_tokens():
    estimate = CostEstimator().estimate(_single_agent("Custom"), {})
    # "{}" is two characters
    assert estimate.estimated_tokens == round(1500 * (1 + 0.002 * 0.1))


def test_builtin_chain_estimate():
    estimate = CostEstimator().estimate(get_builtin_workflow("full-test-suite"), {"projectId": "p1"})
    assert [b.estimated_tokens for b in estimate.breakdown] == [2004, 1503, 1803]
    assert estimate.estimated_tokens == 5310
    assert estimate.estimated_cost_usd == pytest.approx(0.01593)


def test_parallel_branches_counted_and_condition_branches_ignored():
    audit = CostEstimator().estimate(get_builtin_workflow("code-quality-audit"), {})
    assert [b.agent for b in audit.breakdown] == ["CodeAnalysis", "TestEvolution"]

    visual = CostEstimator().estimate(get_builtin_workflow("visual-regression-flow"), {})
    assert [b.agent for b in visual.breakdown] == ["VisualAnalysis"]


def test_estimate_is_repeatable_and_uses_configured_rates():
    estimator = CostEstimator(CostConfig(cost_per_1k_tokens=0.01, token_estimates={"TestWeaver": 1000}))
    first = estimator.estimate(_single_agent(), {})
    second = estimator.estimate(_single_agent(), {})
    assert first == second
    assert first.estimated_tokens == 1000
    assert first.estimated_cost_usd == pytest.approx(0.01)
