"""Token and USD cost estimates for workflow definitions."""

from __future__ import annotations

import json
import math
from typing import Any, Dict, Iterator, Mapping, Optional

from .config import CostConfig
from .constants import INPUT_SIZE_FACTOR
from .contracts import AgentStep, CostBreakdown, CostEstimate, ParallelStep, WorkflowDefinition


def _round_half_up(value: float, digits: int = 0) -> float:
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def serialized_size(payload: Mapping[str, Any]) -> int:
    """Length in characters of the compact JSON form of ``payload``."""
    return len(json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str))


def size_multiplier(size: int) -> float:
    """Token multiplier for an input of ``size`` characters."""
    return 1 + (size / 1000) * INPUT_SIZE_FACTOR


class CostEstimator:
    """Estimates the cost of running a definition without running it.

    Agent steps at the top level and agent branches directly inside a
    ``parallel`` step are counted; steps nested any deeper, such as
    condition branches, are not.
    """

    def __init__(self, config: Optional[CostConfig] = None) -> None:
        config = config or CostConfig()
        self._token_estimates: Dict[str, int] = dict(config.token_estimates)
        self._default_tokens = config.default_tokens
        self._cost_per_1k = config.cost_per_1k_tokens

    def _agent_steps(self, definition: WorkflowDefinition) -> Iterator[AgentStep]:
        for step in definition.steps:
            if isinstance(step, AgentStep) and step.agent:
                yield step
            elif isinstance(step, ParallelStep):
                for branch in step.branches:
                    if isinstance(branch, AgentStep) and branch.agent:
                        yield branch

    def estimate(
        self, definition: WorkflowDefinition, input: Mapping[str, Any]
    ) -> CostEstimate:
        multiplier = size_multiplier(serialized_size(input))

        breakdown = []
        total_tokens = 0
        total_cost = 0.0
        for step in self._agent_steps(definition):
            base_tokens = self._token_estimates.get(step.agent, self._default_tokens)
            tokens = int(_round_half_up(base_tokens * multiplier))
            cost = tokens / 1000 * self._cost_per_1k
            breakdown.append(
                CostBreakdown(
                    step_id=step.id,
                    agent=step.agent,
                    estimated_tokens=tokens,
                    estimated_cost_usd=_round_half_up(cost, 6),
                )
            )
            total_tokens += tokens
            total_cost += cost

        return CostEstimate(
            estimated_cost_usd=_round_half_up(total_cost, 6),
            estimated_tokens=total_tokens,
            breakdown=breakdown,
        )
