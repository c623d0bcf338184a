from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic_ai import Agent
from pydantic_ai.models import Model

from ..config import PilotflowConfig
from ..registry.models import AgentCapability, AgentRegistry, AgentResult, AgentUsage

logger = logging.getLogger(__name__)

# Default agents keyed by name, each mapping operation name -> instructions
AGENT_CATALOGUE: Dict[str, Dict[str, str]] = {
    "TestWeaver": {
        "generate": "Generate test cases from the specification in the input. "
        "Return an object with a 'testCases' array.",
        "evolve": "Evolve the given test cases to cover the described changes. "
        "Return an object with a 'testCases' array.",
        "batchGenerate": "Generate test cases for every specification in the input. "
        "Return an object with a 'results' array.",
    },
    "ScriptSmith": {
        "generate": "Write an automated test script for the given test cases. "
        "Return an object with 'code' and 'language'.",
        "edit": "Apply the requested edit to the given test script. "
        "Return an object with 'code'.",
    },
    "CodeGuardian": {
        "generate": "Generate unit tests for the given code. "
        "Return an object with 'tests' and 'coverage'.",
        "analyze": "Review the given code for testability issues. "
        "Return an object with an 'issues' array.",
    },
    "VisualAnalysis": {
        "analyze": "Compare the screenshot with the baseline. Return an object with "
        "'hasVisualRegression' and a 'differences' array.",
    },
    "BugPattern": {
        "analyze": "Classify the failure or difference described in the input. "
        "Return an object with 'patterns' and 'rootCause'.",
        "suggestFix": "Suggest a fix for the described bug pattern. "
        "Return an object with 'suggestions'.",
    },
    "FlowPilot": {
        "generate": "Generate API tests from the OpenAPI specification. "
        "Return an object with 'setup' and 'tests'.",
        "chain": "Chain the given API calls into a flow test. "
        "Return an object with 'steps' and 'code'.",
    },
    "CodeAnalysis": {
        "analyze": "Analyse the given code for complexity and maintainability. "
        "Return an object with 'metrics' and 'findings'.",
    },
    "TestEvolution": {
        "evolve": "Update the given test cases for the described code change. "
        "Return an object with 'testCases'.",
        "analyze": "Assess the health of the given test cases. "
        "Return an object with 'staleTests' and 'recommendations'.",
    },
}


def _total_tokens(result: Any) -> int:
    # older pydantic-ai releases expose usage as a method, newer ones as a property
    usage = result.usage() if callable(result.usage) else result.usage
    return getattr(usage, "total_tokens", None) or 0


class LLMOperation:
    """Agent operation answered by a ``pydantic_ai`` agent.

    The resolved step input is sent to the model as JSON and the structured
    output becomes the step output. The underlying agent is built on first
    use so that configuring a model does not require credentials up front.
    """

    def __init__(
        self,
        agent_name: str,
        operation: str,
        instructions: str,
        model: Union[str, Model],
        cost_per_1k_tokens: float,
    ) -> None:
        self.agent_name = agent_name
        self.operation = operation
        self._instructions = instructions
        self._model = model
        self._cost_per_1k_tokens = cost_per_1k_tokens
        self._agent: Optional[Agent] = None

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                self._model,
                output_type=Dict[str, Any],
                system_prompt=self._instructions,
                name=f"{self.agent_name}.{self.operation}",
            )
        return self._agent

    async def __call__(self, payload: Dict[str, Any]) -> AgentResult:
        agent = self._get_agent()
        logger.debug(f"Running {self.agent_name}.{self.operation}")
        result = await agent.run(json.dumps(payload, default=str))
        tokens = _total_tokens(result)
        cost = tokens / 1000 * self._cost_per_1k_tokens
        return AgentResult(data=result.output, usage=AgentUsage(cost_usd=cost, tokens=tokens))


def build_llm_capability(
    name: str,
    operations: Dict[str, str],
    model: Union[str, Model],
    cost_per_1k_tokens: float,
) -> AgentCapability:
    """Create a capability whose operations are all answered by ``model``."""
    return AgentCapability(
        name=name,
        operations={
            op: LLMOperation(name, op, instructions, model, cost_per_1k_tokens)
            for op, instructions in operations.items()
        },
    )


def build_default_registry(
    config: PilotflowConfig, model: Union[str, Model, None] = None
) -> AgentRegistry:
    """Build a registry holding every agent of ``AGENT_CATALOGUE``."""
    model = model or config.agents.model
    registry = AgentRegistry()
    for name, operations in AGENT_CATALOGUE.items():
        registry.register(
            build_llm_capability(name, operations, model, config.cost.cost_per_1k_tokens)
        )
    return registry
