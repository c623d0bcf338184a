"""Shared fixtures: a registry of scripted agents and a fresh repository."""

from typing import Any, Dict, List

import pytest

import pilotflow.dispatch as dispatch
import pilotflow.persistence as persistence
import pilotflow.registry as registry_module
from pilotflow.config import PilotflowConfig
from pilotflow.persistence import InMemoryWorkflowRepository
from pilotflow.registry import AgentCapability, AgentRegistry, AgentResult, AgentUsage


class ScriptedOperation:
    """Agent operation returning a fixed payload and recording its inputs."""

    def __init__(self, data: Any = None, cost_usd: float = 0.0, error: str | None = None):
        self.data = data
        self.cost_usd = cost_usd
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, payload: Dict[str, Any]) -> AgentResult:
        self.calls.append(payload)
        if self.error:
            raise RuntimeError(self.error)
        return AgentResult(data=self.data, usage=AgentUsage(cost_usd=self.cost_usd))


def scripted_registry(**agents: Dict[str, ScriptedOperation]) -> AgentRegistry:
    return AgentRegistry(
        [AgentCapability(name=name, operations=ops) for name, ops in agents.items()]
    )


@pytest.fixture
def operations() -> Dict[str, ScriptedOperation]:
    return {
        "TestWeaver.generate": ScriptedOperation(
            {"testCases": [{"title": "valid login"}, {"title": "locked account"}]}, 0.01
        ),
        "ScriptSmith.generate": ScriptedOperation({"code": "test('login', () => {})"}, 0.02),
        "CodeGuardian.generate": ScriptedOperation({"tests": ["t1"], "coverage": 80}, 0.03),
        "FlowPilot.generate": ScriptedOperation({"setup": "beforeAll()", "tests": ["GET /users"]}, 0.01),
        "VisualAnalysis.analyze": ScriptedOperation(
            {"hasVisualRegression": False, "differences": []}, 0.01
        ),
        "BugPattern.analyze": ScriptedOperation({"patterns": ["layout-shift"]}, 0.01),
        "CodeAnalysis.analyze": ScriptedOperation({"metrics": {"complexity": 3}}, 0.04),
        "TestEvolution.analyze": ScriptedOperation({"staleTests": []}, 0.05),
    }


@pytest.fixture
def registry(operations) -> AgentRegistry:
    grouped: Dict[str, Dict[str, ScriptedOperation]] = {}
    for key, op in operations.items():
        agent, operation = key.split(".")
        grouped.setdefault(agent, {})[operation] = op
    return scripted_registry(**grouped)


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def config() -> PilotflowConfig:
    return PilotflowConfig()


@pytest.fixture(autouse=True)
def reset_singletons():
    yield
    persistence._repository_instance = None
    registry_module._registry_instance = None
    dispatch._cancellations_instance = None
