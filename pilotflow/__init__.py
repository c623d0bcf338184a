"""Pilotflow: workflow orchestration for test-management agents."""

from .contracts import ExecutionOptions, ExecutionResult, WorkflowDefinition
from .dispatch import WorkflowDriver
from .errors import PilotflowError
from .execute import StepExecutor
from .orchestrator import WorkflowOrchestrator
from .persistence import get_repository
from .registry import get_registry, register_agent

__version__ = "0.1.0"
__all__ = [
    "ExecutionOptions",
    "ExecutionResult",
    "PilotflowError",
    "StepExecutor",
    "WorkflowDefinition",
    "WorkflowDriver",
    "WorkflowOrchestrator",
    "get_registry",
    "get_repository",
    "register_agent",
]
