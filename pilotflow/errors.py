"""Exception hierarchy for pilotflow."""

from __future__ import annotations

from typing import Any, Optional


class PilotflowError(Exception):
    """Base class for errors reported to pilotflow callers."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class DefinitionError(PilotflowError):
    """A workflow definition or workflow input is not acceptable."""

    code = "VALIDATION_ERROR"


class NotFoundError(PilotflowError):
    """A workflow, definition or execution does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Optional[str] = None) -> None:
        message = (
            f"{resource} with id '{identifier}' not found"
            if identifier
            else f"{resource} not found"
        )
        super().__init__(message)
        self.resource = resource
        self.identifier = identifier


class ConflictError(PilotflowError):
    """The requested change is incompatible with the current state."""

    code = "CONFLICT"


class StepError(PilotflowError):
    """A single step could not be executed."""

    code = "STEP_ERROR"


class UnknownAgentError(StepError):
    def __init__(self, agent: str) -> None:
        super().__init__(f"Unknown agent: {agent}")
        self.agent = agent


class UnknownOperationError(StepError):
    def __init__(self, agent: str, operation: str) -> None:
        super().__init__(f"Agent {agent} does not have operation {operation}")
        self.agent = agent
        self.operation = operation


__all__ = [
    "PilotflowError",
    "DefinitionError",
    "NotFoundError",
    "ConflictError",
    "StepError",
    "UnknownAgentError",
    "UnknownOperationError",
]
