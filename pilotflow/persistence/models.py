"""Data models for persisted executions, step records and custom definitions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import Field

from ..contracts import (
    TERMINAL_STATUSES,
    ExecutionStatus,
    StepStatus,
    WireModel,
    WorkflowDefinition,
)
from ..errors import ConflictError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {ExecutionStatus.RUNNING, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
    ),
    ExecutionStatus.RUNNING: frozenset(
        {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
    ),
}


def check_transition(
    current: ExecutionStatus, new: Optional[ExecutionStatus]
) -> None:
    """Raise ``ConflictError`` unless ``current -> new`` is a legal update.

    ``new=None`` means the status is left unchanged. A terminal record only
    accepts a final write that repeats its own status, so a driver can attach
    its output and cost after a cancellation. Repositories keep the original
    ``completed_at`` on such a write.
    """
    current = ExecutionStatus(current)
    if current in TERMINAL_STATUSES:
        if new is not None and ExecutionStatus(new) == current:
            return
        raise ConflictError(f"Execution is already {current.value}")
    if new is None or ExecutionStatus(new) == current:
        return
    if ExecutionStatus(new) not in ALLOWED_TRANSITIONS[current]:
        raise ConflictError(
            f"Cannot transition execution from {current.value} to {ExecutionStatus(new).value}"
        )


class StepRecord(WireModel):
    """Audit record of an individual step execution."""

    id: Optional[int] = None
    execution_id: str
    step_id: str
    status: StepStatus
    output: Any = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ExecutionRecord(WireModel):
    """Persisted workflow execution."""

    id: str
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    input: dict[str, Any] = Field(default_factory=dict)
    output: Optional[dict[str, Any]] = None
    total_cost_usd: float = 0.0
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    steps: list[StepRecord] = Field(default_factory=list)


class DefinitionRecord(WireModel):
    """Persisted custom workflow definition."""

    id: str
    name: str
    description: str = ""
    steps: list[dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    def to_definition(self) -> WorkflowDefinition:
        return WorkflowDefinition.model_validate(
            {
                "id": self.id,
                "name": self.name,
                "description": self.description or None,
                "steps": self.steps,
            }
        )


class ExecutionPage(WireModel):
    data: list[ExecutionRecord] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
