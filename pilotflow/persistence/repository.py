"""Repository abstraction for execution and definition persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ..contracts import ExecutionStatus, StepStatus
from .models import DefinitionRecord, ExecutionRecord


class WorkflowRepository(Protocol):
    """Protocol for persistence backends."""

    async def create_execution(self, workflow_id: str, input: dict) -> str:
        """Persist a new ``pending`` execution and return its generated id."""

    async def update_execution(
        self,
        execution_id: str,
        *,
        status: Optional[ExecutionStatus] = None,
        output: Optional[dict] = None,
        total_cost_usd: Optional[float] = None,
        error: Optional[str] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
    ) -> ExecutionRecord:
        """Apply the given changes; raises ``ConflictError`` on illegal transitions."""

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        """Retrieve an execution, including its step records."""

    async def list_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[ExecutionRecord]:
        """Return matching executions, newest first, without step records."""

    async def count_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> int:
        """Count matching executions."""

    async def create_step(
        self,
        execution_id: str,
        step_id: str,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> int:
        """Record a step and return the record id."""

    async def update_step(
        self,
        record_id: int,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> None:
        """Record the final status of a step."""

    async def create_definition(
        self, name: str, description: str, steps: list[dict]
    ) -> DefinitionRecord:
        """Store a custom workflow definition."""

    async def get_definition(self, definition_id: str) -> DefinitionRecord | None:
        """Retrieve a custom definition by id."""

    async def list_definitions(self) -> list[DefinitionRecord]:
        """Return all custom definitions."""

    async def delete_definition(self, definition_id: str) -> bool:
        """Delete a custom definition; ``False`` if it did not exist."""
