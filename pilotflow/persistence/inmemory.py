"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from ..contracts import TERMINAL_STATUSES, ExecutionStatus, StepStatus
from ..errors import NotFoundError
from .models import DefinitionRecord, ExecutionRecord, StepRecord, check_transition, utcnow
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store executions and definitions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, ExecutionRecord] = {}
        self._steps: Dict[int, StepRecord] = {}
        self._definitions: Dict[str, DefinitionRecord] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_execution(self, workflow_id: str, input: dict) -> str:
        execution_id = str(uuid.uuid4())
        self._executions[execution_id] = ExecutionRecord(
            id=execution_id,
            workflow_id=workflow_id,
            status=ExecutionStatus.PENDING,
            input=dict(input),
            output=None,
            total_cost_usd=0.0,
        )
        return execution_id

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
        record = self._executions.get(execution_id)
        if record is None:
            raise NotFoundError("Workflow execution", execution_id)
        check_transition(record.status, status)
        if record.status in TERMINAL_STATUSES:
            completed_at = None

        if status is not None:
            record.status = ExecutionStatus(status)
        if output is not None:
            record.output = output
        if total_cost_usd is not None:
            record.total_cost_usd = total_cost_usd
        if error is not None:
            record.error = error
        if started_at is not None:
            record.started_at = started_at
        if completed_at is not None:
            record.completed_at = completed_at
        return self._snapshot(record)

    def _snapshot(self, record: ExecutionRecord) -> ExecutionRecord:
        snapshot = record.model_copy(deep=True)
        snapshot.steps = [
            step.model_copy(deep=True)
            for step in sorted(self._steps.values(), key=lambda s: s.id)
            if step.execution_id == record.id
        ]
        return snapshot

    async def get_execution(self, execution_id: str) -> ExecutionRecord | None:
        record = self._executions.get(execution_id)
        return self._snapshot(record) if record is not None else None

    def _matching(
        self,
        project_id: Optional[str],
        status: Optional[str],
        workflow_id: Optional[str],
    ) -> list[ExecutionRecord]:
        records = [
            r
            for r in self._executions.values()
            if (project_id is None or r.input.get("projectId") == project_id)
            and (status is None or r.status.value == status)
            and (workflow_id is None or r.workflow_id == workflow_id)
        ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    async def list_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[ExecutionRecord]:
        records = self._matching(project_id, status, workflow_id)
        end = None if limit is None else offset + limit
        return [r.model_copy(deep=True) for r in records[offset:end]]

    async def count_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> int:
        return len(self._matching(project_id, status, workflow_id))

    # ------------------------------------------------------------------
    async def create_step(
        self,
        execution_id: str,
        step_id: str,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> int:
        self._step_id += 1
        now = utcnow()
        status = StepStatus(status)
        self._steps[self._step_id] = StepRecord(
            id=self._step_id,
            execution_id=execution_id,
            step_id=step_id,
            status=status,
            output=output,
            error=error,
            started_at=now,
            completed_at=None if status == StepStatus.RUNNING else now,
        )
        return self._step_id

    async def update_step(
        self,
        record_id: int,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None,
    ) -> None:
        step = self._steps.get(record_id)
        if step is None:
            return
        step.status = StepStatus(status)
        if output is not None:
            step.output = output
        if error is not None:
            step.error = error
        step.completed_at = utcnow()

    # ------------------------------------------------------------------
    async def create_definition(
        self, name: str, description: str, steps: list[dict]
    ) -> DefinitionRecord:
        record = DefinitionRecord(
            id=str(uuid.uuid4()), name=name, description=description or "", steps=steps
        )
        self._definitions[record.id] = record
        return record.model_copy(deep=True)

    async def get_definition(self, definition_id: str) -> DefinitionRecord | None:
        record = self._definitions.get(definition_id)
        return record.model_copy(deep=True) if record is not None else None

    async def list_definitions(self) -> list[DefinitionRecord]:
        return [r.model_copy(deep=True) for r in self._definitions.values()]

    async def delete_definition(self, definition_id: str) -> bool:
        return self._definitions.pop(definition_id, None) is not None
