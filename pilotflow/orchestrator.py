"""Service facade over the workflow engine used by the rest of the application."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

from .config import PilotflowConfig, load_config
from .constants import DEFAULT_PAGE_SIZE
from .contracts import (
    TERMINAL_STATUSES,
    CostEstimate,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    StepStatus,
    StepSummary,
    WorkflowDefinition,
    WorkflowListing,
    WorkflowStatus,
    WorkflowSummary,
    collect_agents,
)
from .cost import CostEstimator
from .dispatch import (
    CancellationRegistry,
    WorkflowDriver,
    get_cancellations,
    require_project_id,
)
from .errors import ConflictError, DefinitionError, NotFoundError
from .execute import StepExecutor
from .persistence import ExecutionPage, WorkflowRepository, get_repository
from .persistence.models import utcnow
from .registry import AgentRegistry, get_registry
from .validation import DefinitionValidator
from .workflows import BUILTIN_WORKFLOWS, get_builtin_workflow, is_builtin_workflow

logger = logging.getLogger(__name__)

DefinitionInput = Union[WorkflowDefinition, Mapping[str, Any]]


class WorkflowOrchestrator:
    """Runs built-in and custom workflows and manages their executions."""

    def __init__(
        self,
        registry: AgentRegistry | None = None,
        repository: WorkflowRepository | None = None,
        config: PilotflowConfig | None = None,
        cancellations: CancellationRegistry | None = None,
    ) -> None:
        self._config = config or load_config()
        self._registry = registry if registry is not None else get_registry()
        self._repository = repository or get_repository()
        self._cancellations = (
            cancellations if cancellations is not None else get_cancellations()
        )
        self._driver = WorkflowDriver(
            StepExecutor(self._registry), self._repository, self._cancellations
        )
        self._validator = DefinitionValidator(self._registry)
        self._estimator = CostEstimator(self._config.cost)
        self._default_options = ExecutionOptions(**self._config.execution.model_dump())

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Execution
    async def execute_workflow(
        self,
        workflow_id: str,
        input: Dict[str, Any],
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """Execute a built-in workflow, or a stored custom one with that id."""
        require_project_id(input)
        definition = get_builtin_workflow(workflow_id)
        if definition is None:
            record = await self._repository.get_definition(workflow_id)
            if record is None:
                raise DefinitionError(f"Unknown workflow: {workflow_id}")
            definition = record.to_definition()
        return await self._driver.run(definition, input, options or self._default_options)

    async def execute_custom_workflow(
        self,
        definition: DefinitionInput,
        input: Dict[str, Any],
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """Execute an arbitrary definition without storing it.

        The definition goes through the same validation as stored ones.
        """
        require_project_id(input)
        parsed = self._validator.validate(definition)
        return await self._driver.run(parsed, input, options or self._default_options)

    async def get_workflow_status(self, execution_id: str) -> WorkflowStatus:
        record = await self._repository.get_execution(execution_id)
        if record is None:
            raise NotFoundError("Workflow execution", execution_id)

        steps = [
            StepSummary(id=s.step_id, status=s.status, output=s.output, error=s.error)
            for s in record.steps
        ]
        elapsed_ms = 0
        if record.started_at is not None:
            end = record.completed_at or utcnow()
            elapsed_ms = int((end - record.started_at).total_seconds() * 1000)

        return WorkflowStatus(
            status=record.status,
            steps=steps,
            completed_steps=sum(1 for s in steps if s.status == StepStatus.COMPLETED),
            total_steps=len(steps),
            started_at=record.started_at,
            completed_at=record.completed_at,
            elapsed_ms=elapsed_ms,
        )

    async def cancel_workflow(self, execution_id: str) -> ExecutionStatus:
        """Mark a pending or running execution as cancelled.

        The driver notices the request before its next top-level step, even
        when it runs under another orchestrator.

        Raises:
            NotFoundError: If the execution does not exist.
            ConflictError: If the execution already reached a terminal state.
        """
        record = await self._repository.get_execution(execution_id)
        if record is None:
            raise NotFoundError("Workflow execution", execution_id)
        if record.status in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot cancel workflow with status: {record.status.value}")

        requested = self._cancellations.request(execution_id)
        try:
            updated = await self._repository.update_execution(
                execution_id, status=ExecutionStatus.CANCELLED, completed_at=utcnow()
            )
        except ConflictError:
            if requested:
                self._cancellations.discard(execution_id)
            raise
        logger.info(f"Cancellation requested for execution_id={execution_id}")
        return updated.status

    async def list_executions(
        self,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        workflow_id: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> ExecutionPage:
        if page < 1 or limit < 1:
            raise DefinitionError("page and limit must be positive")
        records = await self._repository.list_executions(
            project_id=project_id,
            status=status,
            workflow_id=workflow_id,
            offset=(page - 1) * limit,
            limit=limit,
        )
        total = await self._repository.count_executions(
            project_id=project_id, status=status, workflow_id=workflow_id
        )
        return ExecutionPage(data=records, total=total, page=page, limit=limit)

    # ------------------------------------------------------------------
    # Definitions
    async def create_custom_workflow(self, definition: DefinitionInput) -> WorkflowSummary:
        """Validate and store a custom definition.

        Raises:
            DefinitionError: If the name or steps are missing, a step type or
                agent is unknown, step ids repeat, or steps reference later
                siblings or each other cyclically.
        """
        parsed = self._validator.validate(definition)
        steps = [step.model_dump(by_alias=True, exclude_none=True) for step in parsed.steps]
        record = await self._repository.create_definition(
            parsed.name, parsed.description or "", steps
        )
        logger.info(f"Created custom workflow {record.name!r} id={record.id}")
        return WorkflowSummary(
            id=record.id,
            name=record.name,
            description=record.description or None,
            agents=collect_agents(parsed.steps),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        definition = get_builtin_workflow(workflow_id)
        if definition is not None:
            return definition
        record = await self._repository.get_definition(workflow_id)
        if record is None:
            raise NotFoundError("Workflow", workflow_id)
        return record.to_definition()

    async def delete_custom_workflow(self, workflow_id: str) -> None:
        if is_builtin_workflow(workflow_id):
            raise DefinitionError("Cannot delete predefined workflows")
        if not await self._repository.delete_definition(workflow_id):
            raise NotFoundError("Workflow", workflow_id)
        logger.info(f"Deleted custom workflow id={workflow_id}")

    async def list_workflows(self) -> WorkflowListing:
        predefined = [
            WorkflowSummary(
                id=wf.id,
                name=wf.name,
                description=wf.description or "",
                agents=collect_agents(wf.steps),
            )
            for wf in BUILTIN_WORKFLOWS.values()
        ]
        custom = [
            WorkflowSummary(id=r.id, name=r.name, description=r.description or None)
            for r in await self._repository.list_definitions()
        ]
        return WorkflowListing(predefined=predefined, custom=custom)

    async def estimate_cost(self, workflow_id: str, input: Dict[str, Any]) -> CostEstimate:
        definition = get_builtin_workflow(workflow_id)
        if definition is None:
            raise DefinitionError(f"Unknown workflow: {workflow_id}")
        return self._estimator.estimate(definition, input)
