"""Workflow driver: runs a definition's top-level steps and persists progress."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from .context import ExecutionContext
from .contracts import (
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    StepStatus,
    StepSummary,
    WorkflowDefinition,
)
from .errors import ConflictError, DefinitionError
from .execute import StepExecutor
from .persistence import WorkflowRepository
from .persistence.models import utcnow

logger = logging.getLogger(__name__)


class CancellationRegistry:
    """Thread-safe set of execution ids that have been asked to stop.

    Only executions currently driven in this process are tracked; a request
    for any other id returns ``False`` and leaves no entry behind.
    """

    def __init__(self) -> None:
        self._active: set[str] = set()
        self._requested: set[str] = set()
        self._lock = threading.Lock()

    def begin(self, execution_id: str) -> None:
        with self._lock:
            self._active.add(execution_id)

    def end(self, execution_id: str) -> None:
        with self._lock:
            self._active.discard(execution_id)
            self._requested.discard(execution_id)

    def request(self, execution_id: str) -> bool:
        """Mark ``execution_id`` for cancellation if a driver is running it."""
        with self._lock:
            if execution_id not in self._active:
                return False
            self._requested.add(execution_id)
            return True

    def discard(self, execution_id: str) -> None:
        with self._lock:
            self._requested.discard(execution_id)

    def __contains__(self, execution_id: object) -> bool:
        with self._lock:
            return execution_id in self._requested

    def __len__(self) -> int:
        with self._lock:
            return len(self._requested)


_cancellations_instance: CancellationRegistry | None = None


def get_cancellations() -> CancellationRegistry:
    """Return the process-wide cancellation registry."""

    global _cancellations_instance
    if _cancellations_instance is None:
        _cancellations_instance = CancellationRegistry()
    return _cancellations_instance


def require_project_id(input: Dict[str, Any]) -> None:
    if not input.get("projectId"):
        raise DefinitionError("projectId is required")


class _ExecutionRun:
    """Mutable bookkeeping for one execution, owned by a single driver call."""

    def __init__(
        self, execution_id: str, definition: WorkflowDefinition, input: Dict[str, Any]
    ) -> None:
        self.execution_id = execution_id
        self.definition = definition
        self.input = input
        self.context = ExecutionContext(input)
        self.steps: List[StepSummary] = []
        self.total_cost_usd = 0.0
        self.started_at: Optional[datetime] = None


class WorkflowDriver:
    """Executes workflow definitions step by step.

    Top-level steps run strictly in order. Cancellation is checked before
    each top-level step, both in the process-wide registry and in the stored
    record; a step already running is allowed to finish.
    """

    def __init__(
        self,
        executor: StepExecutor,
        repository: WorkflowRepository,
        cancellations: Optional[CancellationRegistry] = None,
    ) -> None:
        self._executor = executor
        self._repository = repository
        self._cancellations = (
            cancellations if cancellations is not None else get_cancellations()
        )

    @property
    def cancellations(self) -> CancellationRegistry:
        return self._cancellations

    async def run(
        self,
        definition: WorkflowDefinition,
        input: Dict[str, Any],
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """Execute ``definition`` with ``input`` and return the terminal result.

        Raises:
            DefinitionError: If ``input`` has no ``projectId``. No execution
                record is created in that case.
        """
        require_project_id(input)
        if options is not None and (options.timeout or options.retry_on_failure):
            logger.debug(
                f"Execution options for {definition.id} recorded but not enforced: "
                f"timeout={options.timeout} retry_on_failure={options.retry_on_failure} "
                f"max_retries={options.max_retries}"
            )

        execution_id = await self._repository.create_execution(definition.id, input)
        run = _ExecutionRun(execution_id, definition, input)
        self._cancellations.begin(execution_id)

        try:
            run.started_at = utcnow()
            await self._repository.update_execution(
                execution_id, status=ExecutionStatus.RUNNING, started_at=run.started_at
            )
            logger.info(f"Started workflow {definition.id} execution_id={execution_id}")

            for step in definition.steps:
                if await self._cancel_requested(execution_id):
                    return await self._finish(run, ExecutionStatus.CANCELLED)

                record_id = await self._repository.create_step(
                    execution_id, step.id, StepStatus.RUNNING
                )
                outcome = await self._executor.execute(step, run.context)

                if outcome.status == StepStatus.FAILED:
                    error = outcome.error or "Step execution failed"
                    await self._repository.update_step(
                        record_id, StepStatus.FAILED, output=outcome.output, error=error
                    )
                    run.steps.append(
                        StepSummary(
                            id=step.id, status=StepStatus.FAILED, output=outcome.output, error=error
                        )
                    )
                    logger.info(
                        f"Step {step.id} failed for execution_id={execution_id}: {error}"
                    )
                    return await self._finish(run, ExecutionStatus.FAILED, error)

                run.context.results.publish(step.id, outcome, step.output_key)
                run.total_cost_usd += outcome.cost_usd
                await self._repository.update_step(record_id, outcome.status, output=outcome.output)
                run.steps.append(
                    StepSummary(id=step.id, status=outcome.status, output=outcome.output)
                )

            return await self._finish(run, ExecutionStatus.COMPLETED)
        except Exception as e:
            logger.error(
                f"Workflow execution failed for execution_id={execution_id}: {e}",
                exc_info=True,
            )
            return await self._finish(run, ExecutionStatus.FAILED, str(e) or "Unknown error")
        finally:
            self._cancellations.end(execution_id)

    async def _cancel_requested(self, execution_id: str) -> bool:
        if execution_id in self._cancellations:
            return True
        # cancellations issued by another process only reach the stored record
        record = await self._repository.get_execution(execution_id)
        return record is not None and record.status == ExecutionStatus.CANCELLED

    async def _finish(
        self, run: _ExecutionRun, status: ExecutionStatus, error: Optional[str] = None
    ) -> ExecutionResult:
        if run.execution_id in self._cancellations:
            status, error = ExecutionStatus.CANCELLED, "Workflow cancelled"
        elif status == ExecutionStatus.CANCELLED:
            error = "Workflow cancelled"

        output = run.context.results.named_outputs()
        completed_at = utcnow()
        try:
            stored = await self._repository.update_execution(
                run.execution_id,
                status=status,
                output=output,
                total_cost_usd=run.total_cost_usd,
                error=error,
                completed_at=completed_at,
            )
            completed_at = stored.completed_at or completed_at
        except ConflictError as e:
            record = await self._repository.get_execution(run.execution_id)
            if record is None:
                raise
            logger.warning(
                f"Execution {run.execution_id} already {record.status.value}; "
                f"not recording {status.value}: {e}"
            )
            status, error = record.status, record.error
            completed_at = record.completed_at or completed_at

        logger.info(
            f"Workflow {run.definition.id} {status.value} execution_id={run.execution_id}"
        )
        return ExecutionResult(
            id=run.execution_id,
            workflow_id=run.definition.id,
            status=status,
            input=run.input,
            output=output,
            steps=run.steps,
            started_at=run.started_at,
            completed_at=completed_at,
            error=error,
            total_cost_usd=run.total_cost_usd,
        )
