"""Step execution engine for pilotflow workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict

from .context import ExecutionContext
from .contracts import (
    AgentStep,
    AggregateStep,
    ConditionStep,
    ParallelStep,
    Step,
    StepOutcome,
    StepStatus,
    TransformStep,
    ValidateStep,
)
from .errors import StepError
from .expressions import (
    evaluate_condition,
    evaluate_expression,
    evaluate_rule,
    resolve_field,
    resolve_template,
)
from .registry import AgentRegistry, AgentResult

logger = logging.getLogger(__name__)

Handler = Callable[[Step, ExecutionContext], Awaitable[StepOutcome]]


class StepExecutor:
    """Executes a single step of any kind against an execution context.

    :meth:`execute` never raises for step-level problems: every failure is
    returned as a ``failed`` :class:`StepOutcome` carrying the error message.
    """

    def __init__(self, registry: AgentRegistry) -> None:
        self._registry = registry
        self._handlers: Dict[str, Handler] = {
            "agent": self._execute_agent,
            "condition": self._execute_condition,
            "parallel": self._execute_parallel,
            "aggregate": self._execute_aggregate,
            "transform": self._execute_transform,
            "validate": self._execute_validate,
        }

    async def execute(self, step: Step, context: ExecutionContext) -> StepOutcome:
        step_type = getattr(step, "type", None)
        logger.debug(f"Executing {step_type} step {getattr(step, 'id', '?')}")
        try:
            handler = self._handlers.get(step_type)
            if handler is None:
                raise StepError(f"Unknown step type: {step_type}")
            return await handler(step, context)
        except Exception as e:
            logger.debug(f"Step {getattr(step, 'id', '?')} failed: {e}")
            return StepOutcome.failed(str(e) or type(e).__name__)

    async def _execute_agent(self, step: AgentStep, context: ExecutionContext) -> StepOutcome:
        if not step.agent or not step.operation:
            raise StepError("Agent step requires agent and operation")

        operation = self._registry.resolve(step.agent, step.operation)
        resolved_input = resolve_template(step.input, context)

        try:
            raw = await operation(resolved_input)
        except Exception as e:
            logger.warning(f"Agent {step.agent}.{step.operation} failed in step {step.id}: {e}")
            return StepOutcome.failed(str(e) or "Agent execution failed")

        result = AgentResult.coerce(raw)
        if result is None:
            return StepOutcome.completed(None, 0.0)
        return StepOutcome.completed(result.data, result.cost_usd)

    async def _execute_condition(
        self, step: ConditionStep, context: ExecutionContext
    ) -> StepOutcome:
        if not step.condition:
            raise StepError("Condition step requires condition")

        branch = step.then if evaluate_condition(step.condition, context) else step.else_
        if not branch:
            return StepOutcome.skipped()

        total_cost = 0.0
        last_output = None
        for branch_step in branch:
            outcome = await self.execute(branch_step, context)
            if outcome.status == StepStatus.FAILED:
                return outcome
            context.results.publish(branch_step.id, outcome, branch_step.output_key)
            total_cost += outcome.cost_usd
            last_output = outcome.output

        return StepOutcome.completed(last_output, total_cost)

    async def _execute_parallel(
        self, step: ParallelStep, context: ExecutionContext
    ) -> StepOutcome:
        if not step.branches:
            return StepOutcome.completed({})

        forks = [context.fork() for _ in step.branches]
        outcomes = await asyncio.gather(
            *(self.execute(branch, fork) for branch, fork in zip(step.branches, forks))
        )

        # lowest branch index wins when several branches failed
        for outcome in outcomes:
            if outcome.status == StepStatus.FAILED:
                return StepOutcome.failed(outcome.error or "Parallel branch failed")

        combined = {}
        total_cost = 0.0
        for branch, fork, outcome in zip(step.branches, forks, outcomes):
            context.results.merge_child(fork.results)
            context.results.publish(branch.id, outcome, branch.output_key)
            if branch.output_key:
                combined[branch.output_key] = outcome.output
            total_cost += outcome.cost_usd

        return StepOutcome.completed(combined, total_cost)

    async def _execute_aggregate(
        self, step: AggregateStep, context: ExecutionContext
    ) -> StepOutcome:
        results = context.results
        aggregated = {}
        for source in step.sources:
            outcome = results.get(source)
            if outcome is None:
                continue
            alias = next(
                (key for key, value in results.items() if value is outcome and key != source),
                source,
            )
            aggregated[alias] = outcome.output
        return StepOutcome.completed(aggregated)

    async def _execute_transform(
        self, step: TransformStep, context: ExecutionContext
    ) -> StepOutcome:
        return StepOutcome.completed(
            {
                key: evaluate_expression(expression, context)
                for key, expression in step.transform.items()
            }
        )

    async def _execute_validate(
        self, step: ValidateStep, context: ExecutionContext
    ) -> StepOutcome:
        for rule in step.validation.rules:
            value = resolve_field(rule.field, context)
            if not evaluate_rule(rule.condition, value):
                return StepOutcome(
                    status=StepStatus.FAILED,
                    output={"valid": False, "message": rule.message},
                    error=rule.message,
                )
        return StepOutcome.completed({"valid": True})
