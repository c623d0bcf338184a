"""Workflow definitions, step types and result contracts for pilotflow."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model using camelCase on the wire and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Dump to a JSON-compatible dict using wire names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED}
)


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Step graph


class BaseStep(WireModel):
    """Fields shared by every step kind."""

    id: str = Field(min_length=1)
    output_key: Optional[str] = None

    def children(self) -> List["Step"]:
        """Return nested steps executed on behalf of this step."""
        return []


class AgentStep(BaseStep):
    """Invoke ``agent.operation`` with a resolved input template."""

    type: Literal["agent"] = "agent"
    agent: str = ""
    operation: str = ""
    input: Dict[str, Any] = Field(default_factory=dict)


class ConditionStep(BaseStep):
    """Run ``then`` or ``else`` depending on a boolean expression."""

    type: Literal["condition"] = "condition"
    condition: str = ""
    then: List[Step] = Field(default_factory=list)
    else_: List[Step] = Field(default_factory=list, alias="else")

    def children(self) -> List["Step"]:
        return [*self.then, *self.else_]


class ParallelStep(BaseStep):
    """Run every branch concurrently and join on all of them."""

    type: Literal["parallel"] = "parallel"
    branches: List[Step] = Field(default_factory=list)

    def children(self) -> List["Step"]:
        return list(self.branches)


class AggregateStep(BaseStep):
    """Merge the outputs of earlier steps into one object."""

    type: Literal["aggregate"] = "aggregate"
    sources: List[str] = Field(default_factory=list)
    # accepted for compatibility with stored definitions; merge is the only mode
    aggregate_function: Optional[Literal["merge", "concat", "sum"]] = None


class TransformStep(BaseStep):
    """Build an object by evaluating one expression per field."""

    type: Literal["transform"] = "transform"
    transform: Dict[str, str] = Field(default_factory=dict)


class ValidationRule(WireModel):
    field: str
    condition: str
    message: str


class ValidationSpec(WireModel):
    rules: List[ValidationRule] = Field(default_factory=list)


class ValidateStep(BaseStep):
    """Check ordered rules and fail on the first one that does not hold."""

    type: Literal["validate"] = "validate"
    validation: ValidationSpec = Field(default_factory=ValidationSpec)


Step = Annotated[
    Union[AgentStep, ConditionStep, ParallelStep, AggregateStep, TransformStep, ValidateStep],
    Field(discriminator="type"),
]

STEP_TYPES = ("agent", "condition", "parallel", "aggregate", "transform", "validate")

ConditionStep.model_rebuild()
ParallelStep.model_rebuild()


def walk_steps(steps: List[Step]) -> Iterator[Step]:
    """Yield every step in ``steps`` depth-first, nested steps included."""
    for step in steps:
        yield step
        yield from walk_steps(step.children())


def collect_agents(steps: List[Step]) -> List[str]:
    """Return the distinct agent names used anywhere in ``steps``."""
    agents: List[str] = []
    for step in walk_steps(steps):
        if isinstance(step, AgentStep) and step.agent and step.agent not in agents:
            agents.append(step.agent)
    return agents


class WorkflowDefinition(WireModel):
    """An ordered step graph executed by the workflow driver."""

    id: str = ""
    name: str
    description: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)


class ExecutionOptions(WireModel):
    """Execution options. Timeout and retries are recorded but not enforced."""

    timeout: Optional[float] = None
    retry_on_failure: bool = False
    max_retries: int = 0


# ---------------------------------------------------------------------------
# Results


class StepOutcome(WireModel):
    """Result of executing one step."""

    status: StepStatus
    output: Any = None
    error: Optional[str] = None
    cost_usd: float = 0.0

    @classmethod
    def completed(cls, output: Any = None, cost_usd: float = 0.0) -> "StepOutcome":
        return cls(status=StepStatus.COMPLETED, output=output, cost_usd=cost_usd)

    @classmethod
    def failed(cls, error: str, output: Any = None) -> "StepOutcome":
        return cls(status=StepStatus.FAILED, output=output, error=error)

    @classmethod
    def skipped(cls) -> "StepOutcome":
        return cls(status=StepStatus.SKIPPED)


class StepSummary(WireModel):
    id: str
    status: StepStatus
    output: Any = None
    error: Optional[str] = None


class ExecutionResult(WireModel):
    """Terminal result of running a workflow definition."""

    id: str
    workflow_id: str
    status: ExecutionStatus
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Dict[str, Any] = Field(default_factory=dict)
    steps: List[StepSummary] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    total_cost_usd: float = 0.0


class WorkflowStatus(WireModel):
    status: ExecutionStatus
    steps: List[StepSummary] = Field(default_factory=list)
    completed_steps: int = 0
    total_steps: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    elapsed_ms: int = 0


class CostBreakdown(WireModel):
    step_id: str
    agent: str
    estimated_cost_usd: float
    estimated_tokens: int


class CostEstimate(WireModel):
    estimated_cost_usd: float = 0.0
    estimated_tokens: int = 0
    breakdown: List[CostBreakdown] = Field(default_factory=list)


class WorkflowSummary(WireModel):
    id: str
    name: str
    description: Optional[str] = None
    agents: List[str] = Field(default_factory=list)


class WorkflowListing(WireModel):
    predefined: List[WorkflowSummary] = Field(default_factory=list)
    custom: List[WorkflowSummary] = Field(default_factory=list)
