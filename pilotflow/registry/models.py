"""Models describing agent capabilities and their results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ..errors import UnknownAgentError, UnknownOperationError


class AgentUsage(BaseModel):
    """Usage reported by a capability invocation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cost_usd: float = 0.0
    tokens: int = 0


class AgentResult(BaseModel):
    """Payload and usage returned by an agent operation."""

    data: Any = None
    usage: Optional[AgentUsage] = None

    @property
    def cost_usd(self) -> float:
        return self.usage.cost_usd if self.usage is not None else 0.0

    @classmethod
    def coerce(cls, value: Any) -> Optional["AgentResult"]:
        """Normalise whatever an operation returned into an ``AgentResult``.

        A mapping with only ``data``/``usage`` keys is read as a result; any
        other value becomes the result data.
        """
        if value is None or isinstance(value, AgentResult):
            return value
        if isinstance(value, Mapping) and value and set(value) <= {"data", "usage"}:
            return cls.model_validate(value)
        return cls(data=value)


Operation = Callable[[Dict[str, Any]], Awaitable[Union[AgentResult, Mapping[str, Any], None]]]


@dataclass
class AgentCapability:
    """A named agent exposing one or more async operations."""

    name: str
    operations: Dict[str, Operation] = field(default_factory=dict)
    description: Optional[str] = None

    def operation(self, name: str) -> Operation:
        op = self.operations.get(name)
        if not callable(op):
            raise UnknownOperationError(self.name, name)
        return op


class AgentRegistry:
    """Two-level lookup table: agent name -> operation name -> callable."""

    def __init__(self, capabilities: Optional[List[AgentCapability]] = None) -> None:
        self._agents: Dict[str, AgentCapability] = {}
        for capability in capabilities or []:
            self.register(capability)

    def register(self, capability: AgentCapability) -> None:
        """Add ``capability``, replacing any agent registered under its name."""
        self._agents[capability.name] = capability

    def get(self, name: str) -> AgentCapability:
        try:
            return self._agents[name]
        except KeyError:
            raise UnknownAgentError(name) from None

    def resolve(self, agent: str, operation: str) -> Operation:
        return self.get(agent).operation(operation)

    def names(self) -> List[str]:
        return list(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __iter__(self) -> Iterator[AgentCapability]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)
