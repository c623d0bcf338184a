"""Agent registry and the process-wide default instance."""

from __future__ import annotations

from typing import Optional

from ..config import PilotflowConfig, load_config
from .models import AgentCapability, AgentRegistry, AgentResult, AgentUsage, Operation

_registry_instance: AgentRegistry | None = None


def get_registry(config: Optional[PilotflowConfig] = None) -> AgentRegistry:
    """Return the default agent registry, building it on first use.

    The default registry holds the LLM-backed agents of
    :data:`pilotflow.agent.wrapper.AGENT_CATALOGUE` using the configured model.
    """

    global _registry_instance
    if _registry_instance is not None and config is None:
        return _registry_instance

    from ..agent.wrapper import build_default_registry

    _registry_instance = build_default_registry(config or load_config())
    return _registry_instance


def register_agent(capability: AgentCapability) -> None:
    """Add ``capability`` to the default registry.

    An agent already registered under the same name is replaced.
    """

    get_registry().register(capability)


__all__ = [
    "AgentCapability",
    "AgentRegistry",
    "AgentResult",
    "AgentUsage",
    "Operation",
    "get_registry",
    "register_agent",
]
