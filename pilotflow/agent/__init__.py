"""LLM-backed agent capabilities."""

from .wrapper import AGENT_CATALOGUE, LLMOperation, build_default_registry, build_llm_capability

__all__ = [
    "AGENT_CATALOGUE",
    "LLMOperation",
    "build_default_registry",
    "build_llm_capability",
]
