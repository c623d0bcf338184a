from __future__ import annotations

import os
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    AGENT_TOKEN_ESTIMATES,
    DEFAULT_AGENT_TOKENS,
    DEFAULT_COST_PER_1K_TOKENS,
    DEFAULT_MODEL,
)


class AgentConfig(BaseModel):
    """Configuration for the LLM-backed default agents."""

    model: str = DEFAULT_MODEL


class CostConfig(BaseModel):
    """Pricing used for cost estimates and agent usage."""

    cost_per_1k_tokens: float = DEFAULT_COST_PER_1K_TOKENS
    default_tokens: int = DEFAULT_AGENT_TOKENS
    token_estimates: Dict[str, int] = Field(
        default_factory=lambda: dict(AGENT_TOKEN_ESTIMATES)
    )


class ExecutionDefaults(BaseModel):
    """Default execution options applied when a caller passes none."""

    timeout: Optional[float] = None
    retry_on_failure: bool = False
    max_retries: int = 0


class PilotflowConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    log_level: str = "INFO"
    agents: AgentConfig = AgentConfig()
    cost: CostConfig = CostConfig()
    execution: ExecutionDefaults = ExecutionDefaults()


def load_config(path: Optional[str] = None) -> PilotflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to PILOTFLOW_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("PILOTFLOW_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = PilotflowConfig(**data)
    else:
        config = PilotflowConfig()

    env_db_url = os.getenv("PILOTFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
