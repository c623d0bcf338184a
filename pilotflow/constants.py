"""Shared constants for pilotflow."""

from __future__ import annotations

# USD per 1000 tokens used for estimates and for pricing agent usage
DEFAULT_COST_PER_1K_TOKENS = 0.003

# Baseline tokens assumed for an agent absent from AGENT_TOKEN_ESTIMATES
DEFAULT_AGENT_TOKENS = 1500

AGENT_TOKEN_ESTIMATES: dict[str, int] = {
    "TestWeaver": 2000,
    "ScriptSmith": 1500,
    "CodeGuardian": 1800,
    "VisualAnalysis": 2500,
    "BugPattern": 1600,
    "FlowPilot": 1400,
    "CodeAnalysis": 2000,
    "TestEvolution": 1700,
}

# 10% more tokens per 1000 characters of serialized input
INPUT_SIZE_FACTOR = 0.1

DEFAULT_MODEL = "openai:gpt-4o-mini"

DEFAULT_PAGE_SIZE = 10
