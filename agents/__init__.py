# ============================================================================
# AGENT REGISTRY
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Agent registration and lookup
# PURPOSE: Register and discover agents
# CREATED: 18 OCT 2026
# ============================================================================
"""
Agents

Provides the agent interface and an instance-based registry.

Usage:
    from agents import AgentRegistry, AgentResult

    registry = AgentRegistry()

    @registry.register("summarize")
    async def summarize(input, ctx):
        return AgentResult.success_result({"summary": input["text"][:100]})
"""

from agents.registry import (
    Agent,
    AgentFunc,
    AgentContext,
    AgentResult,
    FunctionAgent,
    AgentRegistry,
    AgentError,
    AgentNotFoundError,
    DuplicateAgentError,
    execute_agent,
)

__all__ = [
    "Agent",
    "AgentFunc",
    "AgentContext",
    "AgentResult",
    "FunctionAgent",
    "AgentRegistry",
    "AgentError",
    "AgentNotFoundError",
    "DuplicateAgentError",
    "execute_agent",
]
