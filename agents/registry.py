# ============================================================================
# AGENT REGISTRY
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Agent interface, registration and lookup
# PURPOSE: Register and discover agents by id
# CREATED: 18 OCT 2026
# ============================================================================
"""
Agent Registry

The executor calls every agent through one narrow interface:

    agent.agent_id
    await agent.execute(input, context) -> AgentResult

Design:
- Registries are plain instances handed to the executor (no global state)
- Plain functions (sync or async) are adapted with FunctionAgent
- Fail-fast on duplicate registration
- Sync functions run in the default thread pool
"""

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

logger = logging.getLogger(__name__)


# ============================================================================
# AGENT TYPES
# ============================================================================

@dataclass
class AgentContext:
    """
    Context passed to agents alongside their resolved input.

    cancel_event is set when the step's deadline expires; long-running
    agents may poll it to stop early.

    state holds a read-only copy of the shared-state keys the step declares
    under `state.use`. set_state() queues writes to keys declared under
    `state.set`; the executor applies them once the step succeeds.
    """
    agent_id: str
    step_id: str
    run_id: Optional[str] = None
    ensemble: Optional[str] = None
    attempt: int = 1
    timeout_ms: Optional[float] = None
    env: Mapping[str, Any] = field(default_factory=dict)
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    state: Mapping[str, Any] = field(default_factory=dict)
    state_writable: FrozenSet[str] = frozenset()
    state_updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def set_state(self, updates: Mapping[str, Any]) -> None:
        """Queue shared-state writes. Keys not declared under `state.set` are dropped."""
        for key, value in updates.items():
            if key in self.state_writable:
                self.state_updates[key] = value
            else:
                logger.warning(f"Agent {self.agent_id} may not set state key '{key}'; ignored")


@dataclass
class AgentResult:
    """
    Result returned by agents.

    Agents return this to indicate success/failure; FunctionAgent wraps
    plain return values as success.
    """
    success: bool = True
    output: Any = None
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = field(default=None, repr=False)

    @classmethod
    def success_result(cls, output: Any = None, **kwargs) -> "AgentResult":
        """Create a success result."""
        return cls(success=True, output=output, **kwargs)

    @classmethod
    def failure_result(
        cls,
        error_message: str,
        output: Any = None,
        exception: Optional[BaseException] = None,
    ) -> "AgentResult":
        """Create a failure result."""
        return cls(success=False, error_message=error_message, output=output, exception=exception)


@runtime_checkable
class Agent(Protocol):
    """Anything with an id and an async execute(input, context)."""

    agent_id: str

    async def execute(self, input: Any, context: AgentContext) -> AgentResult:
        ...


AgentFunc = Callable[[Any, AgentContext], Union[Any, Awaitable[Any]]]


class FunctionAgent:
    """Adapts a plain function `(input, context) -> value | AgentResult`."""

    def __init__(
        self,
        agent_id: str,
        func: AgentFunc,
        description: str = "",
        tags: Optional[List[str]] = None,
    ):
        self.agent_id = agent_id
        self.func = func
        self.description = description or (func.__doc__ or "").strip().split("\n")[0]
        self.tags = tags or []
        self.is_async = asyncio.iscoroutinefunction(func)

    async def execute(self, input: Any, context: AgentContext) -> AgentResult:
        if self.is_async:
            result = await self.func(input, context)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, functools.partial(self.func, input, context))

        if isinstance(result, AgentResult):
            return result
        return AgentResult.success_result(result)

    def __repr__(self) -> str:
        return f"FunctionAgent({self.agent_id!r})"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class AgentError(Exception):
    """Base exception for registry errors."""
    pass


class AgentNotFoundError(AgentError):
    """Raised when an agent is not found in the registry."""
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent not found: {agent_id}")


class DuplicateAgentError(AgentError):
    """Raised when an agent id is already registered."""
    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent already registered: {agent_id}")


# ============================================================================
# REGISTRY
# ============================================================================

class AgentRegistry:
    """
    Agent lookup for the executor.

    Example:
        registry = AgentRegistry()

        @registry.register("double")
        def double(input, ctx):
            return {"value": input["value"] * 2}
    """

    def __init__(self, agents: Optional[Iterable[Agent]] = None):
        self._agents: Dict[str, Agent] = {}
        self._metadata: Dict[str, Dict[str, Any]] = {}
        for agent in agents or []:
            self.add(agent)

    def add(self, agent: Agent, description: str = "", tags: Optional[List[str]] = None) -> Agent:
        """Register an agent instance."""
        agent_id = agent.agent_id
        if agent_id in self._agents:
            raise DuplicateAgentError(agent_id)

        self._agents[agent_id] = agent
        self._metadata[agent_id] = {
            "agent_id": agent_id,
            "description": description or getattr(agent, "description", ""),
            "tags": tags or list(getattr(agent, "tags", [])),
            "type": type(agent).__name__,
            "registered_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.debug(f"Registered agent: {agent_id} ({type(agent).__name__})")
        return agent

    def register(
        self,
        agent_id: str,
        *,
        description: str = "",
        tags: Optional[List[str]] = None,
    ) -> Callable[[AgentFunc], AgentFunc]:
        """
        Decorator to register a function as an agent.

        Args:
            agent_id: Agent id (must be unique)
            description: Human-readable description
            tags: Optional tags for categorization

        Returns:
            Decorator function (the function itself is returned unchanged)
        """
        def decorator(func: AgentFunc) -> AgentFunc:
            self.add(FunctionAgent(agent_id, func, description=description, tags=tags))
            return func

        return decorator

    def get(self, agent_id: str) -> Optional[Agent]:
        return self._agents.get(agent_id)

    def get_or_raise(self, agent_id: str) -> Agent:
        """
        Get an agent by id, raising if not found.

        Raises:
            AgentNotFoundError if agent not found
        """
        agent = self._agents.get(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    def list_agents(self) -> List[Dict[str, Any]]:
        """List all registered agents with metadata."""
        return list(self._metadata.values())

    def names(self) -> List[str]:
        return list(self._agents)

    def missing(self, agent_ids: Iterable[str]) -> List[str]:
        """Agent ids that are not registered (empty if all valid)."""
        return [agent_id for agent_id in agent_ids if agent_id not in self._agents]

    def clear(self) -> None:
        """Clear all registered agents. Primarily for testing."""
        self._agents.clear()
        self._metadata.clear()

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents

    def __len__(self) -> int:
        return len(self._agents)


# ============================================================================
# ASYNC AGENT EXECUTION
# ============================================================================

async def execute_agent(
    agent: Agent,
    input: Any,
    context: AgentContext,
) -> AgentResult:
    """
    Execute an agent, turning raised exceptions into failure results.

    Cancellation is not caught; it propagates to the caller.
    """
    try:
        return await agent.execute(input, context)
    except Exception as e:
        logger.warning(f"Agent {agent.agent_id} raised {type(e).__name__}: {e}")
        return AgentResult.failure_result(f"{type(e).__name__}: {e}", exception=e)


# ============================================================================
# EXPORTS
# ============================================================================

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
