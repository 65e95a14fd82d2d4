# ============================================================================
# CLAUDE CONTEXT - MODELS MODULE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Model exports
# PURPOSE: Central export point for ensemble models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

- flow:     pydantic step variants (the descriptor tree)
- ensemble: pydantic ensemble definition
- outcome:  step outcomes, step records and run results
- context:  the per-run execution context
"""

from core.models.flow import (
    StepType,
    WaitFor,
    RetryPolicy,
    TimeoutPolicy,
    CachePolicy,
    StateAccess,
    BaseStep,
    AgentStep,
    SequenceStep,
    ParallelStep,
    BranchStep,
    TryStep,
    ForeachStep,
    WhileStep,
    SwitchStep,
    MapReduceStep,
    FlowStep,
)
from core.models.ensemble import EnsembleDefinition, StateDefinition, RESERVED_NAMES
from core.models.outcome import StepOutcome, StepRecord, EnsembleResult
from core.models.context import ExecutionContext, env_from_os

__all__ = [
    # Flow
    "StepType",
    "WaitFor",
    "RetryPolicy",
    "TimeoutPolicy",
    "CachePolicy",
    "StateAccess",
    "BaseStep",
    "AgentStep",
    "SequenceStep",
    "ParallelStep",
    "BranchStep",
    "TryStep",
    "ForeachStep",
    "WhileStep",
    "SwitchStep",
    "MapReduceStep",
    "FlowStep",
    # Ensemble
    "EnsembleDefinition",
    "StateDefinition",
    "RESERVED_NAMES",
    # Outcomes
    "StepOutcome",
    "StepRecord",
    "EnsembleResult",
    # Context
    "ExecutionContext",
    "env_from_os",
]
