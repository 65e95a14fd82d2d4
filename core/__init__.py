# ============================================================================
# CLAUDE CONTEXT - CORE MODULE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================

from core.contracts import RunStatus, StepStatus, OutcomeKind, UNDEFINED, is_truthy, is_nullish
from core.errors import (
    EnsembleError,
    ValidationError,
    ExpressionError,
    AgentExecutionError,
    StepTimeoutError,
    RetryExhaustedError,
    LoopBoundExceededError,
    ParallelExecutionError,
)
from core.models import (
    EnsembleDefinition,
    ExecutionContext,
    StepOutcome,
    EnsembleResult,
)

__all__ = [
    # Enums
    "RunStatus",
    "StepStatus",
    "OutcomeKind",
    # Values
    "UNDEFINED",
    "is_truthy",
    "is_nullish",
    # Errors
    "EnsembleError",
    "ValidationError",
    "ExpressionError",
    "AgentExecutionError",
    "StepTimeoutError",
    "RetryExhaustedError",
    "LoopBoundExceededError",
    "ParallelExecutionError",
    # Models
    "EnsembleDefinition",
    "ExecutionContext",
    "StepOutcome",
    "EnsembleResult",
]
