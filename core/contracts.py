# ============================================================================
# CLAUDE CONTEXT - BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Foundation - Core enums, sentinel and truthiness rules
# PURPOSE: Define status enums and value semantics shared by every component
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: RunStatus, StepStatus, OutcomeKind, UNDEFINED, is_truthy, is_nullish
# DEPENDENCIES: enum, math
# ============================================================================
"""
Base contracts for the ensemble orchestrator.

Everything that crosses a component boundary (expression evaluator,
resolver chain, step dispatcher, flow executor) agrees on:
- the lifecycle enums for runs and steps
- the UNDEFINED sentinel for unresolvable references
- the truthiness rules used by `!`, `||`, ternaries and conditions
"""

import math
from enum import Enum
from typing import Any


# ============================================================================
# STATUS ENUMS
# ============================================================================

class RunStatus(str, Enum):
    """
    Ensemble run lifecycle states.

    State transitions:
        PENDING -> RUNNING -> SUCCEEDED
                          -> FAILED
    """
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCEEDED, RunStatus.FAILED)


class StepStatus(str, Enum):
    """
    Step lifecycle states.

    State transitions:
        PENDING -> RUNNING -> SUCCEEDED
                          -> FAILED
                          -> TIMED_OUT   (fallback or soft timeout)
        PENDING -> SKIPPED               (when guard falsy, no branch taken)
    """
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"

    def is_terminal(self) -> bool:
        return self not in (StepStatus.PENDING, StepStatus.RUNNING)

    def is_successful(self) -> bool:
        """Steps that let the flow continue."""
        return self in (StepStatus.SUCCEEDED, StepStatus.SKIPPED, StepStatus.TIMED_OUT)


class OutcomeKind(str, Enum):
    """The four shapes a StepOutcome can take."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    TIMED_OUT = "timed_out"

    @property
    def step_status(self) -> StepStatus:
        return {
            OutcomeKind.SUCCESS: StepStatus.SUCCEEDED,
            OutcomeKind.FAILURE: StepStatus.FAILED,
            OutcomeKind.SKIPPED: StepStatus.SKIPPED,
            OutcomeKind.TIMED_OUT: StepStatus.TIMED_OUT,
        }[self]


# ============================================================================
# UNDEFINED SENTINEL
# ============================================================================

class _Undefined:
    """
    Marker for a reference that could not be resolved.

    Distinct from None: `a ?? b` treats both as nullish, but only UNDEFINED
    leaves a partial placeholder untouched in interpolated text.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __reduce__(self):
        return "UNDEFINED"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


UNDEFINED = _Undefined()


def is_undefined(value: Any) -> bool:
    return value is UNDEFINED


def is_nullish(value: Any) -> bool:
    """True for None and UNDEFINED, the values `??` skips."""
    return value is None or value is UNDEFINED


def is_truthy(value: Any) -> bool:
    """
    Truthiness used by expressions and conditions.

    Falsy: False, 0, 0.0, "", None, UNDEFINED, NaN.
    Truthy: everything else, including empty lists and dicts.
    """
    if is_nullish(value):
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return False
        return value != 0
    if isinstance(value, str):
        return value != ""
    return True


def scrub_undefined(value: Any) -> Any:
    """Recursively replace UNDEFINED with None for serialization."""
    if value is UNDEFINED:
        return None
    if isinstance(value, dict):
        return {k: scrub_undefined(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [scrub_undefined(v) for v in value]
    return value


__all__ = [
    "RunStatus",
    "StepStatus",
    "OutcomeKind",
    "UNDEFINED",
    "is_undefined",
    "is_nullish",
    "is_truthy",
    "scrub_undefined",
]
