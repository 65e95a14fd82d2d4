# ============================================================================
# CLAUDE CONTEXT - STEP OUTCOME & RUN RESULT
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core model - Results of steps and runs
# PURPOSE: Mutually exclusive step outcomes and the structured run result
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: StepOutcome, StepRecord, EnsembleResult
# DEPENDENCIES: dataclasses
# ============================================================================
"""
Outcome Models

StepOutcome is what dispatching one step produces. Exactly one of:
- success(value)
- failure(error)
- skipped
- timed_out(fallback)

EnsembleResult is what a run produces. Runs never raise for step
failures; the failure is described by `error`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.contracts import OutcomeKind, RunStatus, StepStatus, UNDEFINED, scrub_undefined
from core.errors import EnsembleError


@dataclass
class StepOutcome:
    """Result of dispatching one step."""
    kind: OutcomeKind
    value: Any = UNDEFINED
    error: Optional[EnsembleError] = None
    cached: bool = False
    attempts: int = 0
    duration_ms: float = 0.0
    # Shared-state writes queued by the agent, applied by the executor
    state_updates: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Any, **kwargs) -> "StepOutcome":
        return cls(kind=OutcomeKind.SUCCESS, value=value, **kwargs)

    @classmethod
    def failure(cls, error: EnsembleError, **kwargs) -> "StepOutcome":
        return cls(kind=OutcomeKind.FAILURE, error=error, **kwargs)

    @classmethod
    def skipped(cls) -> "StepOutcome":
        return cls(kind=OutcomeKind.SKIPPED)

    @classmethod
    def timed_out(cls, fallback: Any = UNDEFINED, **kwargs) -> "StepOutcome":
        return cls(kind=OutcomeKind.TIMED_OUT, value=fallback, **kwargs)

    @property
    def ok(self) -> bool:
        return self.kind != OutcomeKind.FAILURE

    @property
    def status(self) -> StepStatus:
        return self.kind.step_status


@dataclass
class StepRecord:
    """A step's entry in the run's result store."""
    step_id: str
    status: StepStatus
    output: Any = UNDEFINED
    cached: bool = False
    attempts: int = 0
    duration_ms: float = 0.0
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_outcome(cls, step_id: str, outcome: StepOutcome) -> "StepRecord":
        return cls(
            step_id=step_id,
            status=outcome.status,
            output=outcome.value,
            cached=outcome.cached,
            attempts=outcome.attempts,
            duration_ms=outcome.duration_ms,
            error=outcome.error.to_dict() if outcome.error else None,
        )

    def view(self) -> Dict[str, Any]:
        """What expressions see under `<step_id>`."""
        return {
            "output": self.output,
            "success": self.status == StepStatus.SUCCEEDED,
            "status": self.status.value,
            "cached": self.cached,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "step_id": self.step_id,
            "status": self.status.value,
            "output": scrub_undefined(self.output),
            "cached": self.cached,
            "attempts": self.attempts,
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class EnsembleResult:
    """Structured result of one ensemble run."""
    run_id: str
    ensemble: str
    status: RunStatus
    output: Any = None
    steps: List[StepRecord] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.get("kind") if self.error else None

    def step(self, step_id: str) -> Optional[StepRecord]:
        """Last record for a step id."""
        for record in reversed(self.steps):
            if record.step_id == step_id:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict; UNDEFINED becomes null."""
        return {
            "run_id": self.run_id,
            "ensemble": self.ensemble,
            "status": self.status.value,
            "output": scrub_undefined(self.output),
            "steps": [record.to_dict() for record in self.steps],
            "error": self.error,
            "duration_ms": round(self.duration_ms, 3),
        }


__all__ = [
    "StepOutcome",
    "StepRecord",
    "EnsembleResult",
]
