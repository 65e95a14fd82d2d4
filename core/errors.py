# ============================================================================
# ENSEMBLE ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Foundation - Typed errors for every failure surface
# PURPOSE: Give runs a stable (step_id, kind, message) failure contract
# CREATED: 18 OCT 2026
# ============================================================================
"""
Ensemble Errors

Every failure raised inside a run is an EnsembleError subclass. Errors
propagate up the step tree to the nearest enclosing `try` step, otherwise
they end the run and are folded into the EnsembleResult by the executor.

Each error knows:
- kind: stable name used by retry_on filters and HTTP status mapping
- step_id: the step that originated the failure (filled in as it bubbles)
- message: human readable description
"""

from typing import Any, Dict, List, Optional


# ============================================================================
# BASE
# ============================================================================

class EnsembleError(Exception):
    """Base exception for ensemble failures."""

    kind = "EnsembleError"

    def __init__(
        self,
        message: str,
        step_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.step_id = step_id
        self.details = details or {}

    def with_step(self, step_id: Optional[str]) -> "EnsembleError":
        """Attach the originating step id if none was recorded yet."""
        if self.step_id is None and step_id:
            self.step_id = step_id
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "step_id": self.step_id,
        }
        if self.details:
            data["details"] = self.details
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind!r}, step_id={self.step_id!r}, message={self.message!r})"


# ============================================================================
# DESCRIPTOR / EXPRESSION ERRORS
# ============================================================================

class ValidationError(EnsembleError):
    """Malformed ensemble descriptor. Raised before any step runs."""

    kind = "ValidationError"

    def __init__(self, message: str, errors: Optional[List[str]] = None, step_id: Optional[str] = None):
        self.errors = errors or [message]
        super().__init__(message, step_id=step_id, details={"errors": self.errors})


class ExpressionError(EnsembleError):
    """Malformed placeholder expression."""

    kind = "ExpressionError"

    def __init__(self, message: str, expression: str = "", position: Optional[int] = None):
        self.expression = expression
        self.position = position
        details: Dict[str, Any] = {"expression": expression}
        if position is not None:
            details["position"] = position
        super().__init__(message, details=details)


# ============================================================================
# EXECUTION ERRORS
# ============================================================================

class AgentExecutionError(EnsembleError):
    """An agent returned a failure result or raised."""

    kind = "AgentExecutionError"

    def __init__(self, message: str, agent_id: Optional[str] = None, step_id: Optional[str] = None):
        self.agent_id = agent_id
        super().__init__(message, step_id=step_id, details={"agent_id": agent_id} if agent_id else None)


class StepTimeoutError(EnsembleError):
    """A step exceeded its deadline and declared no fallback."""

    kind = "TimeoutError"

    def __init__(self, message: str, timeout_ms: Optional[float] = None, step_id: Optional[str] = None):
        self.timeout_ms = timeout_ms
        super().__init__(message, step_id=step_id, details={"timeout_ms": timeout_ms})


class RetryExhaustedError(EnsembleError):
    """All retry attempts failed. Wraps the last error."""

    kind = "RetryExhaustedError"

    def __init__(self, attempts: int, last_error: EnsembleError, step_id: Optional[str] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Failed after {attempts} attempts: {last_error.message}",
            step_id=step_id or last_error.step_id,
            details={"attempts": attempts, "last_error": last_error.to_dict()},
        )


class LoopBoundExceededError(EnsembleError):
    """A while loop reached max_iterations with its condition still truthy."""

    kind = "LoopBoundExceededError"

    def __init__(self, max_iterations: int, step_id: Optional[str] = None):
        self.max_iterations = max_iterations
        super().__init__(
            f"Loop exceeded maximum iterations ({max_iterations})",
            step_id=step_id,
            details={"max_iterations": max_iterations},
        )


class ParallelExecutionError(EnsembleError):
    """One or more concurrent branches failed."""

    kind = "ParallelExecutionError"

    def __init__(self, errors: List[EnsembleError], step_id: Optional[str] = None):
        self.errors = errors
        summary = "; ".join(
            f"{e.step_id or '?'}: {e.message}" for e in errors
        )
        super().__init__(
            f"{len(errors)} concurrent branch(es) failed: {summary}",
            step_id=step_id,
            details={"errors": [e.to_dict() for e in errors]},
        )


__all__ = [
    "EnsembleError",
    "ValidationError",
    "ExpressionError",
    "AgentExecutionError",
    "StepTimeoutError",
    "RetryExhaustedError",
    "LoopBoundExceededError",
    "ParallelExecutionError",
]
