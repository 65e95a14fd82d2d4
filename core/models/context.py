# ============================================================================
# CLAUDE CONTEXT - EXECUTION CONTEXT
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core model - Per-run accumulator
# PURPOSE: Hold input, env, state, step results and scoped locals for one run
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: ExecutionContext, env_from_os
# DEPENDENCIES: copy, os
# ============================================================================
"""
Execution Context

One ExecutionContext is owned by exactly one run. Namespaces:
- input:  deep copy of the run input, never mutated
- env:    read-only configuration / secrets
- state:  shared state, seeded from the ensemble and updated by agent
          steps that declare `state.set`
- output: filled when the run finishes
- step results: append-only, ordered, keyed by step id

Scoping:
    Control steps that introduce locals (foreach `item`/`index`, catch
    `error`, while `iteration`, reduce `mapResults`) or run concurrently
    (parallel branches, map items) work in a child scope created with
    `scope()`. A child reads through to its parent but writes into its
    own overlay. `merge()` copies the overlay into the parent once the
    owning branch has completed, so concurrent siblings never write to
    the same cell.
"""

import copy
import os
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional

from core.contracts import UNDEFINED
from core.models.outcome import StepOutcome, StepRecord


class ExecutionContext:
    """Accumulator for one ensemble run (or one scope within it)."""

    def __init__(
        self,
        input: Optional[Dict[str, Any]] = None,
        env: Optional[Mapping[str, Any]] = None,
        state: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
        ensemble: Optional[str] = None,
    ):
        self.run_id = run_id
        self.ensemble = ensemble
        self.input = copy.deepcopy(input) if input is not None else {}
        self.env = MappingProxyType(dict(env or {}))
        self.state = copy.deepcopy(state) if state is not None else {}
        self.output: Any = UNDEFINED
        self.parent: Optional["ExecutionContext"] = None
        self.locals: Dict[str, Any] = {}
        self._results: Dict[str, StepRecord] = {}
        self._history: List[StepRecord] = []

    # ------------------------------------------------------------------
    # Scoping
    # ------------------------------------------------------------------

    def scope(self, **locals: Any) -> "ExecutionContext":
        """Child scope sharing namespaces, with extra locals and its own overlay."""
        child = ExecutionContext.__new__(ExecutionContext)
        child.run_id = self.run_id
        child.ensemble = self.ensemble
        child.input = self.input
        child.env = self.env
        child.state = self.state
        child.output = self.output
        child.parent = self
        child.locals = {**self.locals, **locals}
        child._results = {}
        child._history = []
        return child

    def merge(self) -> None:
        """Copy this scope's results into the parent, in recorded order."""
        if self.parent is None:
            return
        for record in self._history:
            self.parent._store(record)
        self._results = {}
        self._history = []

    def apply_state(self, updates: Mapping[str, Any]) -> None:
        """
        Apply shared-state writes from a completed step.

        Every scope of a run shares one state dict, so later steps in any
        scope see the update.
        """
        self.state.update(copy.deepcopy(dict(updates)))

    @property
    def root(self) -> "ExecutionContext":
        ctx = self
        while ctx.parent is not None:
            ctx = ctx.parent
        return ctx

    # ------------------------------------------------------------------
    # Step results
    # ------------------------------------------------------------------

    def _store(self, record: StepRecord) -> None:
        self._results[record.step_id] = record
        self._history.append(record)

    def record(self, step_id: str, outcome: StepOutcome) -> StepRecord:
        """Record a step outcome in this scope."""
        record = StepRecord.from_outcome(step_id, outcome)
        self._store(record)
        return record

    def get(self, step_id: str) -> Optional[StepRecord]:
        """Latest record for a step id, searching outward through parents."""
        ctx: Optional[ExecutionContext] = self
        while ctx is not None:
            if step_id in ctx._results:
                return ctx._results[step_id]
            ctx = ctx.parent
        return None

    def has(self, step_id: str) -> bool:
        return self.get(step_id) is not None

    def output_of(self, step_id: str) -> Any:
        record = self.get(step_id)
        return record.output if record is not None else UNDEFINED

    def _visible_results(self) -> Dict[str, StepRecord]:
        chain = []
        ctx: Optional[ExecutionContext] = self
        while ctx is not None:
            chain.append(ctx)
            ctx = ctx.parent
        merged: Dict[str, StepRecord] = {}
        for ctx in reversed(chain):
            merged.update(ctx._results)
        return merged

    @property
    def history(self) -> List[StepRecord]:
        """Records of this scope, in the order they were stored."""
        return list(self._history)

    def outputs(self) -> Dict[str, Any]:
        """step_id -> output for every visible step."""
        return {step_id: record.output for step_id, record in self._visible_results().items()}

    def __iter__(self) -> Iterator[StepRecord]:
        return iter(self._history)

    # ------------------------------------------------------------------
    # Resolution view
    # ------------------------------------------------------------------

    def view(self) -> Dict[str, Any]:
        """
        Read-only mapping handed to the resolver chain.

        {<step_id>: {output, status, cached}, steps: {...},
         input, env, state, output, <locals>}
        """
        step_views = {
            step_id: record.view()
            for step_id, record in self._visible_results().items()
        }
        data: Dict[str, Any] = dict(step_views)
        data["steps"] = step_views
        data["input"] = self.input
        data["env"] = self.env
        data["state"] = self.state
        data["output"] = self.output
        data.update(self.locals)
        return data

    def __repr__(self) -> str:
        return (
            f"ExecutionContext(run_id={self.run_id!r}, steps={list(self._results)}, "
            f"locals={list(self.locals)})"
        )


def env_from_os(prefix: str) -> Dict[str, str]:
    """Process environment variables starting with prefix, prefix stripped."""
    return {
        key[len(prefix):]: value
        for key, value in os.environ.items()
        if key.startswith(prefix) and len(key) > len(prefix)
    }


__all__ = [
    "ExecutionContext",
    "env_from_os",
]
