# ============================================================================
# FLOW EXECUTOR
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Control-flow interpreter
# PURPOSE: Walk an ensemble's step tree and produce an EnsembleResult
# CREATED: 18 OCT 2026
# ============================================================================
"""
Flow Executor

Interprets the step tree of an ensemble:

    agent       -> StepDispatcher
    sequence    -> children in order
    parallel    -> children as concurrent tasks in isolated scopes
    branch      -> then / else by condition
    try         -> steps, catch with `error` in scope, finally always
    foreach     -> step template per item (`item`, `index`), batched
    while       -> steps while condition holds, bounded by max_iterations
    switch      -> cases[str(value)] or default
    map-reduce  -> map per item concurrently, then reduce with `mapResults`

Error flow:
    Failures travel up the tree as EnsembleError exceptions until a `try`
    step catches them. `execute()` is the boundary: it always returns an
    EnsembleResult and never raises for run failures.

Concurrency:
    Concurrent branches write only into their own child scope. Scopes are
    merged into the parent in declaration order after the branches settle.
    A failing branch never cancels its siblings (wait_for: all); the
    aggregate fails afterwards with ParallelExecutionError.
    Shared state is the exception: every scope holds the same dict, and an
    agent step's `state.set` writes land as soon as that step succeeds.

Result keys:
    Agent steps record under `id` (or the agent id). Control steps record
    under `id`; top-level control steps without one record as
    `<type>_<index>`.
"""

import asyncio
import time
import uuid
from typing import Any, Dict, List, Optional

from agents.registry import AgentRegistry
from core.config import Defaults, get_defaults
from core.contracts import RunStatus, UNDEFINED
from core.errors import (
    EnsembleError,
    ExpressionError,
    LoopBoundExceededError,
    ParallelExecutionError,
    StepTimeoutError,
    ValidationError,
)
from core.logging import ComponentType, get_logger, log_checkpoint, log_context
from core.models.context import ExecutionContext
from core.models.ensemble import EnsembleDefinition
from core.models.flow import (
    AgentStep,
    BaseStep,
    BranchStep,
    ForeachStep,
    MapReduceStep,
    ParallelStep,
    SequenceStep,
    SwitchStep,
    TryStep,
    WaitFor,
    WhileStep,
    case_key,
)
from core.models.outcome import EnsembleResult, StepOutcome
from orchestrator.cache import CacheBackend
from orchestrator.dispatcher import SleepFunc, StepDispatcher
from orchestrator.engine.templates import Interpolator, get_interpolator

logger = get_logger(__name__, ComponentType.EXECUTOR)


class FlowExecutor:
    """
    Executes ensembles.

    One executor can run many ensembles concurrently; all per-run state
    lives in the ExecutionContext created by `execute()`.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        cache: Optional[CacheBackend] = None,
        defaults: Optional[Defaults] = None,
        interpolator: Optional[Interpolator] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize executor.

        Args:
            registry: Agents referenced by ensembles
            cache: Optional cache backend for agent steps with a cache policy
            defaults: Retry / timeout / cache / concurrency defaults
            interpolator: Resolver chain (custom resolvers prepended here)
            sleep: Awaitable used between retries (injectable for tests)
        """
        self.registry = registry
        self.defaults = defaults or get_defaults()
        self.interpolator = interpolator or get_interpolator()
        self.dispatcher = StepDispatcher(
            registry,
            interpolator=self.interpolator,
            cache=cache,
            defaults=self.defaults,
            sleep=sleep,
        )

    # ==================================================================
    # RUN BOUNDARY
    # ==================================================================

    def validate(self, ensemble: EnsembleDefinition) -> List[str]:
        """Structural errors plus agents missing from the registry."""
        return ensemble.validate_structure(known_agents=set(self.registry.names()))

    async def execute(
        self,
        ensemble: EnsembleDefinition,
        input: Optional[Dict[str, Any]] = None,
        env: Optional[Dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> EnsembleResult:
        """
        Run an ensemble to completion.

        Args:
            ensemble: Validated ensemble definition
            input: Run input, visible as `input.*`
            env: Configuration / secrets, visible as `env.*`
            run_id: Optional id (generated if omitted)

        Returns:
            EnsembleResult (status succeeded or failed)
        """
        run_id = run_id or uuid.uuid4().hex
        start = time.monotonic()

        with log_context(run_id=run_id, ensemble=ensemble.name):
            log_checkpoint("run_started", {"steps": len(ensemble.flow)})

            errors = self.validate(ensemble)
            if errors:
                error = ValidationError(
                    f"Ensemble '{ensemble.name}' is invalid: {'; '.join(errors)}",
                    errors=errors,
                )
                logger.error(error.message)
                return self._finish(run_id, ensemble, None, start, error=error)

            ctx = ExecutionContext(
                input=input,
                env=env,
                state=ensemble.state.initial,
                run_id=run_id,
                ensemble=ensemble.name,
            )

            try:
                for index, step in enumerate(ensemble.flow):
                    await self.run_step(step, ctx, top_level_index=index)
                ctx.output = self._resolve_output(ensemble, ctx)
            except EnsembleError as e:
                log_checkpoint("run_failed", e.to_dict())
                return self._finish(run_id, ensemble, ctx, start, error=e)
            except Exception as e:
                logger.exception(f"Run {run_id} failed with unexpected exception")
                error = EnsembleError(f"{type(e).__name__}: {e}")
                error.kind = "InternalError"
                return self._finish(run_id, ensemble, ctx, start, error=error)

            return self._finish(run_id, ensemble, ctx, start)

    def _resolve_output(self, ensemble: EnsembleDefinition, ctx: ExecutionContext) -> Any:
        view = ctx.view()
        try:
            if ensemble.output is None:
                return ctx.outputs()
            if isinstance(ensemble.output, str):
                return self.interpolator.evaluate(ensemble.output, view)
            return self.interpolator.resolve(ensemble.output, view)
        except EnsembleError as e:
            raise e.with_step("output")

    def _finish(
        self,
        run_id: str,
        ensemble: EnsembleDefinition,
        ctx: Optional[ExecutionContext],
        start: float,
        error: Optional[EnsembleError] = None,
    ) -> EnsembleResult:
        duration_ms = (time.monotonic() - start) * 1000
        result = EnsembleResult(
            run_id=run_id,
            ensemble=ensemble.name,
            status=RunStatus.FAILED if error else RunStatus.SUCCEEDED,
            output=None if error or ctx is None else ctx.output,
            steps=ctx.history if ctx is not None else [],
            error={
                "step_id": error.step_id,
                "kind": error.kind,
                "message": error.message,
            } if error else None,
            duration_ms=duration_ms,
        )
        log_checkpoint("run_finished", {
            "status": result.status.value,
            "duration_ms": round(duration_ms, 3),
            "error_kind": result.error_kind,
        })
        return result

    # ==================================================================
    # STEP DISPATCH
    # ==================================================================

    async def run_steps(self, steps: List[BaseStep], ctx: ExecutionContext) -> List[Any]:
        """Run steps strictly in order; returns their output values."""
        values = []
        for step in steps:
            outcome = await self.run_step(step, ctx)
            values.append(outcome.value)
        return values

    async def run_step(
        self,
        step: BaseStep,
        ctx: ExecutionContext,
        top_level_index: Optional[int] = None,
    ) -> StepOutcome:
        """
        Run one step and record its outcome in `ctx`.

        Raises:
            EnsembleError: step failed (after recording the failure)
        """
        if isinstance(step, AgentStep):
            outcome = await self.dispatcher.dispatch(step, ctx)
            ctx.record(step.key, outcome)
            if not outcome.ok:
                log_checkpoint("step_failed", outcome.error.to_dict())
                raise outcome.error
            if outcome.state_updates:
                ctx.apply_state(outcome.state_updates)
                logger.debug(f"Step {step.key} updated state: {sorted(outcome.state_updates)}")
            log_checkpoint("step_completed", {
                "step_id": step.key,
                "status": outcome.status.value,
                "cached": outcome.cached,
                "attempts": outcome.attempts,
            })
            return outcome

        key = step.key
        if key is None and top_level_index is not None:
            key = f"{step.type}_{top_level_index}"

        start = time.monotonic()
        with log_context(step_id=key or step.type):
            try:
                if step.when is not None and not self.interpolator.evaluate_condition(step.when, ctx.view()):
                    outcome = StepOutcome.skipped()
                elif step.timeout is not None:
                    outcome = await self._run_with_deadline(step, ctx)
                else:
                    outcome = await self._run_control(step, ctx)
            except EnsembleError as e:
                if key:
                    ctx.record(key, StepOutcome.failure(e, duration_ms=_elapsed_ms(start)))
                raise e.with_step(key)

            outcome.duration_ms = _elapsed_ms(start)
            if key:
                ctx.record(key, outcome)
            logger.debug(f"Control step {key or step.type} finished: {outcome.status.value}")
            return outcome

    async def _run_control(self, step: BaseStep, ctx: ExecutionContext) -> StepOutcome:
        if isinstance(step, SequenceStep):
            return StepOutcome.success(await self.run_steps(step.steps, ctx))
        if isinstance(step, ParallelStep):
            return await self._run_parallel(step, ctx)
        if isinstance(step, BranchStep):
            return await self._run_branch(step, ctx)
        if isinstance(step, TryStep):
            return await self._run_try(step, ctx)
        if isinstance(step, ForeachStep):
            return await self._run_foreach(step, ctx)
        if isinstance(step, WhileStep):
            return await self._run_while(step, ctx)
        if isinstance(step, SwitchStep):
            return await self._run_switch(step, ctx)
        if isinstance(step, MapReduceStep):
            return await self._run_map_reduce(step, ctx)
        raise ValidationError(f"Unsupported step type: {type(step).__name__}")

    async def _run_with_deadline(self, step: BaseStep, ctx: ExecutionContext) -> StepOutcome:
        """Race a control step against its deadline."""
        task = asyncio.ensure_future(self._run_control(step, ctx))
        try:
            done, _ = await asyncio.wait({task}, timeout=step.timeout / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        policy = step.on_timeout
        if policy is not None and policy.has_fallback:
            logger.warning(f"Step {step.key or step.type} timed out after {step.timeout:.0f} ms; using fallback")
            return StepOutcome.timed_out(self.interpolator.resolve(policy.fallback, ctx.view()))
        if policy is not None and not policy.error:
            return StepOutcome.timed_out(UNDEFINED)
        raise StepTimeoutError(
            f"Step '{step.key or step.type}' timed out after {step.timeout:.0f} ms",
            timeout_ms=step.timeout,
            step_id=step.key,
        )

    # ==================================================================
    # CONTROL FLOW
    # ==================================================================

    async def _run_parallel(self, step: ParallelStep, ctx: ExecutionContext) -> StepOutcome:
        scopes = [ctx.scope() for _ in step.steps]
        tasks = [
            asyncio.ensure_future(self.run_step(child, scope))
            for child, scope in zip(step.steps, scopes)
        ]

        if step.wait_for == WaitFor.ALL:
            results = await _gather_settled(tasks)
            for scope in scopes:
                scope.merge()
            errors = [r for r in results if isinstance(r, EnsembleError)]
            if errors:
                raise ParallelExecutionError(errors, step_id=step.id or errors[0].step_id)
            return StepOutcome.success([r.value for r in results])

        return await self._race(step, tasks, scopes)

    async def _race(self, step: ParallelStep, tasks, scopes) -> StepOutcome:
        """wait_for any / first: settle on one branch, cancel the rest."""
        pending = set(tasks)
        errors: List[EnsembleError] = []
        winner = None

        try:
            while pending and winner is None:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in [t for t in tasks if t in done]:
                    error = task.exception()
                    if error is None:
                        winner = winner or task
                        continue
                    if not isinstance(error, EnsembleError):
                        raise error
                    errors.append(error)
                    if step.wait_for == WaitFor.FIRST and winner is None:
                        break
                if step.wait_for == WaitFor.FIRST and errors and winner is None:
                    break
        finally:
            for task in pending:
                task.cancel()

        for task, scope in zip(tasks, scopes):
            if task.done() and not task.cancelled():
                scope.merge()

        if winner is None:
            raise ParallelExecutionError(errors, step_id=step.id or errors[0].step_id)
        return StepOutcome.success(winner.result().value)

    async def _run_branch(self, step: BranchStep, ctx: ExecutionContext) -> StepOutcome:
        if self.interpolator.evaluate_condition(step.condition, ctx.view()):
            chosen = step.then
        elif step.else_ is not None:
            chosen = step.else_
        else:
            return StepOutcome.skipped()
        return StepOutcome.success(await self.run_steps(chosen, ctx))

    async def _run_try(self, step: TryStep, ctx: ExecutionContext) -> StepOutcome:
        outcome: Optional[StepOutcome] = None
        pending_error: Optional[EnsembleError] = None

        try:
            outcome = StepOutcome.success(await self.run_steps(step.steps, ctx))
        except EnsembleError as e:
            if step.catch is None:
                pending_error = e
            else:
                logger.info(f"Caught {e.kind} from step {e.step_id}: {e.message}")
                catch_scope = ctx.scope(error={
                    "step_id": e.step_id,
                    "kind": e.kind,
                    "name": e.kind,
                    "message": e.message,
                })
                try:
                    outcome = StepOutcome.success(await self.run_steps(step.catch, catch_scope))
                except EnsembleError as catch_error:
                    pending_error = catch_error
                finally:
                    catch_scope.merge()

        if step.finally_:
            await self.run_steps(step.finally_, ctx)

        if pending_error is not None:
            raise pending_error
        return outcome

    async def _run_foreach(self, step: ForeachStep, ctx: ExecutionContext) -> StepOutcome:
        items = self._evaluate_items(step.items, ctx, "foreach")
        batch_size = step.max_concurrency or self.defaults.flow.foreach_concurrency or 1
        outputs: List[Any] = []

        for batch_start in range(0, len(items), batch_size):
            batch = items[batch_start:batch_start + batch_size]
            scopes = [
                ctx.scope(item=item, index=batch_start + offset)
                for offset, item in enumerate(batch)
            ]

            if len(scopes) == 1:
                try:
                    outputs.append((await self.run_step(step.step, scopes[0])).value)
                finally:
                    scopes[0].merge()
            else:
                tasks = [asyncio.ensure_future(self.run_step(step.step, scope)) for scope in scopes]
                results = await _gather_settled(tasks)
                for scope in scopes:
                    scope.merge()
                errors = [r for r in results if isinstance(r, EnsembleError)]
                if len(errors) == 1:
                    raise errors[0]
                if errors:
                    raise ParallelExecutionError(errors, step_id=step.id or errors[0].step_id)
                outputs.extend(r.value for r in results)

            if step.break_when is not None:
                last_index = batch_start + len(batch) - 1
                check = ctx.scope(item=batch[-1], index=last_index, result=outputs[-1], results=outputs)
                if self.interpolator.evaluate_condition(step.break_when, check.view()):
                    logger.info(f"foreach stopped early after item {last_index}")
                    break

        return StepOutcome.success(outputs)

    async def _run_while(self, step: WhileStep, ctx: ExecutionContext) -> StepOutcome:
        iteration = 0
        last_results: List[Any] = []

        while True:
            scope = ctx.scope(iteration=iteration, lastIterationResults=last_results)
            if not self.interpolator.evaluate_condition(step.condition, scope.view()):
                break
            if iteration >= step.max_iterations:
                raise LoopBoundExceededError(step.max_iterations, step_id=step.id)
            try:
                last_results = await self.run_steps(step.steps, scope)
            finally:
                scope.merge()
            iteration += 1

        logger.debug(f"while finished after {iteration} iteration(s)")
        return StepOutcome.success(last_results)

    async def _run_switch(self, step: SwitchStep, ctx: ExecutionContext) -> StepOutcome:
        value = self.interpolator.evaluate(step.value, ctx.view())
        label = case_key(value)
        if label in step.cases:
            chosen = step.cases[label]
        elif step.default is not None:
            chosen = step.default
        else:
            logger.debug(f"switch: no case for {label!r} and no default")
            return StepOutcome.skipped()
        return StepOutcome.success(await self.run_steps(chosen, ctx))

    async def _run_map_reduce(self, step: MapReduceStep, ctx: ExecutionContext) -> StepOutcome:
        items = self._evaluate_items(step.items, ctx, "map-reduce")
        limit = step.max_concurrency or self.defaults.flow.map_concurrency or max(len(items), 1)
        semaphore = asyncio.Semaphore(limit)

        async def map_one(scope: ExecutionContext) -> StepOutcome:
            async with semaphore:
                return await self.run_step(step.map, scope)

        scopes = [ctx.scope(item=item, index=index) for index, item in enumerate(items)]
        results = await _gather_settled([asyncio.ensure_future(map_one(scope)) for scope in scopes])
        for scope in scopes:
            scope.merge()

        errors = [r for r in results if isinstance(r, EnsembleError)]
        if errors:
            raise ParallelExecutionError(errors, step_id=step.id or errors[0].step_id)

        map_results = [r.value for r in results]
        reduce_scope = ctx.scope(mapResults=map_results, results=map_results)
        try:
            reduced = await self.run_step(step.reduce, reduce_scope)
        finally:
            reduce_scope.merge()
        return StepOutcome.success(reduced.value)

    def _evaluate_items(self, expression: Any, ctx: ExecutionContext, step_type: str) -> List[Any]:
        items = self.interpolator.evaluate(expression, ctx.view())
        if items is None or items is UNDEFINED:
            return []
        if isinstance(items, (list, tuple)):
            return list(items)
        raise ExpressionError(
            f"{step_type} items must evaluate to a list, got {type(items).__name__}",
            str(expression),
        )


async def _gather_settled(tasks) -> List[Any]:
    """
    Wait for every task; EnsembleErrors come back as values.

    Any other exception is re-raised once all tasks have settled.
    """
    try:
        results = await asyncio.gather(*tasks, return_exceptions=True)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise
    for result in results:
        if isinstance(result, BaseException) and not isinstance(result, EnsembleError):
            raise result
    return results


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


__all__ = [
    "FlowExecutor",
]
