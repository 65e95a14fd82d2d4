# ============================================================================
# STEP DISPATCHER
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Agent step execution
# PURPOSE: Resolve, cache, retry and time-box one agent invocation
# CREATED: 18 OCT 2026
# ============================================================================
"""
Step Dispatcher

Executes one agent step and normalizes whatever happens into a StepOutcome:

    when guard -> resolve input -> cache lookup -> attempt loop -> cache write

Attempt loop:
- each attempt races its own deadline (timeout is per attempt)
- on expiry the agent's cancel_event is set and its task cancelled
  without waiting for it to finish
- a fallback (or `on_timeout.error: false`) turns expiry into a
  timed_out outcome; otherwise StepTimeoutError, which may be retried
- retries wait according to the backoff strategy and re-send the same
  resolved input (each attempt gets its own copy)
- agents see copies of input and state; outputs are copied before they
  are recorded or cached, so agents cannot reach run data by reference
- exhausting a retry policy yields RetryExhaustedError

The dispatcher never raises for step failures; a failure comes back as
StepOutcome.failure and the executor decides where it propagates.
"""

import asyncio
import copy
import time
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Optional

from agents.registry import AgentContext, AgentRegistry, execute_agent
from core.config import Defaults, get_defaults
from core.contracts import OutcomeKind, UNDEFINED
from core.errors import (
    AgentExecutionError,
    EnsembleError,
    RetryExhaustedError,
    StepTimeoutError,
)
from core.logging import get_logger, log_context, ComponentType
from core.models.context import ExecutionContext
from core.models.flow import AgentStep
from core.models.outcome import StepOutcome
from orchestrator.cache import CacheBackend, fingerprint
from orchestrator.engine.templates import Interpolator, get_interpolator, stringify

logger = get_logger(__name__, ComponentType.DISPATCHER)

SleepFunc = Callable[[float], Awaitable[Any]]


class StepDispatcher:
    """
    Dispatches agent steps.

    Stateless between calls; one instance serves every run of an executor.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        interpolator: Optional[Interpolator] = None,
        cache: Optional[CacheBackend] = None,
        defaults: Optional[Defaults] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize dispatcher.

        Args:
            registry: Agents available to steps
            interpolator: Resolver chain for inputs and guards
            cache: Optional cache backend for steps with a cache policy
            defaults: Retry / timeout / cache defaults
            sleep: Awaitable used between retries (injectable for tests)
        """
        self.registry = registry
        self.interpolator = interpolator or get_interpolator()
        self.cache = cache
        self.defaults = defaults or get_defaults()
        self._sleep = sleep

    async def dispatch(self, step: AgentStep, context: ExecutionContext) -> StepOutcome:
        """
        Execute one agent step.

        Args:
            step: Agent step definition
            context: Scope the step runs in (read-only here)

        Returns:
            StepOutcome (success, failure, skipped or timed_out)
        """
        step_id = step.key
        start = time.monotonic()

        cache_key: Optional[str] = None

        with log_context(step_id=step_id, agent_id=step.agent):
            try:
                view = context.view()

                if step.when is not None and not self.interpolator.evaluate_condition(step.when, view):
                    logger.debug(f"Step {step_id} skipped: guard is falsy")
                    return StepOutcome.skipped()

                resolved_input = self.interpolator.resolve(step.input, view)
                if resolved_input is None:
                    resolved_input = {}

                cache_key = self._cache_key(step, resolved_input, view)
                if cache_key is not None:
                    cached = await self._cache_get(cache_key)
                    if cached is not None:
                        logger.info(f"Step {step_id} served from cache ({cache_key})")
                        return StepOutcome.success(
                            copy.deepcopy(cached.value),
                            cached=True,
                            duration_ms=_elapsed_ms(start),
                        )

                outcome = await self._run_attempts(step, resolved_input, context, view)

            except EnsembleError as e:
                outcome = StepOutcome.failure(e.with_step(step_id))

            outcome.duration_ms = _elapsed_ms(start)

            if outcome.kind == OutcomeKind.SUCCESS and cache_key is not None:
                await self._cache_set(cache_key, copy.deepcopy(outcome.value), step)

            return outcome

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    async def _run_attempts(
        self,
        step: AgentStep,
        resolved_input: Any,
        context: ExecutionContext,
        view,
    ) -> StepOutcome:
        retry = step.retry
        max_attempts = 1 + (retry.attempts if retry else 0)
        timeout_ms = self.defaults.timeouts.get_timeout_ms(step.timeout)
        last_error: Optional[EnsembleError] = None
        attempts_made = 0
        exhausted = False

        for attempt in range(max_attempts):
            if attempt > 0:
                delay_ms = self.defaults.retry.delay_ms(
                    attempt - 1,
                    backoff=retry.backoff,
                    initial_delay_ms=retry.initial_delay,
                    max_delay_ms=retry.max_delay,
                )
                logger.info(
                    f"Retrying step {step.key} in {delay_ms:.0f} ms "
                    f"(attempt {attempt + 1}/{max_attempts})"
                )
                await self._sleep(delay_ms / 1000)

            attempts_made = attempt + 1
            with log_context(attempt=attempts_made):
                try:
                    outcome = await self._attempt(
                        step, resolved_input, context, view, attempts_made, timeout_ms
                    )
                except EnsembleError as e:
                    last_error = e.with_step(step.key)
                    logger.warning(f"Step {step.key} attempt {attempts_made} failed: {e.message}")
                    if retry is None or not retry.should_retry(e.kind):
                        break
                    exhausted = attempts_made == max_attempts
                    continue

            outcome.attempts = attempts_made
            return outcome

        if exhausted and retry.attempts > 0:
            return StepOutcome.failure(
                RetryExhaustedError(attempts_made, last_error, step_id=step.key),
                attempts=attempts_made,
            )
        return StepOutcome.failure(last_error, attempts=attempts_made)

    async def _attempt(
        self,
        step: AgentStep,
        resolved_input: Any,
        context: ExecutionContext,
        view,
        attempt: int,
        timeout_ms: Optional[float],
    ) -> StepOutcome:
        """
        One agent invocation.

        Raises:
            AgentExecutionError: agent failed or is not registered
            StepTimeoutError: deadline exceeded without fallback
        """
        agent = self.registry.get(step.agent)
        if agent is None:
            raise AgentExecutionError(f"Agent not found: {step.agent}", agent_id=step.agent, step_id=step.key)

        agent_ctx = AgentContext(
            agent_id=step.agent,
            step_id=step.key,
            run_id=context.run_id,
            ensemble=context.ensemble,
            attempt=attempt,
            timeout_ms=timeout_ms,
            env=context.env,
        )
        if step.state is not None:
            agent_ctx.state = MappingProxyType({
                key: copy.deepcopy(context.state[key])
                for key in step.state.use
                if key in context.state
            })
            agent_ctx.state_writable = frozenset(step.state.set_)

        task = asyncio.ensure_future(execute_agent(agent, copy.deepcopy(resolved_input), agent_ctx))
        try:
            if timeout_ms is None:
                result = await task
            else:
                done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
                if task not in done:
                    agent_ctx.cancel_event.set()
                    task.cancel()
                    return self._on_timeout(step, timeout_ms, view)
                result = task.result()
        except asyncio.CancelledError:
            agent_ctx.cancel_event.set()
            task.cancel()
            raise

        if not result.success:
            error = AgentExecutionError(
                result.error_message or "Agent reported failure",
                agent_id=step.agent,
                step_id=step.key,
            )
            if result.exception is not None:
                raise error from result.exception
            raise error

        return StepOutcome.success(
            copy.deepcopy(result.output),
            state_updates=copy.deepcopy(agent_ctx.state_updates),
        )

    def _on_timeout(self, step: AgentStep, timeout_ms: float, view) -> StepOutcome:
        policy = step.on_timeout
        if policy is not None and policy.has_fallback:
            logger.warning(f"Step {step.key} timed out after {timeout_ms:.0f} ms; using fallback")
            return StepOutcome.timed_out(self.interpolator.resolve(policy.fallback, view))
        if policy is not None and not policy.error:
            logger.warning(f"Step {step.key} timed out after {timeout_ms:.0f} ms; continuing")
            return StepOutcome.timed_out(UNDEFINED)
        raise StepTimeoutError(
            f"Step '{step.key}' timed out after {timeout_ms:.0f} ms",
            timeout_ms=timeout_ms,
            step_id=step.key,
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _cache_key(self, step: AgentStep, resolved_input: Any, view) -> Optional[str]:
        policy = step.cache
        if policy is None or policy.bypass or self.cache is None or not self.defaults.cache.enabled:
            return None
        if policy.key:
            custom = self.interpolator.evaluate(policy.key, view)
            return f"{step.agent}:{stringify(custom)}"
        return fingerprint(step.agent, resolved_input, self.defaults.cache.fingerprint_length)

    async def _cache_get(self, key: str):
        try:
            cached = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}, dispatching live: {e}")
            return None
        return cached

    async def _cache_set(self, key: str, value: Any, step: AgentStep) -> None:
        ttl = step.cache.ttl if step.cache.ttl is not None else self.defaults.cache.ttl_seconds
        try:
            await self.cache.set(key, value, ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


__all__ = [
    "StepDispatcher",
]
