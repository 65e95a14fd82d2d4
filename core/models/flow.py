# ============================================================================
# CLAUDE CONTEXT - FLOW STEP MODELS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core model - Step tree of an ensemble
# PURPOSE: Tagged step variants and their modifiers, loaded from YAML/dicts
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: FlowStep, AgentStep, SequenceStep, ParallelStep, BranchStep,
#          TryStep, ForeachStep, WhileStep, SwitchStep, MapReduceStep,
#          RetryPolicy, TimeoutPolicy, CachePolicy, StepType
# DEPENDENCIES: pydantic, enum
# ============================================================================
"""
Flow Step Models

A flow is a tree of steps. Leaves are agent calls; inner nodes are
control-flow constructs that own child step lists.

Variant selection:
- a mapping with an `agent` (or `agent-call`) key is an agent step
- otherwise the `type` field selects the variant

Modifiers:
- when:        guard expression, falsy skips the step (any step)
- timeout:     deadline in milliseconds (any step)
- on_timeout:  fallback value and whether expiry is a hard error
- retry:       attempt count and backoff (agent steps)
- cache:       result caching by input fingerprint (agent steps)

Descriptors written with camelCase keys (maxIterations, waitFor,
onTimeout, initialDelay, ...) validate through field aliases.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
)

from core.contracts import UNDEFINED


class StepType(str, Enum):
    """Step variants."""
    AGENT = "agent"
    SEQUENCE = "sequence"
    PARALLEL = "parallel"
    BRANCH = "branch"
    TRY = "try"
    FOREACH = "foreach"
    WHILE = "while"
    SWITCH = "switch"
    MAP_REDUCE = "map-reduce"


class WaitFor(str, Enum):
    """How a parallel step decides it is done."""
    ALL = "all"      # every branch settles (default)
    ANY = "any"      # first successful branch
    FIRST = "first"  # first branch to settle, success or failure


_MODEL_CONFIG = ConfigDict(populate_by_name=True, extra="forbid")


# ============================================================================
# MODIFIERS
# ============================================================================

class RetryPolicy(BaseModel):
    """
    Retry configuration for an agent step.

    attempts counts EXTRA attempts: attempts=2 means up to 3 invocations.
    Delays are milliseconds; unset fields fall back to RetryDefaults.
    """
    model_config = _MODEL_CONFIG

    attempts: int = Field(default=0, ge=0, le=50)
    backoff: Optional[str] = Field(default=None, pattern="^(fixed|exponential|linear)$")
    initial_delay: Optional[float] = Field(default=None, ge=0, alias="initialDelay")
    max_delay: Optional[float] = Field(default=None, ge=0, alias="maxDelay")
    retry_on: Optional[List[str]] = Field(
        default=None,
        alias="retryOn",
        description="Error kinds that trigger a retry (None = any)",
    )

    @field_validator("retry_on", mode="before")
    @classmethod
    def handle_string_input(cls, v):
        """Allow single string as shorthand for single-item list."""
        if isinstance(v, str):
            return [v]
        return v

    def should_retry(self, kind: str) -> bool:
        return self.retry_on is None or kind in self.retry_on


class TimeoutPolicy(BaseModel):
    """What happens when a step deadline expires."""
    model_config = _MODEL_CONFIG

    fallback: Any = None
    error: bool = True

    @property
    def has_fallback(self) -> bool:
        return "fallback" in self.model_fields_set


class CachePolicy(BaseModel):
    """Result caching for an agent step."""
    model_config = _MODEL_CONFIG

    ttl: Optional[int] = Field(default=None, ge=0, description="Seconds; None uses CacheDefaults")
    bypass: bool = False
    key: Optional[str] = Field(default=None, description="Expression replacing the input hash")


class StateAccess(BaseModel):
    """Shared-state keys an agent step may read (`use`) and write (`set`)."""
    model_config = _MODEL_CONFIG

    use: List[str] = Field(default_factory=list)
    set_: List[str] = Field(default_factory=list, alias="set")


# ============================================================================
# STEP VARIANTS
# ============================================================================

class BaseStep(BaseModel):
    """Fields every step variant accepts."""
    model_config = _MODEL_CONFIG

    id: Optional[str] = Field(
        default=None,
        max_length=128,
        validation_alias=AliasChoices("id", "name"),
    )
    description: Optional[str] = None
    when: Optional[Union[bool, str]] = None
    timeout: Optional[float] = Field(default=None, gt=0, description="Deadline in milliseconds")
    on_timeout: Optional[TimeoutPolicy] = Field(default=None, alias="onTimeout")

    @property
    def key(self) -> Optional[str]:
        """Id under which the step's result is recorded."""
        return self.id


class AgentStep(BaseStep):
    """Invoke one agent with a resolved input."""
    type: Literal["agent"] = "agent"
    agent: str = Field(
        ...,
        min_length=1,
        max_length=128,
        validation_alias=AliasChoices("agent", "agent-call"),
    )
    when: Optional[Union[bool, str]] = Field(
        default=None,
        validation_alias=AliasChoices("when", "condition"),
    )
    input: Any = None
    retry: Optional[RetryPolicy] = None
    cache: Optional[CachePolicy] = None
    state: Optional[StateAccess] = None

    @field_validator("cache", mode="before")
    @classmethod
    def handle_bool_cache(cls, v):
        """`cache: true` enables caching with defaults."""
        if v is True:
            return {}
        if v is False:
            return None
        return v

    @property
    def key(self) -> str:
        return self.id or self.agent


class SequenceStep(BaseStep):
    """Run child steps strictly in order."""
    type: Literal["sequence"] = "sequence"
    steps: List["FlowStep"] = Field(default_factory=list)


class ParallelStep(BaseStep):
    """Run child steps concurrently in isolated scopes."""
    type: Literal["parallel"] = "parallel"
    steps: List["FlowStep"] = Field(..., min_length=1)
    wait_for: WaitFor = Field(default=WaitFor.ALL, alias="waitFor")


class BranchStep(BaseStep):
    """Run `then` when the condition is truthy, else `else`."""
    type: Literal["branch"] = "branch"
    condition: Union[bool, str]
    then: List["FlowStep"] = Field(default_factory=list)
    else_: Optional[List["FlowStep"]] = Field(default=None, alias="else")


class TryStep(BaseStep):
    """Run steps; on failure run catch; always run finally."""
    type: Literal["try"] = "try"
    steps: List["FlowStep"] = Field(..., min_length=1)
    catch: Optional[List["FlowStep"]] = None
    finally_: Optional[List["FlowStep"]] = Field(default=None, alias="finally")


class ForeachStep(BaseStep):
    """Run one step template per item with `item` and `index` in scope."""
    type: Literal["foreach"] = "foreach"
    items: Any
    step: "FlowStep"
    max_concurrency: Optional[int] = Field(default=None, ge=1, alias="maxConcurrency")
    break_when: Optional[Union[bool, str]] = Field(default=None, alias="breakWhen")


class WhileStep(BaseStep):
    """Repeat steps while the condition holds, bounded by max_iterations."""
    type: Literal["while"] = "while"
    condition: Union[bool, str]
    max_iterations: int = Field(..., ge=1, alias="maxIterations")
    steps: List["FlowStep"] = Field(..., min_length=1)


class SwitchStep(BaseStep):
    """Run the case matching str(value), else default."""
    type: Literal["switch"] = "switch"
    value: Any
    cases: Dict[str, List["FlowStep"]] = Field(default_factory=dict)
    default: Optional[List["FlowStep"]] = None

    @field_validator("cases", mode="before")
    @classmethod
    def stringify_case_keys(cls, v):
        """YAML turns `1:` and `true:` into non-string keys."""
        if isinstance(v, dict):
            return {case_key(k): steps for k, steps in v.items()}
        return v


class MapReduceStep(BaseStep):
    """Fan out `map` over items concurrently, then run `reduce` once."""
    type: Literal["map-reduce"] = "map-reduce"
    items: Any
    map: "FlowStep"
    reduce: "FlowStep"
    max_concurrency: Optional[int] = Field(default=None, ge=1, alias="maxConcurrency")


def case_key(value: Any) -> str:
    """Case label for a switch value, matching how values print in text."""
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _step_discriminator(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        if "agent" in value or "agent-call" in value:
            return StepType.AGENT.value
        step_type = value.get("type")
        return str(step_type) if step_type is not None else None
    return getattr(value, "type", None)


FlowStep = Annotated[
    Union[
        Annotated[AgentStep, Tag("agent")],
        Annotated[SequenceStep, Tag("sequence")],
        Annotated[ParallelStep, Tag("parallel")],
        Annotated[BranchStep, Tag("branch")],
        Annotated[TryStep, Tag("try")],
        Annotated[ForeachStep, Tag("foreach")],
        Annotated[WhileStep, Tag("while")],
        Annotated[SwitchStep, Tag("switch")],
        Annotated[MapReduceStep, Tag("map-reduce")],
    ],
    Discriminator(
        _step_discriminator,
        custom_error_type="invalid_step",
        custom_error_message="Step must have an 'agent' key or a known 'type'",
    ),
]

STEP_MODELS = (
    SequenceStep,
    ParallelStep,
    BranchStep,
    TryStep,
    ForeachStep,
    WhileStep,
    SwitchStep,
    MapReduceStep,
)

for _model in STEP_MODELS:
    _model.model_rebuild()


def child_step_lists(step: BaseStep) -> List[List[BaseStep]]:
    """Every nested step list of a control step, in declaration order."""
    if isinstance(step, (SequenceStep, ParallelStep, WhileStep)):
        return [step.steps]
    if isinstance(step, BranchStep):
        return [step.then, step.else_ or []]
    if isinstance(step, TryStep):
        return [step.steps, step.catch or [], step.finally_ or []]
    if isinstance(step, ForeachStep):
        return [[step.step]]
    if isinstance(step, SwitchStep):
        return list(step.cases.values()) + [step.default or []]
    if isinstance(step, MapReduceStep):
        return [[step.map], [step.reduce]]
    return []


def iter_steps(steps: List[BaseStep]):
    """Depth-first walk over a step tree."""
    for step in steps:
        yield step
        for children in child_step_lists(step):
            yield from iter_steps(children)


__all__ = [
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
    "case_key",
    "child_step_lists",
    "iter_steps",
]
