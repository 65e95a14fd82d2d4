# ============================================================================
# CLAUDE CONTEXT - ENSEMBLE DEFINITION MODEL
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core model - Ensemble template/blueprint
# PURPOSE: Define ensemble structure loaded from YAML
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: EnsembleDefinition, StateDefinition, RESERVED_NAMES
# DEPENDENCIES: pydantic
# ============================================================================
"""
Ensemble Definition Models

An EnsembleDefinition is the template/blueprint for a run.
It defines:
- The flow (a tree of steps, top-level list = implicit sequence)
- Shared state visible to expressions as `state.*`
- The output mapping evaluated against the final context

Ensembles are loaded from YAML files and cached.
Each run executes against an immutable definition.
"""

from typing import Any, Dict, List, Optional, Set, Union
from pydantic import BaseModel, ConfigDict, Field

from core.models.flow import AgentStep, FlowStep, iter_steps


# Namespaces and scope locals that a step id must not shadow
RESERVED_NAMES: Set[str] = {
    "input",
    "env",
    "state",
    "output",
    "steps",
    "item",
    "index",
    "error",
    "iteration",
    "lastIterationResults",
    "mapResults",
    "results",
}


class StateDefinition(BaseModel):
    """
    Shared state for a run.

    `initial` seeds `state.*`; agent steps read and write it through their
    `state: {use, set}` declarations. `schema` documents the expected
    type of each key and is not enforced.
    """
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    initial: Dict[str, Any] = Field(default_factory=dict)
    schema_: Dict[str, Any] = Field(default_factory=dict, alias="schema")


class EnsembleDefinition(BaseModel):
    """
    Complete ensemble definition loaded from YAML.

    Immutable once loaded - changes require a reload.
    """
    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, max_length=128)
    version: Optional[str] = None
    description: Optional[str] = None
    state: StateDefinition = Field(default_factory=StateDefinition)
    flow: List[FlowStep] = Field(default_factory=list)
    output: Optional[Union[Dict[str, Any], str]] = Field(
        default=None,
        description="Mapping of expressions, or one expression, evaluated at run end",
    )

    def agent_ids(self) -> List[str]:
        """Every agent referenced anywhere in the flow, in first-use order."""
        seen: List[str] = []
        for step in iter_steps(self.flow):
            if isinstance(step, AgentStep) and step.agent not in seen:
                seen.append(step.agent)
        return seen

    def step_ids(self) -> List[str]:
        """Explicit step ids, in declaration order."""
        return [step.id for step in iter_steps(self.flow) if step.id]

    def validate_structure(self, known_agents: Optional[Set[str]] = None) -> List[str]:
        """
        Validate ensemble structure.

        Returns list of validation errors (empty if valid).

        Explicit ids must be unique across the whole tree. Implicit keys
        (an agent step without an id is recorded under its agent name) may
        repeat; the later result replaces the earlier one.
        """
        errors = []

        if not self.flow:
            errors.append(f"Ensemble '{self.name}' has an empty flow")

        seen: Set[str] = set()
        for step_id in self.step_ids():
            if step_id in seen:
                errors.append(f"Duplicate step id: '{step_id}'")
            seen.add(step_id)

        for step in iter_steps(self.flow):
            key = step.key
            if key and key in RESERVED_NAMES:
                errors.append(
                    f"Step key '{key}' collides with a reserved name; give the step an explicit id"
                )

        if known_agents is not None:
            for agent_id in self.agent_ids():
                if agent_id not in known_agents:
                    errors.append(f"Unknown agent: '{agent_id}'")

        return errors


__all__ = [
    "RESERVED_NAMES",
    "StateDefinition",
    "EnsembleDefinition",
]
