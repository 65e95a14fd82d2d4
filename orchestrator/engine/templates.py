# ============================================================================
# TEMPLATE RESOLUTION ENGINE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Resolver chain over nested configuration values
# PURPOSE: Resolve {{ }} / ${ } placeholders in step inputs and expressions
# CREATED: 18 OCT 2026
# ============================================================================
"""
Template Resolution Engine

Walks a configuration value (step input, output mapping, items expression)
and replaces every placeholder with its evaluated value.

Two equivalent placeholder styles:
- ${ input.name }   (YAML descriptors)
- {{ input.name }}  (templates)

Whole vs partial:
- "{{ steps }}"            -> native value (list, dict, number, ...)
- "Hello {{ input.name }}" -> string; each placeholder stringified.
                              An UNDEFINED placeholder stays verbatim.

Resolver chain (first match wins):
    StringResolver -> ListResolver -> MapResolver -> PassthroughResolver

Hosts add behavior by prepending resolvers:

    interpolator = get_interpolator().with_resolvers(MySecretResolver())

Examples:
    input:
      user_id: "${input.user.id}"
      greeting: "Hello {{ fetch-user.output.name ?? 'friend' }}!"
      tags: ["{{ input.primary }}", "static"]
"""

import json
import re
from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional

from core.contracts import UNDEFINED, is_truthy
from orchestrator.engine.expressions import ExpressionEvaluator, get_evaluator

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]*)\}|\{\{([^}]*)\}\}")

Interpolate = Callable[[Any, Mapping], Any]


def find_placeholder(value: str) -> bool:
    return bool(PLACEHOLDER_PATTERN.search(value))


def stringify(value: Any) -> str:
    """Render a value for embedding in text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, separators=(",", ":"))
    return str(value)


# ============================================================================
# RESOLVERS
# ============================================================================

class Resolver:
    """One link of the resolver chain."""

    def can_resolve(self, value: Any) -> bool:
        raise NotImplementedError

    def resolve(self, value: Any, context: Mapping, interpolate: Interpolate) -> Any:
        raise NotImplementedError


class StringResolver(Resolver):
    """Strings containing at least one placeholder."""

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None):
        self._evaluator = evaluator or get_evaluator()

    def can_resolve(self, value: Any) -> bool:
        return isinstance(value, str) and find_placeholder(value)

    def resolve(self, value: str, context: Mapping, interpolate: Interpolate) -> Any:
        full = PLACEHOLDER_PATTERN.fullmatch(value)
        if full:
            expression = _expression_of(full)
            return self._evaluator.evaluate(expression, context)

        def replace(match: "re.Match") -> str:
            expression = _expression_of(match).strip()
            if not expression:
                return ""
            result = self._evaluator.evaluate(expression, context)
            if result is UNDEFINED:
                return match.group(0)
            return stringify(result)

        return PLACEHOLDER_PATTERN.sub(replace, value)


class ListResolver(Resolver):
    """Lists and tuples, resolved element-wise."""

    def can_resolve(self, value: Any) -> bool:
        return isinstance(value, (list, tuple))

    def resolve(self, value: Any, context: Mapping, interpolate: Interpolate) -> Any:
        return [interpolate(item, context) for item in value]


class MapResolver(Resolver):
    """Mappings, resolved value-wise with key order preserved."""

    def can_resolve(self, value: Any) -> bool:
        return isinstance(value, Mapping)

    def resolve(self, value: Any, context: Mapping, interpolate: Interpolate) -> Any:
        return {key: interpolate(item, context) for key, item in value.items()}


class PassthroughResolver(Resolver):
    """Everything else: numbers, booleans, None, plain strings, objects."""

    def can_resolve(self, value: Any) -> bool:
        return True

    def resolve(self, value: Any, context: Mapping, interpolate: Interpolate) -> Any:
        return value


def _expression_of(match: "re.Match") -> str:
    dollar, handlebar = match.group(1), match.group(2)
    return dollar if dollar is not None else handlebar


def default_resolvers(evaluator: Optional[ExpressionEvaluator] = None) -> List[Resolver]:
    return [
        StringResolver(evaluator),
        ListResolver(),
        MapResolver(),
        PassthroughResolver(),
    ]


# ============================================================================
# INTERPOLATOR
# ============================================================================

class Interpolator:
    """
    Ordered resolver chain.

    Stateless apart from its resolver list, so one instance can serve every
    run concurrently.
    """

    def __init__(
        self,
        resolvers: Optional[Iterable[Resolver]] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
    ):
        self._evaluator = evaluator or get_evaluator()
        self._resolvers = list(resolvers) if resolvers is not None else default_resolvers(self._evaluator)

    @property
    def resolvers(self) -> List[Resolver]:
        return list(self._resolvers)

    @property
    def evaluator(self) -> ExpressionEvaluator:
        return self._evaluator

    def with_resolvers(self, *resolvers: Resolver) -> "Interpolator":
        """New interpolator with `resolvers` ahead of the current chain."""
        return Interpolator([*resolvers, *self._resolvers], evaluator=self._evaluator)

    def resolve(self, value: Any, context: Mapping) -> Any:
        """
        Resolve every placeholder in `value`.

        Raises:
            ExpressionError: If a placeholder holds a malformed expression
        """
        for resolver in self._resolvers:
            if resolver.can_resolve(value):
                return resolver.resolve(value, context, self.resolve)
        return value

    def has_templates(self, value: Any) -> bool:
        """Check if a value contains any placeholder."""
        if isinstance(value, str):
            return find_placeholder(value)
        if isinstance(value, Mapping):
            return any(self.has_templates(v) for v in value.values())
        if isinstance(value, (list, tuple)):
            return any(self.has_templates(item) for item in value)
        return False

    # ------------------------------------------------------------------
    # Expression-valued fields (conditions, items, switch values)
    # ------------------------------------------------------------------

    def evaluate(self, value: Any, context: Mapping) -> Any:
        """
        Evaluate a field that holds an expression.

        Placeholder syntax is resolved through the chain; a bare string
        without placeholders is treated as an expression itself, so
        `condition: "input.enabled"` and `condition: "{{ input.enabled }}"`
        behave the same. Non-strings pass through the chain.
        """
        if isinstance(value, str) and not find_placeholder(value):
            return self._evaluator.evaluate(value, context)
        return self.resolve(value, context)

    def evaluate_condition(self, condition: Any, context: Mapping) -> bool:
        """Truthiness of a condition field (bool, None or expression)."""
        if condition is None:
            return False
        if isinstance(condition, bool):
            return condition
        return is_truthy(self.evaluate(condition, context))


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

_interpolator: Optional[Interpolator] = None


def get_interpolator() -> Interpolator:
    """Get shared interpolator instance."""
    global _interpolator
    if _interpolator is None:
        _interpolator = Interpolator()
    return _interpolator


def resolve_params(params: Any, context: Mapping) -> Any:
    """
    Convenience function to resolve a value with the shared interpolator.

    Args:
        params: Value containing placeholders
        context: Resolution view (see ExecutionContext.view)

    Returns:
        Value with placeholders resolved
    """
    return get_interpolator().resolve(params, context)


__all__ = [
    "PLACEHOLDER_PATTERN",
    "stringify",
    "Resolver",
    "StringResolver",
    "ListResolver",
    "MapResolver",
    "PassthroughResolver",
    "default_resolvers",
    "Interpolator",
    "get_interpolator",
    "resolve_params",
]
