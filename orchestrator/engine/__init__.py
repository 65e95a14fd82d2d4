# ============================================================================
# ORCHESTRATOR ENGINE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Engine components
# PURPOSE: Expression evaluation and template resolution
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Engine Components

- expressions: safe path / operator / filter expression language
- templates: resolver chain over nested configuration values
"""

from orchestrator.engine.expressions import (
    ExpressionEvaluator,
    get_evaluator,
    evaluate,
    parse_expression,
)
from orchestrator.engine.templates import (
    PLACEHOLDER_PATTERN,
    Resolver,
    StringResolver,
    ListResolver,
    MapResolver,
    PassthroughResolver,
    Interpolator,
    default_resolvers,
    get_interpolator,
    resolve_params,
    stringify,
)

__all__ = [
    # Expressions
    "ExpressionEvaluator",
    "get_evaluator",
    "evaluate",
    "parse_expression",
    # Templates
    "PLACEHOLDER_PATTERN",
    "Resolver",
    "StringResolver",
    "ListResolver",
    "MapResolver",
    "PassthroughResolver",
    "Interpolator",
    "default_resolvers",
    "get_interpolator",
    "resolve_params",
    "stringify",
]
