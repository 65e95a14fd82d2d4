# ============================================================================
# ORCHESTRATOR MODULE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Ensemble execution
# PURPOSE: Interpret control-flow trees and dispatch agent steps
# CREATED: 18 OCT 2026
# ============================================================================
"""
Orchestrator Module

Runs ensembles against an agent registry.

Usage:
    from orchestrator import FlowExecutor

    executor = FlowExecutor(registry)
    result = await executor.execute(ensemble, input={"value": 10})
"""

from .cache import CachedValue, CacheBackend, InMemoryCache, canonical_json, fingerprint
from .dispatcher import StepDispatcher
from .executor import FlowExecutor

__all__ = [
    "CachedValue",
    "CacheBackend",
    "InMemoryCache",
    "canonical_json",
    "fingerprint",
    "StepDispatcher",
    "FlowExecutor",
]
