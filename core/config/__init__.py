# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the ensemble orchestrator.
"""

from core.config.defaults import (
    BackoffStrategy,
    RetryDefaults,
    TimeoutDefaults,
    CacheDefaults,
    FlowDefaults,
    ApiDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "BackoffStrategy",
    "RetryDefaults",
    "TimeoutDefaults",
    "CacheDefaults",
    "FlowDefaults",
    "ApiDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
