# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - ENSEMBLE ORCHESTRATION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for retry, timeout, cache and concurrency
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides defaults for step execution policy. Step-level settings in an
ensemble always win; these fill the gaps and can be overridden via
environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides (ENSEMBLE_ prefix)
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from enum import Enum


ENV_PREFIX = "ENSEMBLE_"


class BackoffStrategy(str, Enum):
    """Delay growth between retry attempts."""
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    FIXED = "fixed"


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_int(name: str) -> Optional[int]:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


@dataclass(frozen=True)
class RetryDefaults:
    """
    Defaults for retry policies that omit a field.

    Delays are in milliseconds.
    """
    backoff: str = BackoffStrategy.EXPONENTIAL.value
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000

    def delay_ms(self, attempt: int, backoff: Optional[str] = None,
                 initial_delay_ms: Optional[float] = None,
                 max_delay_ms: Optional[float] = None) -> float:
        """
        Delay before retry `attempt` (0-based).

        exponential: min(initial * 2**attempt, max)
        linear:      min(initial * (attempt + 1), max)
        fixed:       initial
        """
        strategy = backoff or self.backoff
        initial = self.initial_delay_ms if initial_delay_ms is None else initial_delay_ms
        ceiling = self.max_delay_ms if max_delay_ms is None else max_delay_ms

        if strategy == BackoffStrategy.FIXED.value:
            return initial
        if strategy == BackoffStrategy.LINEAR.value:
            return min(initial * (attempt + 1), ceiling)
        return min(initial * (2 ** attempt), ceiling)

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            backoff=_env("RETRY_BACKOFF", BackoffStrategy.EXPONENTIAL.value),
            initial_delay_ms=int(_env("RETRY_INITIAL_DELAY_MS", "1000")),
            max_delay_ms=int(_env("RETRY_MAX_DELAY_MS", "30000")),
        )


@dataclass(frozen=True)
class TimeoutDefaults:
    """
    Defaults for step deadlines.

    agent_timeout_ms applies per attempt to agent steps that declare no
    timeout of their own. None means no deadline.
    """
    agent_timeout_ms: Optional[int] = None

    def get_timeout_ms(self, step_timeout_ms: Optional[float]) -> Optional[float]:
        if step_timeout_ms is not None:
            return step_timeout_ms
        return self.agent_timeout_ms

    @classmethod
    def from_env(cls) -> "TimeoutDefaults":
        """Create from environment variables."""
        return cls(agent_timeout_ms=_env_optional_int("AGENT_TIMEOUT_MS"))


@dataclass(frozen=True)
class CacheDefaults:
    """Defaults for agent result caching."""
    enabled: bool = True
    ttl_seconds: int = 3600  # 1 hour
    fingerprint_length: int = 16

    @classmethod
    def from_env(cls) -> "CacheDefaults":
        """Create from environment variables."""
        return cls(
            enabled=_env_bool("CACHE_ENABLED", True),
            ttl_seconds=int(_env("CACHE_TTL_SECONDS", "3600")),
        )


@dataclass(frozen=True)
class FlowDefaults:
    """
    Defaults for control-flow fan-out.

    foreach runs sequentially unless told otherwise; map phases run all
    items at once unless bounded (None = unbounded).
    """
    foreach_concurrency: int = 1
    map_concurrency: Optional[int] = None

    @classmethod
    def from_env(cls) -> "FlowDefaults":
        """Create from environment variables."""
        return cls(
            foreach_concurrency=int(_env("FOREACH_CONCURRENCY", "1")),
            map_concurrency=_env_optional_int("MAP_CONCURRENCY"),
        )


@dataclass(frozen=True)
class ApiDefaults:
    """Defaults for the HTTP trigger adapter."""
    ensembles_dir: str = "./ensembles"
    # Process environment variables with this prefix are exposed as `env.*`
    env_prefix: str = "ENSEMBLE_ENV_"

    @classmethod
    def from_env(cls) -> "ApiDefaults":
        """Create from environment variables."""
        return cls(
            ensembles_dir=_env("DIR", "./ensembles"),
            env_prefix=_env("ENV_PREFIX", "ENSEMBLE_ENV_"),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    timeouts: TimeoutDefaults = field(default_factory=TimeoutDefaults)
    cache: CacheDefaults = field(default_factory=CacheDefaults)
    flow: FlowDefaults = field(default_factory=FlowDefaults)
    api: ApiDefaults = field(default_factory=ApiDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            retry=RetryDefaults.from_env(),
            timeouts=TimeoutDefaults.from_env(),
            cache=CacheDefaults.from_env(),
            flow=FlowDefaults.from_env(),
            api=ApiDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ENV_PREFIX",
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
